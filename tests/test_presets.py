"""Tests for the render benchmark, leak detector, and endpoint preset."""

import asyncio
import tracemalloc

import httpx
import pytest

from libs.common.config import BenchmarkSettings
from performance.errors import ConfigurationError
from performance.models import Endpoint
from performance.presets import (
    benchmark_render,
    detect_memory_leak,
    endpoint_config,
    load_test_endpoint,
)


@pytest.fixture
def settings():
    return BenchmarkSettings(lt_memory_sample_interval_ms=50, lt_yield_ms=1)


@pytest.fixture
def tracing():
    """Run the test with tracemalloc active, restoring the previous state."""
    was_tracing = tracemalloc.is_tracing()
    if not was_tracing:
        tracemalloc.start()
    yield
    if not was_tracing:
        tracemalloc.stop()


@pytest.mark.asyncio
async def test_benchmark_render(settings):
    """Each iteration is measured once and summarized."""
    calls = []

    async def render():
        calls.append(1)
        await asyncio.sleep(0.001)

    metrics = await benchmark_render(render, iterations=5, settings=settings)

    assert len(calls) == 5
    assert metrics.custom_metrics["iterations"] == 5
    assert metrics.custom_metrics["min_duration"] <= metrics.duration_ms
    assert metrics.duration_ms <= metrics.custom_metrics["max_duration"]
    assert metrics.duration_ms >= 0.5


@pytest.mark.asyncio
async def test_benchmark_render_uses_configured_iterations():
    calls = []
    await benchmark_render(lambda: calls.append(1), settings=BenchmarkSettings(lt_render_iterations=7))
    assert len(calls) == 7


@pytest.mark.asyncio
async def test_iteration_counts_are_validated(settings):
    """Explicit counts are honored as given and invalid ones are rejected."""
    calls = []

    with pytest.raises(ConfigurationError):
        await benchmark_render(lambda: calls.append(1), iterations=0, settings=settings)
    with pytest.raises(ConfigurationError):
        await benchmark_render(lambda: calls.append(1), iterations=-1, settings=settings)
    with pytest.raises(ConfigurationError):
        await detect_memory_leak(lambda: calls.append(1), iterations=-1, settings=settings)
    assert calls == []

    report = await detect_memory_leak(
        lambda: calls.append(1), iterations=0, source="rss", settings=settings
    )
    assert calls == []
    assert report.growth == report.final - report.initial


@pytest.mark.asyncio
async def test_leaky_function_is_flagged(settings, tracing):
    """Retained allocations show up as growth above the threshold."""
    retained = []

    def leaky():
        retained.append(bytearray(100 * 1024))

    report = await detect_memory_leak(leaky, iterations=50, source="tracemalloc", settings=settings)

    assert report.potential_leak
    assert report.growth >= 50 * 100 * 1024 * 0.9
    assert report.growth == report.final - report.initial
    assert report.peak >= report.final
    assert report.growth_percent > settings.lt_leak_threshold_percent


@pytest.mark.asyncio
async def test_stable_function_is_not_flagged(settings):
    """Allocations released every iteration do not count as a leak."""
    hook_calls = []

    def collect():
        hook_calls.append(1)

    def stable():
        buffer = bytearray(1024 * 1024)
        buffer[0] = 1

    report = await detect_memory_leak(
        stable, iterations=100, compaction_hook=collect, source="rss", settings=settings
    )

    assert not report.potential_leak
    assert report.growth_percent < settings.lt_leak_threshold_percent
    # Once before the baseline, then after every iteration.
    assert len(hook_calls) == 101


@pytest.mark.asyncio
async def test_leak_detection_without_compaction_hook(settings):
    calls = []
    report = await detect_memory_leak(
        lambda: calls.append(1), iterations=10, compaction_hook=None, source="rss", settings=settings
    )
    assert len(calls) == 10
    assert report.initial > 0


@pytest.mark.asyncio
async def test_leak_detection_with_empty_baseline(settings):
    """An empty baseline with no growth reports zero growth."""
    was_tracing = tracemalloc.is_tracing()
    if was_tracing:
        tracemalloc.stop()
    try:
        report = await detect_memory_leak(lambda: None, iterations=3, source="tracemalloc", settings=settings)
    finally:
        if was_tracing:
            tracemalloc.start()

    assert report.initial == 0
    assert report.growth_percent == 0.0
    assert not report.potential_leak


def test_endpoint_config_defaults():
    """Ramp-up and warmup are fixed; the rest defaults from settings."""
    config = endpoint_config("http://dispatch.local/health")

    assert config.concurrency == 10
    assert config.duration_ms == 30000
    assert config.ramp_up_ms == 5000
    assert config.timeout_ms == 5000
    assert config.warmup_count == 5
    assert config.target == Endpoint(url="http://dispatch.local/health", method="GET")


def test_endpoint_config_overrides():
    config = endpoint_config("http://dispatch.local/health", concurrency=3, duration_ms=2000, timeout_ms=250)

    assert config.concurrency == 3
    assert config.duration_ms == 2000
    assert config.timeout_ms == 250
    assert config.ramp_up_ms == 5000


@pytest.mark.asyncio
async def test_load_test_endpoint(settings):
    """The endpoint preset warms up, then loads the endpoint."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200)

    result = await load_test_endpoint(
        "http://dispatch.local/health",
        concurrency=2,
        duration_ms=300,
        settings=settings,
        transport=httpx.MockTransport(handler),
    )

    assert result.failed_requests == 0
    assert result.successful_requests > 0
    # The second worker would start after the run ends.
    assert len(requests) >= result.total_requests + 5
