"""Canned benchmark compositions over the instrumentation and scheduler.

- ``benchmark_render``: sequential timing of one hot path
- ``detect_memory_leak``: repeated invocation while tracking heap growth
- ``endpoint_config`` / ``load_test_endpoint``: a default load test for a
  single endpoint, tunable only in concurrency, duration, and timeout

None of these decide pass/fail; callers compare the returned numbers
against their own thresholds.
"""

import gc
from typing import Any, Callable, Optional

import httpx
import numpy as np
import structlog

from libs.common.config import BenchmarkSettings
from libs.common.metrics import LoadTestMetrics

from .errors import ConfigurationError
from .instrumentation import Operation, PerformanceTester, call_operation, read_memory_usage
from .models import (
    Endpoint,
    LoadTestConfig,
    LoadTestResult,
    MemoryLeakReport,
    PerformanceMetrics,
)
from .scheduler import create_load_tester

logger = structlog.get_logger("presets")

PROGRESS_EVERY = 100


async def benchmark_render(
    render_fn: Operation,
    iterations: Optional[int] = None,
    settings: Optional[BenchmarkSettings] = None
) -> PerformanceMetrics:
    """Time ``render_fn`` ``iterations`` times, one call after another.

    Returns mean duration, memory delta and CPU delta with
    ``custom_metrics = {iterations, min_duration, max_duration}``.
    """
    settings = settings or BenchmarkSettings()
    iterations = settings.lt_render_iterations if iterations is None else iterations
    if iterations < 1:
        raise ConfigurationError(f"iterations must be >= 1, got {iterations!r}")
    tester = PerformanceTester(memory_source=settings.lt_memory_source)

    for i in range(iterations):
        await tester.measure(render_fn, f"Render {i + 1}")

    results = tester.get_metrics()
    durations = [m.duration_ms for m in results]

    average = tester.get_average_metrics()
    logger.info(
        "Render benchmark completed",
        iterations=iterations,
        mean_ms=average.duration_ms,
        max_ms=float(np.max(durations)),
    )

    return PerformanceMetrics(
        duration_ms=average.duration_ms,
        memory_delta=average.memory_delta,
        cpu_delta_ms=average.cpu_delta_ms,
        custom_metrics={
            "iterations": iterations,
            "min_duration": float(np.min(durations)),
            "max_duration": float(np.max(durations)),
        },
    )


async def detect_memory_leak(
    fn: Operation,
    iterations: Optional[int] = None,
    compaction_hook: Optional[Callable[[], Any]] = gc.collect,
    threshold_percent: Optional[float] = None,
    source: Optional[str] = None,
    settings: Optional[BenchmarkSettings] = None
) -> MemoryLeakReport:
    """Call ``fn`` repeatedly and report how much the heap grew.

    ``compaction_hook`` runs after every iteration when given (defaults to a
    full ``gc.collect``); pass ``None`` to skip it. A run is flagged as a
    potential leak when ``(final - initial) / initial * 100`` exceeds
    ``threshold_percent``.
    """
    settings = settings or BenchmarkSettings()
    iterations = settings.lt_leak_iterations if iterations is None else iterations
    if iterations < 0:
        raise ConfigurationError(f"iterations must be >= 0, got {iterations!r}")
    threshold_percent = (
        settings.lt_leak_threshold_percent if threshold_percent is None else threshold_percent
    )
    source = source or settings.lt_memory_source

    if compaction_hook is not None:
        compaction_hook()

    initial = read_memory_usage(source).heap_used
    peak = initial

    for i in range(iterations):
        await call_operation(fn)

        if compaction_hook is not None:
            compaction_hook()

        peak = max(peak, read_memory_usage(source).heap_used)

        if (i + 1) % PROGRESS_EVERY == 0:
            logger.info("Memory leak test progress", completed=i + 1, iterations=iterations)

    final = read_memory_usage(source).heap_used
    peak = max(peak, final)
    growth = final - initial

    if initial > 0:
        growth_percent = growth / initial * 100
    else:
        growth_percent = float("inf") if growth > 0 else 0.0

    report = MemoryLeakReport(
        initial=initial,
        final=final,
        peak=peak,
        growth=growth,
        growth_percent=growth_percent,
        potential_leak=growth_percent > threshold_percent,
    )

    logger.info(
        "Memory leak test completed",
        iterations=iterations,
        growth_mb=growth / 1024 / 1024,
        growth_percent=growth_percent,
        potential_leak=report.potential_leak,
    )
    return report


def endpoint_config(
    url: str,
    concurrency: Optional[int] = None,
    duration_ms: Optional[int] = None,
    timeout_ms: Optional[int] = None,
    settings: Optional[BenchmarkSettings] = None
) -> LoadTestConfig:
    """Default load-test config for a single endpoint.

    Ramp-up (5 s) and warmup (5 requests) are fixed by settings.
    """
    settings = settings or BenchmarkSettings()
    return LoadTestConfig(
        concurrency=settings.lt_endpoint_concurrency if concurrency is None else concurrency,
        duration_ms=settings.lt_endpoint_duration_ms if duration_ms is None else duration_ms,
        ramp_up_ms=settings.lt_endpoint_ramp_up_ms,
        target=Endpoint(url=url, method=settings.lt_request_method),
        timeout_ms=settings.lt_endpoint_timeout_ms if timeout_ms is None else timeout_ms,
        warmup_count=settings.lt_endpoint_warmup_count,
    )


async def load_test_endpoint(
    url: str,
    concurrency: Optional[int] = None,
    duration_ms: Optional[int] = None,
    timeout_ms: Optional[int] = None,
    settings: Optional[BenchmarkSettings] = None,
    metrics: Optional[LoadTestMetrics] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> LoadTestResult:
    """Load test one endpoint with the default config on a fresh tester."""
    settings = settings or BenchmarkSettings()
    config = endpoint_config(url, concurrency, duration_ms, timeout_ms, settings)

    load_tester = create_load_tester(settings=settings, metrics=metrics, transport=transport)
    return await load_tester.run_load_test(config)
