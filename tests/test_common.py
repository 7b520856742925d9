"""Tests for common utilities."""

import pytest
from prometheus_client import CollectorRegistry

from libs.common.config import BenchmarkSettings, LoadTestSettings, get_config
from libs.common.logging import configure_logging, log_performance
from libs.common.metrics import LoadTestMetrics
from performance.aggregator import aggregate
from performance.models import MemorySnapshot, RawSample


def test_config_loading():
    """Test default settings."""
    settings = LoadTestSettings()
    assert settings.lt_env == "local"
    assert settings.lt_log_level == "INFO"
    assert settings.lt_memory_source == "rss"
    assert settings.lt_memory_sample_interval_ms == 1000


def test_benchmark_config():
    """Test preset defaults."""
    settings = BenchmarkSettings()
    assert settings.lt_endpoint_ramp_up_ms == 5000
    assert settings.lt_endpoint_warmup_count == 5
    assert settings.lt_endpoint_timeout_ms == 5000
    assert settings.lt_leak_threshold_percent == 50.0


def test_config_from_environment(monkeypatch):
    """Environment variables override defaults by field name."""
    monkeypatch.setenv("LT_MEMORY_SAMPLE_INTERVAL_MS", "250")
    monkeypatch.setenv("LT_MEMORY_SOURCE", "tracemalloc")

    settings = LoadTestSettings()
    assert settings.lt_memory_sample_interval_ms == 250
    assert settings.lt_memory_source == "tracemalloc"


def test_config_rejects_unknown_memory_source():
    """Only rss and tracemalloc are valid memory sources."""
    with pytest.raises(ValueError):
        LoadTestSettings(lt_memory_source="heap")


def test_get_config():
    """Test selecting settings by name."""
    assert isinstance(get_config("benchmark"), BenchmarkSettings)
    assert type(get_config("load-test")) is LoadTestSettings
    assert type(get_config("unknown")) is LoadTestSettings


def test_logging_configuration():
    """Test logging configuration."""
    # This should not raise an exception
    configure_logging("test-service", "INFO", "json")
    configure_logging("test-service", "debug", "console")
    log_performance("unit", 1.5, status="ok")


def test_metrics_collector():
    """Test per-request and run-level metrics."""
    metrics = LoadTestMetrics(registry=CollectorRegistry())

    metrics.record_success("GET http://svc/health", 12.5)
    metrics.record_failure("GET http://svc/health", "Request timeout")

    snapshot = MemorySnapshot(timestamp=0.0, heap_used=2048, rss=2048, vms=4096)
    result = aggregate([RawSample(12.5)], {"Request timeout": 1}, [snapshot], 1000)
    metrics.record_result("GET http://svc/health", result)

    target = "GET http://svc/health"
    registry = metrics.registry
    assert registry.get_sample_value(
        "load_test_requests_total", {"target": target, "outcome": "success"}
    ) == 1.0
    assert registry.get_sample_value(
        "load_test_errors_total", {"target": target, "error": "Request timeout"}
    ) == 1.0
    assert registry.get_sample_value("load_test_memory_peak_bytes", {"target": target}) == 2048
    assert registry.get_sample_value("load_test_requests_per_second", {"target": target}) == 1.0

    output = metrics.get_metrics()
    assert isinstance(output, str)
    assert "load_test_request_duration_seconds_count" in output
