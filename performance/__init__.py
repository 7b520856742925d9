"""Load-testing and performance-measurement engine.

Modules:
- ``models``: targets, run config, snapshots, and result types
- ``instrumentation``: single-operation timing and memory sampling
- ``scheduler``: ``LoadTester`` with ramp-up workers and stress steps
- ``aggregator``: percentiles, throughput, and error histogram
- ``presets``: render benchmark, memory-leak detector, endpoint load test
- ``report``: text summary of a result

Import pattern:
- from performance import LoadTester, LoadTestConfig, as_target
"""

from .aggregator import aggregate, percentile
from .errors import ConfigurationError, LoadTestError, OperationFailure, TimeoutFailure
from .instrumentation import MemorySampler, PerformanceTester, read_memory_usage
from .models import (
    CallableTarget,
    Endpoint,
    LoadTestConfig,
    LoadTestResult,
    MemoryLeakReport,
    MemorySnapshot,
    PerformanceMetrics,
    as_target,
)
from .presets import benchmark_render, detect_memory_leak, endpoint_config, load_test_endpoint
from .report import format_summary
from .scheduler import LoadTester, create_load_tester

__all__ = [
    "CallableTarget",
    "ConfigurationError",
    "Endpoint",
    "LoadTestConfig",
    "LoadTestError",
    "LoadTestResult",
    "LoadTester",
    "MemoryLeakReport",
    "MemorySampler",
    "MemorySnapshot",
    "OperationFailure",
    "PerformanceMetrics",
    "PerformanceTester",
    "TimeoutFailure",
    "aggregate",
    "as_target",
    "benchmark_render",
    "create_load_tester",
    "detect_memory_leak",
    "endpoint_config",
    "format_summary",
    "load_test_endpoint",
    "percentile",
    "read_memory_usage",
]
