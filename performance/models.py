"""Data model for load tests and single-operation measurements.

Targets are a tagged union: each variant carries a ``kind`` so the scheduler
dispatches on the tag rather than on the runtime type of whatever the caller
passed in. ``as_target`` is the one place that inspects raw caller input.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

DEFAULT_TIMEOUT_MS = 5000


class TargetKind(Enum):
    """Variants of a load-test target."""
    ENDPOINT = "endpoint"
    CALLABLE = "callable"


@dataclass(frozen=True)
class Endpoint:
    """A network endpoint hit once per request."""
    url: str
    method: str = "GET"
    json: Optional[Any] = None
    headers: Optional[Dict[str, str]] = None
    kind: TargetKind = field(default=TargetKind.ENDPOINT, init=False)

    @property
    def label(self) -> str:
        return f"{self.method} {self.url}"


@dataclass(frozen=True)
class CallableTarget:
    """A no-argument callable; may be a coroutine function or return a value."""
    fn: Callable[[], Any]
    name: Optional[str] = None
    kind: TargetKind = field(default=TargetKind.CALLABLE, init=False)

    @property
    def label(self) -> str:
        return self.name or getattr(self.fn, "__qualname__", repr(self.fn))


Target = Union[Endpoint, CallableTarget]


def as_target(value: Any) -> Target:
    """Wrap raw caller input into a tagged target.

    Strings become ``Endpoint`` (GET), callables become ``CallableTarget``;
    already-tagged targets pass through unchanged.
    """
    if isinstance(value, (Endpoint, CallableTarget)):
        return value
    if isinstance(value, str):
        return Endpoint(url=value)
    if callable(value):
        return CallableTarget(fn=value)
    raise TypeError(f"Unsupported load-test target: {value!r}")


@dataclass(frozen=True)
class LoadTestConfig:
    """Caller-supplied description of one load-test run.

    Validation happens in the scheduler so an invalid config fails with
    ``ConfigurationError`` before any run state exists.
    """
    concurrency: int
    duration_ms: int
    ramp_up_ms: int
    target: Target
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    warmup_count: int = 0


@dataclass(frozen=True)
class MemoryDelta:
    """Signed difference between two memory snapshots, in bytes."""
    heap_used: int
    rss: int
    vms: int


@dataclass(frozen=True)
class MemorySnapshot:
    """Point-in-time process memory reading, in bytes."""
    timestamp: float
    heap_used: int
    rss: int
    vms: int

    def delta(self, earlier: "MemorySnapshot") -> MemoryDelta:
        """``self - earlier``; negative when memory was released."""
        return MemoryDelta(
            heap_used=self.heap_used - earlier.heap_used,
            rss=self.rss - earlier.rss,
            vms=self.vms - earlier.vms,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "heapUsed": self.heap_used,
            "rss": self.rss,
            "vms": self.vms,
        }


@dataclass
class PerformanceMetrics:
    """Measurement of a single operation."""
    duration_ms: float
    memory_delta: MemoryDelta
    cpu_delta_ms: float
    custom_metrics: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class RawSample:
    """Latency of one successful request."""
    latency_ms: float


@dataclass(frozen=True)
class Percentiles:
    p50: float = 0.0
    p90: float = 0.0
    p95: float = 0.0
    p99: float = 0.0


@dataclass(frozen=True)
class ErrorCount:
    error: str
    count: int


@dataclass(frozen=True)
class MemoryUsage:
    initial: MemorySnapshot
    peak: MemorySnapshot
    final: MemorySnapshot


@dataclass
class LoadTestResult:
    """Aggregate outcome of one load-test run.

    ``duration_ms`` is the measured run window used for throughput; it is not
    part of the JSON contract returned by ``to_dict``.
    """
    total_requests: int
    successful_requests: int
    failed_requests: int
    average_response_time: float
    min_response_time: float
    max_response_time: float
    requests_per_second: float
    percentiles: Percentiles
    errors: List[ErrorCount]
    memory_usage: MemoryUsage
    duration_ms: float = 0.0

    @property
    def error_rate(self) -> float:
        """Failed share of all requests, in percent."""
        if self.total_requests == 0:
            return 0.0
        return self.failed_requests / self.total_requests * 100

    def to_dict(self) -> Dict[str, Any]:
        """Render the JSON-serializable result contract."""
        return {
            "totalRequests": self.total_requests,
            "successfulRequests": self.successful_requests,
            "failedRequests": self.failed_requests,
            "averageResponseTime": self.average_response_time,
            "minResponseTime": self.min_response_time,
            "maxResponseTime": self.max_response_time,
            "requestsPerSecond": self.requests_per_second,
            "percentiles": asdict(self.percentiles),
            "errors": [asdict(e) for e in self.errors],
            "memoryUsage": {
                "initial": self.memory_usage.initial.to_dict(),
                "peak": self.memory_usage.peak.to_dict(),
                "final": self.memory_usage.final.to_dict(),
            },
        }


@dataclass(frozen=True)
class StressStep:
    """One concurrency level of a stepped stress test."""
    concurrency: int
    result: LoadTestResult


@dataclass(frozen=True)
class MemoryLeakReport:
    """Outcome of the memory-leak detector, in bytes."""
    initial: int
    final: int
    peak: int
    growth: int
    growth_percent: float
    potential_leak: bool
