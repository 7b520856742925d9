"""Metrics collection for load-test runs.

Provides a thin convenience wrapper around ``prometheus_client`` so load
tests can expose what they did to a scraping sidecar or a CI job.

Design notes
- Metrics and labels are predeclared
- One registry per collector (tests inject their own)
- Error messages become label values; targets should keep them stable
"""

from typing import TYPE_CHECKING, Optional

import structlog
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest

if TYPE_CHECKING:  # pragma: no cover
    from performance.models import LoadTestResult

logger = structlog.get_logger("metrics")


class LoadTestMetrics:
    """Prometheus metrics for load-test activity.

    Parameters
    - registry: Optional custom ``CollectorRegistry``
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        self.requests = Counter(
            'load_test_requests_total',
            'Total load-test requests partitioned by outcome',
            ['target', 'outcome'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'load_test_request_duration_seconds',
            'Latency of successful load-test requests',
            ['target'],
            registry=self.registry
        )

        self.errors = Counter(
            'load_test_errors_total',
            'Failed load-test requests by error message',
            ['target', 'error'],
            registry=self.registry
        )

        self.throughput = Gauge(
            'load_test_requests_per_second',
            'Successful requests per second of the last run',
            ['target'],
            registry=self.registry
        )

        self.memory_peak = Gauge(
            'load_test_memory_peak_bytes',
            'Peak heap usage observed during the last run',
            ['target'],
            registry=self.registry
        )

    def record_success(self, target: str, latency_ms: float) -> None:
        """Record a successful request. Latency arrives in milliseconds."""
        self.requests.labels(target=target, outcome="success").inc()
        self.request_duration.labels(target=target).observe(latency_ms / 1000)

    def record_failure(self, target: str, error: str) -> None:
        """Record a failed or timed-out request."""
        self.requests.labels(target=target, outcome="failure").inc()
        self.errors.labels(target=target, error=error).inc()

    def record_result(self, target: str, result: "LoadTestResult") -> None:
        """Record the run-level gauges of a finished load test."""
        self.throughput.labels(target=target).set(result.requests_per_second)
        self.memory_peak.labels(target=target).set(result.memory_usage.peak.heap_used)
        logger.debug("Load test metrics recorded", target=target)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format."""
        return generate_latest(self.registry).decode('utf-8')
