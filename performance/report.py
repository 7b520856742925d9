"""Human-readable rendering of a load-test result.

A convenience for callers printing results to a terminal or a CI log; the
structured ``LoadTestResult`` stays the source of truth.
"""

from .models import LoadTestResult

RULE = "=" * 60


def _mb(value: float) -> str:
    return f"{value / 1024 / 1024:.2f}MB"


def format_summary(result: LoadTestResult) -> str:
    """Render totals, latencies, throughput, errors and memory as text."""
    success_rate = 100.0 - result.error_rate if result.total_requests else 0.0
    memory = result.memory_usage

    report_lines = [
        RULE,
        "LOAD TEST RESULTS",
        RULE,
        f"Total Requests: {result.total_requests}",
        f"Successful: {result.successful_requests}",
        f"Failed: {result.failed_requests}",
        f"Success Rate: {success_rate:.2f}%",
        "",
        "Response Times:",
        f"  Average: {result.average_response_time:.2f}ms",
        f"  Min: {result.min_response_time:.2f}ms",
        f"  Max: {result.max_response_time:.2f}ms",
        "",
        "Percentiles:",
        f"  50th: {result.percentiles.p50:.2f}ms",
        f"  90th: {result.percentiles.p90:.2f}ms",
        f"  95th: {result.percentiles.p95:.2f}ms",
        f"  99th: {result.percentiles.p99:.2f}ms",
        "",
        f"Throughput: {result.requests_per_second:.2f} requests/second",
    ]

    if result.errors:
        report_lines.extend(["", "Errors:"])
        for error in sorted(result.errors, key=lambda e: e.count, reverse=True):
            report_lines.append(f"  {error.error}: {error.count}")

    report_lines.extend([
        "",
        "Memory Usage:",
        f"  Initial: {_mb(memory.initial.heap_used)}",
        f"  Peak: {_mb(memory.peak.heap_used)}",
        f"  Final: {_mb(memory.final.heap_used)}",
        f"  Delta: {_mb(memory.final.heap_used - memory.initial.heap_used)}",
        RULE,
    ])

    return "\n".join(report_lines)
