"""Reduce raw load-test samples into a ``LoadTestResult``."""

import math
from typing import Iterable, List, Mapping, Sequence

import numpy as np

from .instrumentation import read_memory_usage
from .models import (
    ErrorCount,
    LoadTestResult,
    MemorySnapshot,
    MemoryUsage,
    Percentiles,
    RawSample,
)

REPORTED_PERCENTILES = (50, 90, 95, 99)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Nearest-rank percentile of an ascending sequence.

    Index is ``ceil(p * n / 100) - 1`` clamped into ``[0, n - 1]``; the
    product is taken before dividing so integer percentiles over integer
    sample counts land on exact ranks. Returns 0.0 with no samples.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0

    index = math.ceil(p * n / 100) - 1
    index = min(max(index, 0), n - 1)
    return float(sorted_values[index])


def summarize_memory(snapshots: Sequence[MemorySnapshot]) -> MemoryUsage:
    """First, highest-``heap_used`` and last snapshot of a run."""
    if not snapshots:
        current = read_memory_usage()
        return MemoryUsage(initial=current, peak=current, final=current)

    peak = max(snapshots, key=lambda s: s.heap_used)
    return MemoryUsage(initial=snapshots[0], peak=peak, final=snapshots[-1])


def aggregate(
    samples: Iterable[RawSample],
    errors: Mapping[str, int],
    snapshots: Sequence[MemorySnapshot],
    run_window_ms: float
) -> LoadTestResult:
    """Fold one run's raw data into a result.

    Parameters
    - samples: latencies of successful requests, in any order
    - errors: failure message -> count
    - snapshots: memory snapshots in the order they were taken
    - run_window_ms: measured wall-clock length of the run

    With no successful samples every latency statistic is 0.0.
    """
    latencies = np.sort(np.fromiter((s.latency_ms for s in samples), dtype=float))
    successful = int(latencies.size)
    failed = int(sum(errors.values()))

    if successful:
        average = float(np.mean(latencies))
        minimum = float(latencies[0])
        maximum = float(latencies[-1])
    else:
        average = minimum = maximum = 0.0

    values = {f"p{p}": percentile(latencies, p) for p in REPORTED_PERCENTILES}

    requests_per_second = successful / run_window_ms * 1000 if run_window_ms > 0 else 0.0

    error_counts: List[ErrorCount] = [
        ErrorCount(error=message, count=count) for message, count in errors.items()
    ]

    return LoadTestResult(
        total_requests=successful + failed,
        successful_requests=successful,
        failed_requests=failed,
        average_response_time=average,
        min_response_time=minimum,
        max_response_time=maximum,
        requests_per_second=requests_per_second,
        percentiles=Percentiles(**values),
        errors=error_counts,
        memory_usage=summarize_memory(snapshots),
        duration_ms=run_window_ms,
    )
