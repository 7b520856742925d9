"""Tests for the statistical aggregator."""

import numpy as np
import pytest

from performance.aggregator import aggregate, percentile, summarize_memory
from performance.models import MemorySnapshot, RawSample


def snapshot(heap_used, timestamp=0.0):
    return MemorySnapshot(timestamp=timestamp, heap_used=heap_used, rss=heap_used, vms=heap_used * 2)


def test_percentile_nearest_rank():
    """Ranks follow ceil(p * n / 100) - 1 on a sorted sequence."""
    values = list(range(1, 101))
    assert percentile(values, 50) == 50
    assert percentile(values, 90) == 90
    assert percentile(values, 95) == 95
    assert percentile(values, 99) == 99
    assert percentile(values, 100) == 100


def test_percentile_clamps_index():
    """Index is clamped into the sample range."""
    assert percentile([7.0], 99) == 7.0
    assert percentile([1.0, 2.0], 0) == 1.0
    assert percentile([1.0, 2.0, 3.0], 150) == 3.0
    assert percentile([], 50) == 0.0


def test_percentiles_are_non_decreasing():
    """Higher percentiles never report lower values."""
    rng = np.random.default_rng(7)
    for n in (1, 2, 13, 250):
        values = np.sort(rng.exponential(scale=40.0, size=n))
        reported = [percentile(values, p) for p in range(0, 101)]
        assert reported == sorted(reported)


def test_aggregate_statistics():
    """Counts, mean/min/max and throughput over a known sample set."""
    samples = [RawSample(v) for v in (30.0, 10.0, 20.0, 40.0)]
    errors = {"boom": 2, "Request timeout": 1}

    result = aggregate(samples, errors, [snapshot(100), snapshot(300), snapshot(200)], 2000)

    assert result.total_requests == 7
    assert result.successful_requests == 4
    assert result.failed_requests == 3
    assert result.total_requests == result.successful_requests + result.failed_requests
    assert result.average_response_time == pytest.approx(25.0)
    assert result.min_response_time == 10.0
    assert result.max_response_time == 40.0
    assert result.requests_per_second == pytest.approx(2.0)
    assert result.percentiles.p50 == 20.0
    assert result.percentiles.p99 == 40.0
    assert {(e.error, e.count) for e in result.errors} == {("boom", 2), ("Request timeout", 1)}
    assert result.duration_ms == 2000


def test_aggregate_does_not_reorder_samples():
    """Sorting happens on a copy."""
    samples = [RawSample(3.0), RawSample(1.0), RawSample(2.0)]
    aggregate(samples, {}, [snapshot(1)], 1000)
    assert [s.latency_ms for s in samples] == [3.0, 1.0, 2.0]


def test_aggregate_without_successes():
    """No successful samples gives zeros, never NaN."""
    result = aggregate([], {"boom": 5}, [snapshot(10)], 1000)

    assert result.successful_requests == 0
    assert result.failed_requests == 5
    assert result.average_response_time == 0.0
    assert result.min_response_time == 0.0
    assert result.max_response_time == 0.0
    assert result.requests_per_second == 0.0
    assert result.percentiles.p50 == 0.0
    assert result.percentiles.p99 == 0.0


def test_aggregate_zero_window():
    """A zero-length window reports no throughput instead of dividing by zero."""
    result = aggregate([RawSample(1.0)], {}, [snapshot(10)], 0)
    assert result.requests_per_second == 0.0


def test_memory_summary():
    """Peak is the snapshot with the highest heap usage."""
    snapshots = [snapshot(200, 1.0), snapshot(500, 2.0), snapshot(100, 3.0)]
    memory = summarize_memory(snapshots)

    assert memory.initial.timestamp == 1.0
    assert memory.peak.heap_used == 500
    assert memory.final.timestamp == 3.0
    assert memory.peak.heap_used >= memory.initial.heap_used
    assert memory.peak.heap_used >= memory.final.heap_used


def test_memory_summary_without_snapshots():
    """A fresh reading stands in for all three."""
    memory = summarize_memory([])
    assert memory.initial == memory.peak == memory.final
    assert memory.peak.rss > 0
