"""Instrumentation for single operations and whole runs.

- ``read_memory_usage`` / ``read_cpu_time_ms`` take cheap process readings
  with ``psutil`` (and ``tracemalloc`` when that memory source is selected)
- ``PerformanceTester`` times one operation and captures memory/CPU deltas
- ``MemorySampler`` records memory snapshots on a fixed interval as an
  asyncio task, independent of whatever else runs on the loop

All helpers are observers: they never retry, swallow, or alter the outcome
of the operation they wrap.
"""

import asyncio
import inspect
import time
import tracemalloc
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union

import numpy as np
import psutil
import structlog

from libs.common.config import LoadTestSettings
from libs.common.logging import log_performance

from .models import MemoryDelta, MemorySnapshot, PerformanceMetrics

logger = structlog.get_logger("instrumentation")

_PROCESS = psutil.Process()

Operation = Callable[[], Union[Any, Awaitable[Any]]]


def read_memory_usage(source: Optional[str] = None) -> MemorySnapshot:
    """Take a memory snapshot of the current process.

    ``source`` selects what ``heap_used`` reports: ``rss`` (resident set
    size) or ``tracemalloc`` (bytes currently traced; 0 unless tracing was
    started by the caller). Defaults to ``LoadTestSettings.lt_memory_source``.
    """
    source = source or LoadTestSettings().lt_memory_source
    memory_info = _PROCESS.memory_info()

    if source == "tracemalloc":
        heap_used = tracemalloc.get_traced_memory()[0] if tracemalloc.is_tracing() else 0
    else:
        heap_used = memory_info.rss

    return MemorySnapshot(
        timestamp=time.time(),
        heap_used=heap_used,
        rss=memory_info.rss,
        vms=memory_info.vms,
    )


def read_cpu_time_ms() -> float:
    """User plus system CPU time consumed by this process, in ms."""
    cpu_times = _PROCESS.cpu_times()
    return (cpu_times.user + cpu_times.system) * 1000


async def call_operation(operation: Operation) -> Any:
    """Invoke ``operation`` and await its result if it returned an awaitable."""
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


class PerformanceTester:
    """Measures single operations and keeps their history.

    Each ``measure`` call appends its ``PerformanceMetrics`` so callers
    running a series (see ``performance.presets``) can average them.
    """

    def __init__(self, memory_source: Optional[str] = None):
        self.memory_source = memory_source or LoadTestSettings().lt_memory_source
        self.metrics: List[PerformanceMetrics] = []

    async def measure(
        self,
        operation: Operation,
        label: str = "Performance Test"
    ) -> Tuple[Any, PerformanceMetrics]:
        """Run ``operation`` once and return ``(result, metrics)``.

        Deltas are post minus pre and are not clamped: a garbage collection
        in the middle of the call shows up as a negative memory delta. If the
        operation raises, deltas are still computed and logged, then the
        exception propagates unchanged.
        """
        initial_memory = read_memory_usage(self.memory_source)
        initial_cpu = read_cpu_time_ms()
        start_time = time.perf_counter()

        try:
            result = await call_operation(operation)
        except Exception as e:
            metrics = self._collect(start_time, initial_memory, initial_cpu)
            logger.error(
                "Performance measurement failed",
                label=label,
                duration_ms=metrics.duration_ms,
                heap_delta_bytes=metrics.memory_delta.heap_used,
                error=str(e),
            )
            raise

        metrics = self._collect(start_time, initial_memory, initial_cpu)
        self.metrics.append(metrics)

        log_performance(
            label,
            metrics.duration_ms,
            heap_delta_mb=metrics.memory_delta.heap_used / 1024 / 1024,
            cpu_delta_ms=metrics.cpu_delta_ms,
        )
        return result, metrics

    def _collect(
        self,
        start_time: float,
        initial_memory: MemorySnapshot,
        initial_cpu: float
    ) -> PerformanceMetrics:
        end_time = time.perf_counter()
        final_memory = read_memory_usage(self.memory_source)
        return PerformanceMetrics(
            duration_ms=(end_time - start_time) * 1000,
            memory_delta=final_memory.delta(initial_memory),
            cpu_delta_ms=read_cpu_time_ms() - initial_cpu,
        )

    def get_metrics(self) -> List[PerformanceMetrics]:
        """Copy of every successful measurement so far."""
        return list(self.metrics)

    def get_average_metrics(self) -> Optional[PerformanceMetrics]:
        """Mean duration, memory delta and CPU delta; ``None`` when empty."""
        if not self.metrics:
            return None

        return PerformanceMetrics(
            duration_ms=float(np.mean([m.duration_ms for m in self.metrics])),
            memory_delta=MemoryDelta(
                heap_used=int(np.mean([m.memory_delta.heap_used for m in self.metrics])),
                rss=int(np.mean([m.memory_delta.rss for m in self.metrics])),
                vms=int(np.mean([m.memory_delta.vms for m in self.metrics])),
            ),
            cpu_delta_ms=float(np.mean([m.cpu_delta_ms for m in self.metrics])),
        )

    def reset(self) -> None:
        self.metrics = []


class MemorySampler:
    """Samples process memory on a fixed interval.

    Runs as an asyncio task on the caller's loop. It only appends to its own
    ``snapshots`` list, so it needs no coordination with request workers.
    """

    def __init__(self, interval_ms: float = 1000, source: Optional[str] = None):
        self.interval_ms = interval_ms
        self.source = source or LoadTestSettings().lt_memory_source
        self.snapshots: List[MemorySnapshot] = []
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        """Start periodic sampling; the first sample lands one interval in."""
        if self._task is not None:
            return

        self._task = asyncio.ensure_future(self._sample_loop())
        logger.debug("Memory sampling started", interval_ms=self.interval_ms)

    async def stop(self) -> List[MemorySnapshot]:
        """Stop sampling and return everything collected."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.debug("Memory sampling stopped", samples_collected=len(self.snapshots))
        return list(self.snapshots)

    async def _sample_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_ms / 1000)
            self.snapshots.append(read_memory_usage(self.source))
