"""Ramp-up worker scheduler.

``LoadTester`` owns one time-boxed run at a time: it staggers ``concurrency``
workers across the ramp-up window, races every request against the
per-request timeout, samples memory on a fixed interval, and hands the raw
data to ``performance.aggregator``.

Workers are asyncio tasks on a single event loop. Samples, the error
histogram and snapshots are only touched from coroutines on that loop, so no
lock guards them; running workers on OS threads would need one.
"""

import asyncio
import contextlib
import dataclasses
import math
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

import httpx
import structlog

from libs.common.config import LoadTestSettings
from libs.common.metrics import LoadTestMetrics

from .aggregator import aggregate
from .errors import (
    CANCELLED_MESSAGE,
    ConfigurationError,
    OperationFailure,
    TimeoutFailure,
    error_message,
)
from .instrumentation import MemorySampler, call_operation, read_memory_usage
from .models import (
    Endpoint,
    LoadTestConfig,
    LoadTestResult,
    MemorySnapshot,
    RawSample,
    StressStep,
    Target,
    TargetKind,
)

logger = structlog.get_logger("scheduler")


def _is_number(value: Any, integral: bool = False) -> bool:
    if isinstance(value, bool):
        return False
    if integral:
        return isinstance(value, int)
    return isinstance(value, (int, float)) and math.isfinite(value)


def validate_config(config: LoadTestConfig) -> None:
    """Raise ``ConfigurationError`` for a config that cannot be run."""
    if not _is_number(config.concurrency, integral=True) or config.concurrency < 1:
        raise ConfigurationError(f"concurrency must be an integer >= 1, got {config.concurrency!r}")
    if not _is_number(config.duration_ms) or config.duration_ms <= 0:
        raise ConfigurationError(f"duration_ms must be a finite number > 0, got {config.duration_ms!r}")
    if not _is_number(config.ramp_up_ms) or config.ramp_up_ms < 0:
        raise ConfigurationError(f"ramp_up_ms must be a finite number >= 0, got {config.ramp_up_ms!r}")
    if not _is_number(config.timeout_ms) or config.timeout_ms <= 0:
        raise ConfigurationError(f"timeout_ms must be a finite number > 0, got {config.timeout_ms!r}")
    if not _is_number(config.warmup_count, integral=True) or config.warmup_count < 0:
        raise ConfigurationError(f"warmup_count must be an integer >= 0, got {config.warmup_count!r}")
    if not isinstance(getattr(config.target, "kind", None), TargetKind):
        raise ConfigurationError(
            "target must be an Endpoint or CallableTarget; wrap raw values with as_target()"
        )


class LoadTester:
    """Runs load tests against a single target.

    Run state (``results``, ``errors``, ``memory_snapshots``) belongs to the
    run in progress and is cleared by ``reset()`` at the start of every run.
    Use one instance per concurrent run; a second overlapping
    ``run_load_test`` on the same instance is rejected.

    Parameters
    - settings: engine settings (memory source, sampling interval, yield)
    - metrics: optional Prometheus collector fed with every request
    - transport: optional ``httpx`` transport for endpoint targets
    """

    def __init__(
        self,
        settings: Optional[LoadTestSettings] = None,
        metrics: Optional[LoadTestMetrics] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.settings = settings or LoadTestSettings()
        self.metrics = metrics
        self.transport = transport

        self.results: List[RawSample] = []
        self.errors: Dict[str, int] = defaultdict(int)
        self.memory_snapshots: List[MemorySnapshot] = []
        self.late_responses = 0

        self._abandoned: Set[asyncio.Future] = set()
        self._client: Optional[httpx.AsyncClient] = None
        self._running = False

    def reset(self) -> None:
        """Drop all state of the previous run."""
        self.results = []
        self.errors = defaultdict(int)
        self.memory_snapshots = []
        self.late_responses = 0

    async def run_load_test(self, config: LoadTestConfig) -> LoadTestResult:
        """Run one load test and return its aggregated result.

        Only ``ConfigurationError`` is raised; every per-request failure is
        recorded in the error histogram and the run carries on.
        """
        validate_config(config)
        if self._running:
            raise ConfigurationError("A load test is already running on this LoadTester")

        self._running = True
        try:
            return await self._run(config)
        finally:
            self._running = False

    async def _run(self, config: LoadTestConfig) -> LoadTestResult:
        target = config.target
        source = self.settings.lt_memory_source

        logger.info(
            "Starting load test",
            target=target.label,
            concurrency=config.concurrency,
            duration_ms=config.duration_ms,
            ramp_up_ms=config.ramp_up_ms,
            timeout_ms=config.timeout_ms,
        )

        self.reset()
        self.memory_snapshots.append(read_memory_usage(source))
        sampler = MemorySampler(self.settings.lt_memory_sample_interval_ms, source)

        async with contextlib.AsyncExitStack() as stack:
            if target.kind is TargetKind.ENDPOINT:
                self._client = await stack.enter_async_context(
                    httpx.AsyncClient(transport=self.transport, timeout=config.timeout_ms / 1000)
                )
            try:
                if config.warmup_count > 0:
                    await self._run_warmup(config)

                run_start = time.perf_counter()
                deadline = run_start + config.duration_ms / 1000
                ramp_up_interval = config.ramp_up_ms / config.concurrency

                sampler.start()
                workers = [
                    asyncio.ensure_future(
                        self._worker(config, i * ramp_up_interval / 1000, deadline)
                    )
                    for i in range(config.concurrency)
                ]
                await asyncio.gather(*workers)
                run_window_ms = (time.perf_counter() - run_start) * 1000
            finally:
                self.memory_snapshots.extend(await sampler.stop())
                await self._discard_abandoned()
                self._client = None

        self.memory_snapshots.append(read_memory_usage(source))

        result = aggregate(self.results, self.errors, self.memory_snapshots, run_window_ms)
        if self.metrics is not None:
            self.metrics.record_result(target.label, result)

        logger.info(
            "Load test completed",
            target=target.label,
            total_requests=result.total_requests,
            successful_requests=result.successful_requests,
            failed_requests=result.failed_requests,
            requests_per_second=result.requests_per_second,
            p95_ms=result.percentiles.p95,
            late_responses=self.late_responses,
        )
        return result

    async def _run_warmup(self, config: LoadTestConfig) -> None:
        """Fire ``warmup_count`` concurrent requests and ignore their outcome."""
        logger.info("Running warmup requests", count=config.warmup_count)

        outcomes = await asyncio.gather(
            *(self._execute_request(config.target, config.timeout_ms)
              for _ in range(config.warmup_count)),
            return_exceptions=True
        )

        failures = sum(1 for outcome in outcomes if isinstance(outcome, Exception))
        logger.info("Warmup completed", requests=config.warmup_count, failures=failures)

    async def _worker(self, config: LoadTestConfig, delay_s: float, deadline: float) -> None:
        """Issue requests back to back until the deadline passes."""
        if delay_s > 0:
            # A worker scheduled to start after the deadline never runs.
            if time.perf_counter() + delay_s >= deadline:
                return
            await asyncio.sleep(delay_s)

        target = config.target
        yield_s = self.settings.lt_yield_ms / 1000

        while time.perf_counter() < deadline:
            request_start = time.perf_counter()
            try:
                await self._execute_request(target, config.timeout_ms)
            except Exception as e:
                if time.perf_counter() <= deadline:
                    self._record_failure(target, error_message(e))
                else:
                    self.late_responses += 1
            else:
                finished = time.perf_counter()
                if finished <= deadline:
                    self._record_success(target, (finished - request_start) * 1000)
                else:
                    self.late_responses += 1

            # Let the other workers and the sampler run.
            await asyncio.sleep(yield_s)

    async def _execute_request(self, target: Target, timeout_ms: float) -> Any:
        """Run one request against ``target``, racing it against the timeout.

        A request that loses the race is abandoned, not cancelled; it keeps
        running until it settles or the run ends.
        """
        if target.kind is TargetKind.ENDPOINT:
            operation = self._request_endpoint(target)
        elif target.kind is TargetKind.CALLABLE:
            operation = call_operation(target.fn)
        else:
            raise ConfigurationError(f"Unknown target kind: {target.kind!r}")

        task = asyncio.ensure_future(operation)
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            # The operation cancelled itself; the worker was not cancelled.
            if task.cancelled():
                raise OperationFailure(CANCELLED_MESSAGE)
            return task.result()

        self._abandon(task)
        raise TimeoutFailure()

    async def _request_endpoint(self, endpoint: Endpoint) -> httpx.Response:
        try:
            response = await self._client.request(
                endpoint.method,
                endpoint.url,
                json=endpoint.json,
                headers=endpoint.headers,
            )
        except httpx.TimeoutException as e:
            raise TimeoutFailure() from e

        if not response.is_success:
            message = f"HTTP {response.status_code}"
            if response.reason_phrase:
                message = f"{message}: {response.reason_phrase}"
            raise OperationFailure(message)
        return response

    def _record_success(self, target: Target, latency_ms: float) -> None:
        self.results.append(RawSample(latency_ms=latency_ms))
        if self.metrics is not None:
            self.metrics.record_success(target.label, latency_ms)

    def _record_failure(self, target: Target, message: str) -> None:
        self.errors[message] += 1
        logger.debug("Request failed", target=target.label, error=message)
        if self.metrics is not None:
            self.metrics.record_failure(target.label, message)

    def _abandon(self, task: asyncio.Future) -> None:
        self._abandoned.add(task)
        task.add_done_callback(self._forget_abandoned)

    def _forget_abandoned(self, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        if not task.cancelled():
            # Retrieve the outcome so asyncio does not report it as unhandled.
            task.exception()

    async def _discard_abandoned(self) -> None:
        """Cancel timed-out requests still pending when the run ends."""
        pending = [task for task in self._abandoned if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.debug("Cancelled abandoned requests", count=len(pending))
        self._abandoned.clear()

    async def run_stress_test(
        self,
        config: LoadTestConfig,
        max_concurrency: int,
        step_size: int = 10,
        step_duration_ms: Optional[int] = None,
        stop_when: Optional[Callable[[LoadTestResult], bool]] = None,
        pause_ms: Optional[int] = None
    ) -> List[StressStep]:
        """Run load tests with increasing concurrency.

        Concurrency goes ``step_size, 2 * step_size, ...`` up to
        ``max_concurrency``. ``stop_when`` receives each step's result and
        ends the test early when it returns True; without it every step runs.
        """
        if step_size < 1 or max_concurrency < step_size:
            raise ConfigurationError(
                f"need 1 <= step_size <= max_concurrency, got {step_size} and {max_concurrency}"
            )

        pause_ms = self.settings.lt_stress_step_pause_ms if pause_ms is None else pause_ms
        duration_ms = step_duration_ms or config.duration_ms

        logger.info(
            "Starting stress test",
            target=config.target.label,
            max_concurrency=max_concurrency,
            step_size=step_size,
        )

        steps: List[StressStep] = []
        levels = list(range(step_size, max_concurrency + 1, step_size))

        for index, concurrency in enumerate(levels):
            step_config = dataclasses.replace(
                config, concurrency=concurrency, duration_ms=duration_ms
            )
            result = await self.run_load_test(step_config)
            steps.append(StressStep(concurrency=concurrency, result=result))

            if stop_when is not None and stop_when(result):
                logger.warning(
                    "Stress test stopped early",
                    concurrency=concurrency,
                    error_rate=result.error_rate,
                )
                break

            if pause_ms > 0 and index < len(levels) - 1:
                await asyncio.sleep(pause_ms / 1000)

        logger.info("Stress test completed", steps=len(steps))
        return steps


def create_load_tester(
    settings: Optional[LoadTestSettings] = None,
    metrics: Optional[LoadTestMetrics] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> LoadTester:
    """Create load tester."""
    return LoadTester(settings=settings, metrics=metrics, transport=transport)
