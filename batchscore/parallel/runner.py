"""
Batch Runner for batchscore.

Scores a batch of rows against a rate-limited endpoint with a bounded
number of concurrent requests and reports ordered per-row results plus
batch statistics.

Architecture:
    - WorkerPool hands out row indices to work-stealing workers
    - RowExecutor times each endpoint call and captures failures
    - ResultCollector restores row order and feeds progress observers
    - StatisticsAggregator computes the final batch metrics

A batch moves IDLE -> RUNNING -> COMPLETED -> AGGREGATED exactly once.
Every call to ``BatchRunner.run_batch`` builds a fresh BatchJob.
"""

from __future__ import annotations

import asyncio
import logging
import time
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Sequence

from ..exceptions import InvalidBatchError, InvalidStateError
from ..scoring.endpoint import EndpointLike
from ..types import BatchReport, BatchState, BatchStatistics, Row, RowResult
from ..utils.formatting import format_duration
from .collector import ResultCollector
from .rate_limiter import AsyncRateLimiter, create_rate_limiter
from .row_executor import RowExecutor
from .statistics import RunningStatistics, StatisticsAggregator
from .worker_pool import WorkerPool, effective_concurrency, validate_concurrency

if TYPE_CHECKING:
    from ..config import RunnerConfig
    from ..tracking import MlflowLogger

logger = logging.getLogger(__name__)

ProgressHook = Callable[[list[RowResult]], None]

PROGRESS_LOG_EVERY = 10


class BatchJob:
    """
    A single batch of rows and its lifecycle.

    Arguments are validated in the constructor, so an invalid batch is
    rejected before any request is made.

    Example:
        >>> job = BatchJob(rows, concurrency=4, executor=RowExecutor(endpoint))
        >>> report = await job.run()
        >>> job.state
        <BatchState.AGGREGATED: 'aggregated'>
    """

    def __init__(
        self,
        rows: Sequence[Row],
        concurrency: int,
        executor: RowExecutor,
        on_progress: ProgressHook | None = None,
        enable_progress: bool = False,
    ) -> None:
        """
        Initialize the batch.

        Args:
            rows: Rows to score, identified by position
            concurrency: Maximum number of in-flight endpoint calls
            executor: RowExecutor used for every row
            on_progress: Optional hook receiving the ordered partial results
            enable_progress: Log progress every few completed rows

        Raises:
            InvalidBatchError: If ``rows`` is empty or ``concurrency`` < 1
        """
        if not rows:
            raise InvalidBatchError("Cannot run a batch with no rows")
        validate_concurrency(concurrency)

        self._rows: tuple[Row, ...] = tuple(MappingProxyType(dict(row)) for row in rows)
        self._concurrency = concurrency
        self._executor = executor
        self._on_progress = on_progress
        self._enable_progress = enable_progress

        self._state = BatchState.IDLE
        self._pool = WorkerPool()
        self._collector = ResultCollector(len(self._rows), on_progress=self._handle_progress)
        self._running = RunningStatistics()
        self._aggregator = StatisticsAggregator()
        self._start_time: float | None = None
        self._total_runtime_ms: float | None = None

    @property
    def state(self) -> BatchState:
        return self._state

    @property
    def row_count(self) -> int:
        return len(self._rows)

    @property
    def concurrency(self) -> int:
        """Number of workers this batch runs with."""
        return effective_concurrency(len(self._rows), self._concurrency)

    @property
    def pool(self) -> WorkerPool:
        return self._pool

    @property
    def completed_count(self) -> int:
        return self._collector.completed_count

    @property
    def running_statistics(self) -> BatchStatistics | None:
        """Statistics over the results collected so far."""
        return self._running.snapshot(self._elapsed_ms())

    def live_snapshot(self) -> list[RowResult]:
        """Results collected so far, ordered by row index."""
        return self._collector.live_snapshot()

    async def run(self) -> BatchReport:
        """
        Score every row and aggregate the results.

        Returns:
            BatchReport with ordered results and statistics

        Raises:
            InvalidStateError: If the batch has already been started
        """
        if self._state is not BatchState.IDLE:
            raise InvalidStateError(f"Batch already {self._state.value}; create a new batch")

        self._state = BatchState.RUNNING
        self._start_time = time.perf_counter()
        await self._pool.run(
            len(self._rows),
            self._concurrency,
            self._score_row,
            self._record,
        )
        self._total_runtime_ms = (time.perf_counter() - self._start_time) * 1000
        self._state = BatchState.COMPLETED

        results = self._collector.finalize()
        statistics = self._aggregator.aggregate(results, self._total_runtime_ms)
        self._state = BatchState.AGGREGATED

        return BatchReport(
            results=results,
            statistics=statistics,
            concurrency=self.concurrency,
        )

    async def _score_row(self, index: int) -> RowResult:
        return await self._executor.execute(index, self._rows[index])

    def _record(self, result: RowResult) -> None:
        # running stats first so progress observers see them include this row
        self._running.add(result)
        self._collector.collect(result)

    def _handle_progress(self, snapshot: list[RowResult]) -> None:
        completed = len(snapshot)
        if self._enable_progress and (
            completed % PROGRESS_LOG_EVERY == 0 or completed == len(self._rows)
        ):
            logger.info(
                "Progress: %d/%d (%.1f%%)",
                completed,
                len(self._rows),
                100 * completed / len(self._rows),
            )
        if self._on_progress is not None:
            self._on_progress(snapshot)

    def _elapsed_ms(self) -> float:
        if self._total_runtime_ms is not None:
            return self._total_runtime_ms
        if self._start_time is None:
            return 0.0
        return (time.perf_counter() - self._start_time) * 1000


class BatchRunner:
    """
    Concurrent batch scorer.

    Example:
        >>> runner = BatchRunner(endpoint, concurrency=10)
        >>> report = await runner.run_batch(rows)
        >>> print(f"{report.statistics.success_rate_percent:.1f}% succeeded")

    Production Usage:
        >>> async with BatchRunner(
        ...     MasStepEndpoint(client, "mymodule", "score"),
        ...     concurrency=20,
        ...     rate_limiter=AsyncRateLimiter(requests_per_minute=600, burst_size=20),
        ...     timeout_per_request=30.0,
        ... ) as runner:
        ...     report = await runner.run_batch(rows)
    """

    def __init__(
        self,
        endpoint: EndpointLike,
        concurrency: int = 2,
        timeout_per_request: float | None = None,
        rate_limiter: AsyncRateLimiter | None = None,
        enable_progress: bool = True,
        tracker: MlflowLogger | None = None,
    ) -> None:
        """
        Initialize the batch runner.

        Args:
            endpoint: ScoringEndpoint or coroutine function scoring one row
            concurrency: Default number of concurrent requests per batch
            timeout_per_request: Timeout in seconds per endpoint call
            rate_limiter: Optional limiter shared by all workers
            enable_progress: Enable progress logging
            tracker: Optional MlflowLogger receiving batch statistics

        Raises:
            InvalidBatchError: If ``concurrency`` < 1
        """
        validate_concurrency(concurrency)
        self._concurrency = concurrency
        self._executor = RowExecutor(
            endpoint,
            rate_limiter=rate_limiter,
            timeout_per_request=timeout_per_request,
        )
        self._enable_progress = enable_progress
        self._tracker = tracker
        self._last_job: BatchJob | None = None

        logger.info(
            "BatchRunner initialized: concurrency=%d, timeout=%s, rate_limited=%s",
            concurrency,
            timeout_per_request,
            rate_limiter is not None,
        )

    @classmethod
    def from_config(
        cls,
        config: RunnerConfig,
        endpoint: EndpointLike,
        tracker: MlflowLogger | None = None,
    ) -> "BatchRunner":
        return cls(
            endpoint,
            concurrency=config.concurrency,
            timeout_per_request=config.timeout_per_request,
            rate_limiter=create_rate_limiter(config.requests_per_minute, config.burst_size),
            tracker=tracker,
        )

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def last_job(self) -> BatchJob | None:
        """The most recently started batch, for progress inspection."""
        return self._last_job

    def create_job(
        self,
        rows: Sequence[Row],
        concurrency: int | None = None,
        on_progress: ProgressHook | None = None,
    ) -> BatchJob:
        return BatchJob(
            rows,
            concurrency if concurrency is not None else self._concurrency,
            self._executor,
            on_progress=on_progress,
            enable_progress=self._enable_progress,
        )

    async def run_batch(
        self,
        rows: Sequence[Row],
        concurrency: int | None = None,
        on_progress: ProgressHook | None = None,
    ) -> BatchReport:
        """
        Score a batch of rows.

        Args:
            rows: Rows to score
            concurrency: Override the runner's default concurrency
            on_progress: Optional hook called with the ordered partial
                results after every completed row

        Returns:
            BatchReport with results ordered by row index and statistics

        Raises:
            InvalidBatchError: If ``rows`` is empty or ``concurrency`` < 1
        """
        job = self.create_job(rows, concurrency=concurrency, on_progress=on_progress)
        self._last_job = job

        logger.info(
            "Starting batch: %d rows, %d concurrent",
            job.row_count,
            job.concurrency,
        )
        report = await job.run()
        stats = report.statistics

        logger.info(
            "Batch complete: %d/%d success (%.1f%%), %s total, %s avg, %s median",
            stats.success_count,
            stats.total_requests,
            stats.success_rate_percent,
            format_duration(stats.total_runtime_ms),
            format_duration(stats.avg_request_time_ms),
            format_duration(stats.median_response_ms),
        )

        if self._tracker is not None:
            self._tracker.log_batch(
                stats,
                params={"rows": job.row_count, "concurrency": report.concurrency},
            )
        return report

    async def run_single(self, row: Row) -> RowResult:
        """Score one row outside of any batch (row index 0)."""
        return await self._executor.execute(0, MappingProxyType(dict(row)))

    async def aclose(self) -> None:
        """Release endpoint resources, if the endpoint holds any."""
        close = getattr(self._executor.endpoint, "aclose", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "BatchRunner":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit - cleanup resources."""
        await self.aclose()


def run_batch_sync(
    endpoint: EndpointLike,
    rows: Sequence[Row],
    concurrency: int = 2,
    **kwargs: Any,
) -> BatchReport:
    """
    Synchronous wrapper for batch scoring.

    Args:
        endpoint: ScoringEndpoint or coroutine function scoring one row
        rows: Rows to score
        concurrency: Maximum concurrent requests
        **kwargs: Passed through to BatchRunner

    Returns:
        BatchReport with all results

    Example:
        >>> from batchscore.parallel import run_batch_sync
        >>> report = run_batch_sync(endpoint, rows, concurrency=4)
    """

    async def _run() -> BatchReport:
        async with BatchRunner(endpoint, concurrency=concurrency, **kwargs) as runner:
            return await runner.run_batch(rows)

    return asyncio.run(_run())
