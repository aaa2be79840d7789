"""
Worker Pool for batchscore.

Runs a fixed number of asyncio workers over a shared work cursor. Each
worker claims the next unclaimed row index, scores it, and goes back for
more until the cursor is exhausted, so workers that hit fast rows end up
handling more of the batch than workers stuck on slow ones.

Concurrency:
    - Workers are asyncio tasks on a single event loop, not threads
    - The cursor claim contains no await, so it is atomic on the loop
    - At most ``min(concurrency, row_count)`` rows are in flight at once
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from ..exceptions import InvalidBatchError
from ..types import RowResult

logger = logging.getLogger(__name__)

PerRowFn = Callable[[int], Awaitable[RowResult]]
ResultHook = Callable[[RowResult], None]


class WorkCursor:
    """Shared counter handing out row indices in ascending order."""

    def __init__(self, limit: int) -> None:
        self._limit = limit
        self._next = 0

    @property
    def claimed(self) -> int:
        return self._next

    def claim(self) -> int | None:
        """Claim the next row index, or None once every row is taken."""
        if self._next >= self._limit:
            return None
        index = self._next
        self._next += 1
        return index


@dataclass
class WorkerPoolStats:
    """Bookkeeping from the most recent run.

    Attributes:
        workers_spawned: Number of workers started
        rows_claimed: Number of row indices handed out
        claims_per_worker: Rows handled by each worker, by worker number
    """

    workers_spawned: int = 0
    rows_claimed: int = 0
    claims_per_worker: list[int] = field(default_factory=list)


def effective_concurrency(row_count: int, concurrency: int) -> int:
    """Number of workers to spawn for a batch."""
    return max(1, min(concurrency, row_count))


def validate_concurrency(concurrency: int) -> None:
    if isinstance(concurrency, bool) or not isinstance(concurrency, int):
        raise InvalidBatchError(
            f"concurrency must be an integer, got {type(concurrency).__name__}"
        )
    if concurrency < 1:
        raise InvalidBatchError(f"concurrency must be at least 1, got {concurrency}")


class WorkerPool:
    """
    Bounded pool of work-stealing asyncio workers.

    The pool knows nothing about rows; it hands indices to ``per_row`` and
    passes every returned result to ``on_result``. ``per_row`` is expected to
    turn row failures into results instead of raising.

    Example:
        >>> pool = WorkerPool()
        >>> results = await pool.run(len(rows), 4, score_row, collector.collect)
    """

    def __init__(self) -> None:
        self._stats = WorkerPoolStats()

    @property
    def stats(self) -> WorkerPoolStats:
        """Get statistics for the most recent run."""
        return self._stats

    async def run(
        self,
        row_count: int,
        concurrency: int,
        per_row: PerRowFn,
        on_result: ResultHook | None = None,
    ) -> list[RowResult]:
        """
        Process every index in ``range(row_count)``.

        Args:
            row_count: Number of rows in the batch
            concurrency: Requested number of concurrent workers
            per_row: Coroutine function scoring one row index
            on_result: Optional hook called with each result as it completes

        Returns:
            Results in completion order

        Raises:
            InvalidBatchError: If the arguments are invalid
        """
        validate_concurrency(concurrency)
        if row_count < 0:
            raise InvalidBatchError(f"row_count must not be negative, got {row_count}")

        self._stats = WorkerPoolStats()
        if row_count == 0:
            return []

        worker_count = effective_concurrency(row_count, concurrency)
        cursor = WorkCursor(row_count)
        completed: list[RowResult] = []
        self._stats.workers_spawned = worker_count
        self._stats.claims_per_worker = [0] * worker_count

        async def worker(worker_id: int) -> None:
            logger.debug("Worker %d started", worker_id)
            while True:
                index = cursor.claim()
                if index is None:
                    break
                self._stats.claims_per_worker[worker_id] += 1
                result = await per_row(index)
                completed.append(result)
                if on_result is not None:
                    on_result(result)
            logger.debug(
                "Worker %d finished after %d rows",
                worker_id,
                self._stats.claims_per_worker[worker_id],
            )

        tasks = [
            asyncio.ensure_future(worker(worker_id)) for worker_id in range(worker_count)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        finally:
            self._stats.rows_claimed = cursor.claimed

        logger.info(
            "Worker pool finished: %d rows, %d workers",
            len(completed),
            worker_count,
        )
        return completed
