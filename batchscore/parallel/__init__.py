"""
batchscore Parallel Processing Module.

Bounded-concurrency execution of a batch of independent rows against a
rate-limited scoring endpoint.

Key Components:
    - BatchRunner: Entry point, one BatchJob per batch
    - WorkerPool: Work-stealing asyncio workers over a shared cursor
    - RowExecutor: Times one endpoint call and captures its failure
    - ResultCollector: Restores row order for live and final results
    - StatisticsAggregator: Batch timing and success metrics
    - AsyncRateLimiter: Token-bucket limit on endpoint calls

Example:
    >>> from batchscore.parallel import BatchRunner
    >>> runner = BatchRunner(endpoint, concurrency=4)
    >>> report = await runner.run_batch(rows)
"""

from .collector import ResultCollector
from .rate_limiter import AsyncRateLimiter, create_rate_limiter
from .row_executor import RowExecutor
from .runner import BatchJob, BatchRunner, run_batch_sync
from .statistics import RunningStatistics, StatisticsAggregator, median
from .worker_pool import WorkCursor, WorkerPool

__all__ = [
    "BatchJob",
    "BatchRunner",
    "run_batch_sync",
    "WorkerPool",
    "WorkCursor",
    "RowExecutor",
    "ResultCollector",
    "StatisticsAggregator",
    "RunningStatistics",
    "median",
    "AsyncRateLimiter",
    "create_rate_limiter",
]
