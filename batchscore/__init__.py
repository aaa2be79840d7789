"""Bounded-concurrency batch scoring against a remote endpoint."""

from .exceptions import (
    BatchScoreError,
    ConfigError,
    ConsistencyError,
    InvalidBatchError,
    InvalidStateError,
    MalformedResponseError,
    ScoringError,
)
from .parallel import BatchJob, BatchRunner, run_batch_sync
from .types import BatchReport, BatchState, BatchStatistics, Row, RowResult, StepOutput

__version__ = "0.1.0"

__all__ = [
    "BatchRunner",
    "BatchJob",
    "run_batch_sync",
    "Row",
    "RowResult",
    "StepOutput",
    "BatchStatistics",
    "BatchReport",
    "BatchState",
    "BatchScoreError",
    "InvalidBatchError",
    "InvalidStateError",
    "ConsistencyError",
    "ConfigError",
    "ScoringError",
    "MalformedResponseError",
]
