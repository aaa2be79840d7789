"""Exception hierarchy for batchscore.

Row-level scoring failures are captured into ``RowResult.error`` and never
leave the worker pool. Everything else defined here propagates to the caller.
"""

from __future__ import annotations


class BatchScoreError(Exception):
    """Base class for all batchscore errors."""


class InvalidBatchError(BatchScoreError, ValueError):
    """Batch arguments rejected before any work started."""


class InvalidStateError(BatchScoreError, RuntimeError):
    """Operation not allowed in the batch's current state."""


class ConsistencyError(BatchScoreError, AssertionError):
    """Internal bookkeeping violated (duplicate or missing row results)."""


class ConfigError(BatchScoreError, ValueError):
    """Invalid runner configuration."""


class ScoringError(BatchScoreError):
    """The scoring endpoint failed for a single row."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(ScoringError):
    """The scoring endpoint answered with an unusable payload."""
