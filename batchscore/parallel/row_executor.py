"""
Row Executor for batchscore.

Wraps one call to the scoring endpoint with timing and failure capture and
normalizes the outcome into a RowResult. A failing row never raises out of
``execute``; the worker pool relies on that to keep the batch going.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from ..scoring.endpoint import EndpointLike, as_endpoint
from ..types import Row, RowResult
from .rate_limiter import AsyncRateLimiter

logger = logging.getLogger(__name__)

EMPTY_RESPONSE_ERROR = "Empty response from scoring endpoint"


def describe_failure(exc: BaseException) -> str:
    """Caller-facing message for a failed endpoint call."""
    message = str(exc).strip()
    return message or type(exc).__name__


class RowExecutor:
    """
    Scores single rows against an endpoint.

    Example:
        >>> executor = RowExecutor(endpoint, timeout_per_request=30.0)
        >>> result = await executor.execute(0, {"x": 1})
        >>> result.success
        True
    """

    def __init__(
        self,
        endpoint: EndpointLike,
        rate_limiter: AsyncRateLimiter | None = None,
        timeout_per_request: float | None = None,
    ) -> None:
        """
        Initialize the row executor.

        Args:
            endpoint: ScoringEndpoint or coroutine function ``(row) -> output``
            rate_limiter: Optional limiter shared by every worker
            timeout_per_request: Timeout in seconds per endpoint call
        """
        self._endpoint = as_endpoint(endpoint)
        self._rate_limiter = rate_limiter
        self._timeout = timeout_per_request

    @property
    def endpoint(self) -> Any:
        return self._endpoint

    async def execute(self, row_index: int, row: Row) -> RowResult:
        """
        Score one row and capture the outcome.

        Time spent waiting on the rate limiter is not part of
        ``execution_time_ms``.
        """
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()

        start_time = time.perf_counter()
        try:
            if self._timeout is not None:
                output = await asyncio.wait_for(
                    self._endpoint.score(row), timeout=self._timeout
                )
            else:
                output = await self._endpoint.score(row)
            latency_ms = (time.perf_counter() - start_time) * 1000
        except asyncio.TimeoutError as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.warning("Row %d timed out after %.1fs", row_index, latency_ms / 1000)
            # the endpoint itself may raise TimeoutError when no timeout is set
            error = (
                f"Timeout after {self._timeout}s"
                if self._timeout is not None
                else describe_failure(e)
            )
            return RowResult(
                row_index=row_index,
                input=row,
                error=error,
                execution_time_ms=latency_ms,
            )
        except Exception as e:
            latency_ms = (time.perf_counter() - start_time) * 1000
            logger.warning("Row %d failed: %s", row_index, str(e)[:200])
            return RowResult(
                row_index=row_index,
                input=row,
                error=describe_failure(e),
                execution_time_ms=latency_ms,
            )

        if output is None:
            logger.warning("Row %d failed: %s", row_index, EMPTY_RESPONSE_ERROR)
            return RowResult(
                row_index=row_index,
                input=row,
                error=EMPTY_RESPONSE_ERROR,
                execution_time_ms=latency_ms,
            )

        return RowResult(
            row_index=row_index,
            input=row,
            output=output,
            execution_time_ms=latency_ms,
        )
