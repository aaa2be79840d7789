"""
Async Rate Limiter for batchscore.

Implements a token-bucket limit on endpoint calls. One limiter is shared by
every worker of a runner, so the scoring service sees at most
``requests_per_minute`` calls regardless of the batch concurrency, with
short bursts of up to ``burst_size`` calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class RateLimitStats:
    """Statistics for rate limiter monitoring.

    Attributes:
        total_requests: Total number of tokens handed out
        throttled_count: Number of times a caller had to wait
        last_request_time: Timestamp of last request
    """

    total_requests: int = 0
    throttled_count: int = 0
    last_request_time: float = 0.0


class AsyncRateLimiter:
    """
    Async token-bucket rate limiter.

    Example:
        >>> limiter = AsyncRateLimiter(requests_per_minute=600, burst_size=10)
        >>> async with limiter:
        ...     output = await endpoint.score(row)
    """

    def __init__(self, requests_per_minute: int, burst_size: int = 1) -> None:
        """
        Initialize the async rate limiter.

        Args:
            requests_per_minute: Maximum calls per minute
            burst_size: Maximum tokens in the bucket

        Raises:
            ValueError: If either limit is not positive
        """
        if requests_per_minute <= 0:
            raise ValueError(f"requests_per_minute must be positive, got {requests_per_minute}")
        if burst_size <= 0:
            raise ValueError(f"burst_size must be positive, got {burst_size}")

        self._requests_per_minute = requests_per_minute
        self._tokens = float(burst_size)
        self._max_tokens = float(burst_size)
        self._refill_rate = requests_per_minute / 60.0  # tokens per second
        self._last_refill = time.monotonic()

        self._lock = asyncio.Lock()
        self._stats = RateLimitStats()

        logger.info(
            "AsyncRateLimiter initialized: %d RPM, burst=%d",
            requests_per_minute,
            burst_size,
        )

    @property
    def requests_per_minute(self) -> int:
        return self._requests_per_minute

    @property
    def stats(self) -> RateLimitStats:
        """Get current rate limiter statistics."""
        return self._stats

    async def acquire(self) -> None:
        """
        Wait until a call is allowed.

        Raises:
            asyncio.CancelledError: If wait is cancelled
        """
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_refill
            self._tokens = min(
                self._max_tokens,
                self._tokens + elapsed * self._refill_rate,
            )
            self._last_refill = now

            if self._tokens >= 1:
                self._tokens -= 1
                self._record_request()
                return

            wait_time = (1 - self._tokens) / self._refill_rate
            self._stats.throttled_count += 1
            logger.debug(
                "Rate limit throttle: waiting %.2fs (tokens=%.2f)",
                wait_time,
                self._tokens,
            )

            # Sleeping under the lock queues the other workers behind this one
            await asyncio.sleep(wait_time)

            self._tokens = 0
            self._last_refill = time.monotonic()
            self._record_request()

    def _record_request(self) -> None:
        self._stats.total_requests += 1
        self._stats.last_request_time = time.time()

    async def __aenter__(self) -> "AsyncRateLimiter":
        """Context manager entry - acquires rate limit token."""
        await self.acquire()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Context manager exit."""
        pass

    def reset_stats(self) -> None:
        """Reset statistics counters."""
        self._stats = RateLimitStats()


def create_rate_limiter(
    requests_per_minute: int | None,
    burst_size: int | None = None,
) -> AsyncRateLimiter | None:
    """
    Create a limiter from configuration values.

    Args:
        requests_per_minute: Maximum calls per minute, or None for no limit
        burst_size: Bucket size (default: a tenth of the RPM, 1 to 100)

    Returns:
        Configured AsyncRateLimiter, or None when unlimited
    """
    if requests_per_minute is None:
        return None
    if burst_size is None:
        burst_size = max(1, min(100, requests_per_minute // 10))
    return AsyncRateLimiter(requests_per_minute=requests_per_minute, burst_size=burst_size)
