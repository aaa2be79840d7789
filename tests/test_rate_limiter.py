from __future__ import annotations

import time

import pytest

from batchscore.parallel.rate_limiter import AsyncRateLimiter, create_rate_limiter


class TestAsyncRateLimiter:
    """Tests for AsyncRateLimiter."""

    @pytest.mark.asyncio
    async def test_basic_acquire(self) -> None:
        """Test basic token acquisition."""
        limiter = AsyncRateLimiter(
            requests_per_minute=600,  # 10 per second
            burst_size=10,
        )

        start = time.time()
        await limiter.acquire()
        elapsed = time.time() - start

        assert elapsed < 0.1
        assert limiter.stats.total_requests == 1
        assert limiter.stats.throttled_count == 0

    @pytest.mark.asyncio
    async def test_rate_limiting(self) -> None:
        """Test that rate limiting actually delays requests."""
        limiter = AsyncRateLimiter(
            requests_per_minute=120,  # 2 per second
            burst_size=1,
        )

        await limiter.acquire()

        start = time.time()
        await limiter.acquire()
        elapsed = time.time() - start

        assert elapsed >= 0.4
        assert elapsed < 1.0
        assert limiter.stats.throttled_count == 1

    @pytest.mark.asyncio
    async def test_burst_handling(self) -> None:
        """Test burst token bucket allows burst traffic."""
        limiter = AsyncRateLimiter(
            requests_per_minute=60,
            burst_size=5,
        )

        start = time.time()
        for _ in range(5):
            await limiter.acquire()
        elapsed = time.time() - start

        assert elapsed < 0.5
        assert limiter.stats.total_requests == 5

    @pytest.mark.asyncio
    async def test_stats_reset(self) -> None:
        """Test statistics are tracked and reset."""
        limiter = AsyncRateLimiter(requests_per_minute=600, burst_size=10)

        for _ in range(3):
            await limiter.acquire()

        assert limiter.stats.total_requests == 3
        assert limiter.stats.last_request_time > 0

        limiter.reset_stats()
        assert limiter.stats.total_requests == 0

    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        """Test async context manager usage."""
        limiter = AsyncRateLimiter(requests_per_minute=600, burst_size=10)

        async with limiter:
            pass

        assert limiter.stats.total_requests == 1

    @pytest.mark.parametrize("rpm,burst", [(0, 1), (-5, 1), (60, 0)])
    def test_invalid_limits(self, rpm: int, burst: int) -> None:
        """Test non-positive limits are rejected."""
        with pytest.raises(ValueError):
            AsyncRateLimiter(requests_per_minute=rpm, burst_size=burst)


class TestCreateRateLimiter:
    """Tests for create_rate_limiter."""

    def test_unlimited(self) -> None:
        assert create_rate_limiter(None) is None

    def test_default_burst(self) -> None:
        limiter = create_rate_limiter(600)
        assert limiter is not None
        assert limiter.requests_per_minute == 600

    def test_small_rpm_gets_burst_of_one(self) -> None:
        limiter = create_rate_limiter(5)
        assert limiter is not None
