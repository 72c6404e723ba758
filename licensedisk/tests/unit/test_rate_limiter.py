"""
Unit tests for request throttling.
"""

import pytest
from fastapi import HTTPException, Request

from licensedisk.core import security
from licensedisk.core.security import RateLimiter, check_rate_limit, throttle_key


class FakeClock:
    def __init__(self, start: float = 50.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


def make_request(business_id: str | None = "biz-001", host: str = "10.0.0.7") -> Request:
    headers = [(b"x-business-id", business_id.encode())] if business_id is not None else []
    return Request({"type": "http", "headers": headers, "client": (host, 51000)})


class TestRateLimiter:
    """Tests for the sliding window."""

    def test_blocks_when_window_full(self):
        limiter = RateLimiter(requests_per_window=2, window_seconds=10, clock=FakeClock())

        assert limiter.is_allowed("k")
        assert limiter.is_allowed("k")
        assert not limiter.is_allowed("k")

    def test_window_slides(self):
        clock = FakeClock()
        limiter = RateLimiter(requests_per_window=1, window_seconds=10, clock=clock)
        assert limiter.is_allowed("k")

        clock.now += 9.5
        assert not limiter.is_allowed("k")

        clock.now += 0.5
        assert limiter.is_allowed("k")

    def test_keys_are_independent(self):
        limiter = RateLimiter(requests_per_window=1, window_seconds=10, clock=FakeClock())

        assert limiter.is_allowed("biz-001:10.0.0.7")
        assert limiter.is_allowed("biz-002:10.0.0.7")

    def test_reset(self):
        limiter = RateLimiter(requests_per_window=1, window_seconds=10, clock=FakeClock())
        limiter.is_allowed("k")

        limiter.reset()

        assert limiter.is_allowed("k")


class TestThrottleKey:
    def test_combines_business_and_address(self):
        assert throttle_key(make_request()) == "biz-001:10.0.0.7"

    def test_missing_business(self):
        assert throttle_key(make_request(business_id=None)) == "-:10.0.0.7"


class TestCheckRateLimit:
    """Tests for the FastAPI dependency."""

    @pytest.mark.asyncio
    async def test_raises_429(self, monkeypatch: pytest.MonkeyPatch):
        limiter = RateLimiter(requests_per_window=1, window_seconds=30, clock=FakeClock())
        monkeypatch.setattr(security, "_rate_limiter", limiter)

        await check_rate_limit(make_request())
        with pytest.raises(HTTPException) as exc_info:
            await check_rate_limit(make_request())

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "30"
