"""Unit tests for rate limiter module.

Tests per-host delay enforcement for asset downloads.
"""

import time

import pytest

from ejibaya.core.rate_limiter import RateLimiter


class TestRateLimiter:
    """Tests for the per-host RateLimiter."""

    @pytest.mark.asyncio
    async def test_first_request_no_delay(self):
        """First request to a host is immediate."""
        limiter = RateLimiter(delay_seconds=2.0)

        start = time.monotonic()
        await limiter.acquire("https://cdn.example.com/a.jpg")

        assert time.monotonic() - start < 0.1

    @pytest.mark.asyncio
    async def test_second_request_delayed(self):
        """Second request to the same host waits for the delay."""
        limiter = RateLimiter(delay_seconds=0.2)

        await limiter.acquire("https://cdn.example.com/a.jpg")
        start = time.monotonic()
        await limiter.acquire("https://cdn.example.com/b.jpg")

        assert time.monotonic() - start >= 0.15

    @pytest.mark.asyncio
    async def test_different_hosts_independent(self):
        """Hosts do not delay each other."""
        limiter = RateLimiter(delay_seconds=2.0)

        await limiter.acquire("https://cdn.example.com/a.jpg")
        start = time.monotonic()
        await limiter.acquire("https://other.example.com/a.jpg")

        assert time.monotonic() - start < 0.1

    @pytest.mark.asyncio
    async def test_zero_delay_is_noop(self):
        limiter = RateLimiter()

        await limiter.acquire("https://cdn.example.com/a.jpg")
        await limiter.acquire("https://cdn.example.com/a.jpg")

        assert limiter.last_request == {}

    @pytest.mark.asyncio
    async def test_reset(self):
        """Reset forgets the last request so the next one is immediate."""
        limiter = RateLimiter(delay_seconds=2.0)
        await limiter.acquire("https://cdn.example.com/a.jpg")

        limiter.reset("cdn.example.com")
        start = time.monotonic()
        await limiter.acquire("https://cdn.example.com/b.jpg")

        assert time.monotonic() - start < 0.1

    @pytest.mark.parametrize(
        "value,host",
        [
            ("https://sub.example.com:8080/page", "sub.example.com:8080"),
            ("http://example.com", "example.com"),
            ("example.com", "example.com"),
        ],
    )
    def test_get_host(self, value, host):
        assert RateLimiter.get_host(value) == host
