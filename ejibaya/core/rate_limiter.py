"""Rate limiting for requests against remote hosts.

Keeps a minimum delay between consecutive requests to the same host so that
asset downloads during backups do not hammer the storage bucket.
"""

from __future__ import annotations

import asyncio
import logging
import time
import urllib.parse
from typing import Dict

logger = logging.getLogger(__name__)


class RateLimiter:
    """Minimum-interval rate limiter keyed by host.

    Example:
        >>> limiter = RateLimiter(delay_seconds=0.5)
        >>> await limiter.acquire("https://cdn.example.com/a.jpg")  # no wait
        >>> await limiter.acquire("https://cdn.example.com/b.jpg")  # waits 0.5s
    """

    def __init__(self, delay_seconds: float = 0.0):
        """Initialize rate limiter.

        Args:
            delay_seconds: Minimum delay between requests to the same host
        """
        self.delay = delay_seconds
        self.last_request: Dict[str, float] = {}
        self.lock = asyncio.Lock()

    async def acquire(self, url_or_host: str) -> None:
        """Wait until the host of ``url_or_host`` may be contacted again."""
        if self.delay <= 0:
            return

        host = self.get_host(url_or_host)
        async with self.lock:
            now = time.monotonic()
            last = self.last_request.get(host)
            if last is not None:
                elapsed = now - last
                if elapsed < self.delay:
                    wait = self.delay - elapsed
                    logger.debug(f"Rate limiting {host}: waiting {wait:.2f}s")
                    await asyncio.sleep(wait)

            self.last_request[host] = time.monotonic()

    @staticmethod
    def get_host(url_or_host: str) -> str:
        """Extract the host (netloc) from a URL; bare hosts pass through.

        Example:
            >>> RateLimiter.get_host("https://sub.example.com:8080/page")
            'sub.example.com:8080'
        """
        parsed = urllib.parse.urlparse(url_or_host)
        return parsed.netloc or url_or_host

    def reset(self, url_or_host: str) -> None:
        """Forget the last request time for a host."""
        self.last_request.pop(self.get_host(url_or_host), None)
