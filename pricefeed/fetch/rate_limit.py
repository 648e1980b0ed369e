"""Per-host politeness: request spacing and concurrency caps."""
import asyncio
import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def host_of(url: str) -> str:
    """Extract scheme://host from URL."""
    parsed = urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"


class RateLimiter:
    """Rate limiter that tracks requests per host."""

    def __init__(self, rate_per_second: float):
        self.rate_per_second = rate_per_second
        self.min_interval = 1.0 / rate_per_second if rate_per_second > 0 else 0
        self._last_request: Dict[str, float] = defaultdict(lambda: 0.0)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def acquire(self, url: str) -> None:
        """Wait if necessary to respect rate limit."""
        if not self.min_interval:
            return
        host = host_of(url)
        async with self._locks[host]:
            last = self._last_request[host]
            now = time.monotonic()
            elapsed = now - last

            if elapsed < self.min_interval:
                wait_time = self.min_interval - elapsed
                await asyncio.sleep(wait_time)

            self._last_request[host] = time.monotonic()


class HostLimiter:
    """Caps in-flight requests per host."""

    def __init__(self, per_host: int):
        self.per_host = max(1, per_host)
        self._semaphores: Dict[str, asyncio.Semaphore] = {}

    @asynccontextmanager
    async def slot(self, url: str) -> AsyncIterator[None]:
        host = host_of(url)
        semaphore = self._semaphores.get(host)
        if semaphore is None:
            semaphore = self._semaphores[host] = asyncio.Semaphore(self.per_host)
        async with semaphore:
            yield
