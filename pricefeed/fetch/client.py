"""HTTP client with retries, rate limiting and per-host caps."""
import logging
from typing import Optional
import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from pricefeed.auth.session import CatalogSession
from pricefeed.config import config
from pricefeed.errors import TransportError
from pricefeed.fetch.rate_limit import HostLimiter, RateLimiter
from pricefeed.parse.redact import redact_string

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class RetryableStatus(Exception):
    """Transient HTTP status worth another attempt."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


class FetchClient:
    """Fetches URLs through a CatalogSession."""

    def __init__(
        self,
        session: CatalogSession,
        rate_per_domain: float = config.RATE_PER_DOMAIN,
        per_host: int = config.PER_HOST_CONCURRENCY,
    ):
        self.session = session
        self.rate_limiter = RateLimiter(rate_per_domain)
        self.host_limiter = HostLimiter(per_host)
        self.request_count = 0
        self.retry_count = 0

    async def get(self, url: str, headers: Optional[dict] = None) -> httpx.Response:
        """GET with retries on network errors and 429/5xx.

        Returns the final response whatever its status; raises
        TransportError when retries are exhausted.
        """
        try:
            return await self._get_with_retry(url, headers)
        except RetryableStatus as e:
            status = e.response.status_code
            raise TransportError(f"HTTP {status} after retries", status_code=status) from e
        except (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError) as e:
            raise TransportError(redact_string(f"{type(e).__name__}: {e}")) from e

    @retry(
        stop=stop_after_attempt(config.MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=2, max=30),
        retry=retry_if_exception_type(
            (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError, RetryableStatus)
        ),
        reraise=True,
    )
    async def _get_with_retry(self, url: str, headers: Optional[dict]) -> httpx.Response:
        await self.rate_limiter.acquire(url)
        async with self.host_limiter.slot(url):
            self.request_count += 1
            logger.debug(f"GET {redact_string(url)}")
            try:
                response = await self.session.client.get(url, headers=headers)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                self.retry_count += 1
                logger.warning(f"Network error for {redact_string(url)}: {e}")
                raise

        if response.status_code in RETRYABLE_STATUS:
            self.retry_count += 1
            logger.warning(f"Retryable status {response.status_code} for {redact_string(url)}")
            raise RetryableStatus(response)
        return response

    async def get_text(self, url: str) -> str:
        """GET a page and return its text; non-success is a TransportError."""
        response = await self.get(url)
        if not response.is_success:
            raise TransportError(f"HTTP {response.status_code} for {url}", status_code=response.status_code)
        return response.text
