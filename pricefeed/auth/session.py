"""Per-run session: HTTP client, credentials and cookie state.

One CatalogSession is opened per chain run and passed explicitly to
discovery and download. Browser login imports its cookies here so the
non-interactive downloader reuses the authenticated session. The run
closes the session when it ends.
"""
import base64
import logging
from typing import Any, Iterable, Optional

import httpx

from pricefeed.config import config

logger = logging.getLogger(__name__)


def basic_auth_header(username: str, password: str) -> str:
    """HTTP basic credential header value."""
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class CatalogSession:
    """Owns the httpx client and authentication state for one chain run."""

    def __init__(
        self,
        chain: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_basic_auth: bool = False,
        verify: bool = True,
        http2: bool = config.HTTP2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = config.TIMEOUT,
    ):
        self.chain = chain
        self.username = username
        self.password = password or ""
        self.authenticated = False

        headers = {
            "User-Agent": config.USER_AGENT,
            "Accept-Language": config.ACCEPT_LANGUAGE,
        }
        if use_basic_auth and username:
            headers["Authorization"] = basic_auth_header(username, self.password)
            self.authenticated = True

        # Configure connection pool
        limits = httpx.Limits(
            max_connections=20,
            max_keepalive_connections=10,
        )

        self.client = httpx.AsyncClient(
            http2=http2,
            timeout=timeout,
            follow_redirects=True,
            headers=headers,
            limits=limits,
            verify=verify,
            transport=transport,
        )

    async def __aenter__(self) -> "CatalogSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
            logger.debug(f"Session for {self.chain} closed")

    def import_cookies(self, cookies: Iterable[dict[str, Any]]) -> int:
        """Load browser cookies (playwright format) into the client jar."""
        count = 0
        for cookie in cookies:
            name = cookie.get("name")
            if not name:
                continue
            self.client.cookies.set(
                name,
                cookie.get("value", ""),
                domain=cookie.get("domain") or "",
                path=cookie.get("path") or "/",
            )
            count += 1
        if count:
            self.authenticated = True
        logger.info(f"Imported {count} session cookies for {self.chain}")
        return count
