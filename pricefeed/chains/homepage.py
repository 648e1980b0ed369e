"""Authenticated landing-page scrape (basic credential header)."""
import logging

from pricefeed.chains.base import Discoverer, DiscoveryKind
from pricefeed.parse.links import extract_links, filter_links
from pricefeed.parse.redact import redact_string

logger = logging.getLogger(__name__)


class HomepageDiscoverer(Discoverer):
    """Fetches the portal homepage with the session's credential header."""

    kind = DiscoveryKind.HOMEPAGE

    async def _discover(self) -> list[str]:
        url = f"{self.chain.base_url}/"
        if "Authorization" not in self.client.session.client.headers:
            logger.warning(f"[DISCOVER] {self.chain.name}: no credential header on session")

        response = await self.client.get(url)
        if not response.is_success:
            logger.warning(
                f"[DISCOVER] {self.chain.name}: homepage returned HTTP {response.status_code} "
                f"({redact_string(str(response.url))})"
            )
            return []

        return filter_links(extract_links(response.text, str(response.url)), self.chain.allow, self.chain.deny)
