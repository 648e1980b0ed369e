"""Paginated static listing (e.g. Shufersal's UpdateCategory pages)."""
import logging

from pricefeed.chains.base import Discoverer, DiscoveryKind
from pricefeed.fetch.endpoints import shufersal_listing_url
from pricefeed.parse.links import extract_links, filter_links

logger = logging.getLogger(__name__)


class ListingDiscoverer(Discoverer):
    """Walks listing pages until one yields no matching links or max_pages."""

    kind = DiscoveryKind.LISTING

    def page_url(self, page: int) -> str:
        return shufersal_listing_url(page, self.chain.listing_category, self.chain.base_url)

    async def _discover(self) -> list[str]:
        found: list[str] = []
        seen: set[str] = set()

        for page in range(1, self.max_pages + 1):
            url = self.page_url(page)
            html = await self.client.get_text(url)
            links = filter_links(extract_links(html, url), self.chain.allow, self.chain.deny)
            fresh = [link for link in links if link not in seen]
            logger.info(f"[DISCOVER] {self.chain.name} page {page}: {len(links)} links ({len(fresh)} new)")

            if not fresh:
                break

            seen.update(fresh)
            found.extend(fresh)
        else:
            logger.info(f"[DISCOVER] {self.chain.name}: stopped at max_pages={self.max_pages}")

        return found
