"""Interactive login in a headless browser, then DOM link enumeration.

Used for portals (publishedprices) that only serve the file listing and
the files themselves to a logged-in session. The browser's cookies are
handed to the run's CatalogSession so downloads stay non-interactive.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import (
    Page,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from pricefeed.chains.base import Discoverer, DiscoveryKind
from pricefeed.config import config
from pricefeed.errors import DiscoveryError
from pricefeed.fetch.endpoints import published_prices_listing_url, published_prices_login_url
from pricefeed.parse.links import filter_links

logger = logging.getLogger(__name__)

USERNAME_SELECTOR = 'input[name="username"], input[type="text"]'
PASSWORD_SELECTOR = 'input[name="password"], input[type="password"]'
SUBMIT_SELECTOR = 'button[type="submit"], input[type="submit"]'


class BrowserDiscoverer(Discoverer):
    """Logs in with playwright, scrolls the listing, collects anchors."""

    kind = DiscoveryKind.BROWSER
    scroll_rounds = 6
    scroll_pause_ms = 300

    @asynccontextmanager
    async def logged_in_page(self) -> AsyncIterator[Page]:
        """Page of a freshly logged-in browser context.

        On a clean exit the context's cookies are imported into the run's
        CatalogSession before the browser is closed.
        """
        username, password = self.chain.credentials()
        if not username:
            raise DiscoveryError(f"{self.chain.name}: browser login requires a username")

        async with async_playwright() as playwright:
            browser = await playwright.chromium.launch(headless=config.BROWSER_HEADLESS)
            try:
                context = await browser.new_context(
                    ignore_https_errors=not self.chain.verify_tls,
                    user_agent=config.USER_AGENT,
                    locale="he-IL",
                )
                page = await context.new_page()
                await self.login(page, username, password)
                yield page
                self.client.session.import_cookies(await context.cookies())
            finally:
                await browser.close()

    async def authenticate(self) -> None:
        """Login only, for runs whose URLs come from a seed list."""
        async with self.logged_in_page():
            logger.info(f"[AUTH] {self.chain.name}: browser session established")

    async def _discover(self) -> list[str]:
        async with self.logged_in_page() as page:
            await page.goto(published_prices_listing_url(self.chain.base_url), wait_until="domcontentloaded")
            await self.load_more(page)
            hrefs = await page.eval_on_selector_all("a[href]", "els => els.map(a => a.href)")

        logger.debug(f"[DISCOVER] {self.chain.name}: {len(hrefs)} anchors on listing page")
        return filter_links(hrefs, self.chain.allow, self.chain.deny)

    async def login(self, page: Page, username: str, password: str) -> None:
        logger.info(f"Logging in to {self.chain.base_url} as {username}...")
        await page.goto(published_prices_login_url(self.chain.base_url), wait_until="domcontentloaded")
        await page.fill(USERNAME_SELECTOR, username)

        password_input = await page.query_selector(PASSWORD_SELECTOR)
        if password_input:
            await password_input.fill(password)

        try:
            async with page.expect_navigation(wait_until="domcontentloaded"):
                await page.click(SUBMIT_SELECTOR)
        except PlaywrightTimeoutError:
            logger.warning(f"{self.chain.name}: no navigation after login submit, continuing")

        if "login" in page.url.lower():
            raise DiscoveryError(f"{self.chain.name}: still on login page after submit ({page.url})")

    async def load_more(self, page: Page) -> None:
        """Scroll so lazily loaded rows are in the DOM before enumeration."""
        for _ in range(self.scroll_rounds):
            await page.mouse.wheel(0, 2000)
            await page.wait_for_timeout(self.scroll_pause_ms)
