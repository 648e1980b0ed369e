"""Tests for chain discovery strategies (HTTP mocked)."""
import asyncio
import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from conftest import PORTAL, PORTAL_FILE
from pricefeed.auth import session as session_module
from pricefeed.auth.session import CatalogSession
from pricefeed.chains.base import DiscoveryKind
from pricefeed.chains.browser import BrowserDiscoverer
from pricefeed.chains.homepage import HomepageDiscoverer
from pricefeed.chains.listing import ListingDiscoverer
from pricefeed.chains.registry import SHUFERSAL, YOHANANOF, get_chain, make_discoverer, open_session
from pricefeed.errors import DiscoveryError
from pricefeed.fetch.client import FetchClient

BLOB = "https://pricesprodpublic.blob.core.windows.net/pricefull"


def blob_link(store: int) -> str:
    return f"{BLOB}/PriceFull7290027600007-001-{store:03d}-20260114-050100.gz?sv=2014&amp;sig=s{store}"


def listing_page(stores: list[int], promo: bool = True) -> str:
    anchors = [f'<a href="{blob_link(s)}">Download</a>' for s in stores]
    if promo:
        anchors.append(f'<a href="{BLOB}/Promo7290027600007-001-001-20260114-050100.gz?sig=p">Download</a>')
    return f"<html><body>{''.join(anchors)}</body></html>"


def run_listing(pages: dict[int, str], max_pages: int = 10) -> tuple[list[str], list[int]]:
    requested: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        page = int(parse_qs(urlparse(str(request.url)).query)["page"][0])
        requested.append(page)
        return httpx.Response(200, text=pages.get(page, "<html></html>"))

    async def go():
        async with CatalogSession("shufersal", transport=httpx.MockTransport(handler)) as session:
            client = FetchClient(session, rate_per_domain=0)
            return await ListingDiscoverer(SHUFERSAL, client, max_pages=max_pages).discover()

    return asyncio.run(go()), requested


def test_listing_stops_on_page_without_new_links():
    """Test paging stops when a page yields nothing new."""
    pages = {1: listing_page([1, 2]), 2: listing_page([3]), 3: listing_page([1, 2])}
    urls, requested = run_listing(pages)
    assert requested == [1, 2, 3]
    assert len(urls) == 3
    assert all("PriceFull" in u and "Promo" not in u for u in urls)


def test_listing_stops_on_empty_page():
    """Test an empty page ends pagination."""
    urls, requested = run_listing({1: listing_page([1])})
    assert requested == [1, 2]
    assert len(urls) == 1


def test_listing_respects_max_pages():
    """Test the page-count ceiling."""
    pages = {n: listing_page([n]) for n in range(1, 20)}
    urls, requested = run_listing(pages, max_pages=3)
    assert requested == [1, 2, 3]
    assert len(urls) == 3


def test_homepage_sends_credential_header():
    """Test basic credential header and relative link resolution."""
    seen_auth = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen_auth.append(request.headers.get("Authorization"))
        html = (
            '<a href="/file/d/PriceFull7290803800003-001-202601140501.gz">a</a>'
            '<a href="/file/d/Promo7290803800003-001-202601140501.gz">b</a>'
            '<a href="/file/d/PriceFull7290803800003-002-202601140501.gz">c</a>'
        )
        return httpx.Response(200, text=html)

    async def go():
        session = open_session(YOHANANOF, DiscoveryKind.HOMEPAGE, transport=httpx.MockTransport(handler))
        async with session:
            client = FetchClient(session, rate_per_domain=0)
            return await HomepageDiscoverer(YOHANANOF, client).discover()

    urls = asyncio.run(go())
    username, password = YOHANANOF.credentials()
    expected = "Basic " + base64.b64encode(f"{username}:{password}".encode()).decode()
    assert seen_auth == [expected]
    assert urls == [
        "https://url.publishedprices.co.il/file/d/PriceFull7290803800003-001-202601140501.gz",
        "https://url.publishedprices.co.il/file/d/PriceFull7290803800003-002-202601140501.gz",
    ]


def test_homepage_non_success_yields_nothing():
    """Test an error page produces no links."""

    async def go():
        transport = httpx.MockTransport(lambda request: httpx.Response(401, text="denied"))
        async with open_session(YOHANANOF, DiscoveryKind.HOMEPAGE, transport=transport) as session:
            return await HomepageDiscoverer(YOHANANOF, FetchClient(session, rate_per_domain=0)).discover()

    assert asyncio.run(go()) == []


def test_registry_selects_strategy():
    """Test chain lookup and strategy selection."""
    assert get_chain("Shufersal") is SHUFERSAL
    with pytest.raises(ValueError):
        get_chain("unknown")

    async def go():
        async with CatalogSession("yohananof", transport=httpx.MockTransport(lambda r: httpx.Response(200))) as s:
            client = FetchClient(s)
            return (
                type(make_discoverer(SHUFERSAL, client)).__name__,
                type(make_discoverer(YOHANANOF, client, DiscoveryKind.HOMEPAGE)).__name__,
            )

    assert asyncio.run(go()) == ("ListingDiscoverer", "HomepageDiscoverer")


def test_listing_session_has_no_credential_header():
    """Test credentials are only attached for the homepage strategy."""
    session = open_session(SHUFERSAL, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    try:
        assert "Authorization" not in session.client.headers
        assert session.client.headers["User-Agent"]
    finally:
        asyncio.run(session.close())


def run_browser(step: str = "discover"):
    async def go():
        async with open_session(YOHANANOF, transport=httpx.MockTransport(lambda r: httpx.Response(200))) as session:
            discoverer = BrowserDiscoverer(YOHANANOF, FetchClient(session, rate_per_domain=0))
            if step == "authenticate":
                await discoverer.authenticate()
                urls = None
            else:
                urls = await discoverer.discover()
            return urls, session.client.cookies.get("cftpSID"), session.authenticated

    return asyncio.run(go())


def test_browser_scrolls_then_filters_dom_links(portal):
    """Test listing load order and allow/deny filtering of anchors."""
    urls, _, _ = run_browser()

    assert urls == [PORTAL_FILE]
    events = portal.page.events
    listing = events.index(f"goto {PORTAL}/file")
    assert events[0] == f"goto {PORTAL}/"
    assert events.index("submit") < listing
    assert events[listing + 1:] == ["scroll"] * BrowserDiscoverer.scroll_rounds + ["enumerate"]
    assert portal.page.filled["username"] == YOHANANOF.credentials()[0]


def test_browser_cookies_reach_the_run_session(portal):
    """Test the logged-in browser cookies end up in the downloader's jar."""
    _, cookie, authenticated = run_browser()

    assert cookie == "sess-1"
    assert authenticated is True
    assert portal.browser.closed is True
    assert portal.context_options["ignore_https_errors"] is True


def test_browser_login_rejected_raises(portal):
    """Test staying on the login page is a discovery error."""
    portal.accept_login = False
    with pytest.raises(DiscoveryError, match="still on login page"):
        run_browser()
    assert portal.browser.closed is True
    assert "enumerate" not in portal.page.events


def test_browser_authenticate_skips_enumeration(portal):
    """Test session setup alone logs in and imports cookies."""
    _, cookie, _ = run_browser("authenticate")

    assert cookie == "sess-1"
    assert "enumerate" not in portal.page.events
    assert "scroll" not in portal.page.events


def test_browser_cookies_are_imported():
    """Test playwright-format cookies land in the client jar."""
    session = CatalogSession("yohananof", transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    try:
        count = session.import_cookies(
            [
                {"name": "cftpSID", "value": "abc", "domain": "url.publishedprices.co.il", "path": "/"},
                {"value": "orphan"},
            ]
        )
        assert count == 1
        assert session.authenticated is True
        assert [c.name for c in session.client.cookies.jar] == ["cftpSID"]
    finally:
        asyncio.run(session.close())


def test_session_http2_is_explicit(monkeypatch):
    """Test the http2 flag comes from the caller, not from the transport."""
    seen = []

    class Recorder:
        def __init__(self, **kwargs):
            seen.append(kwargs)

    monkeypatch.setattr(session_module.httpx, "AsyncClient", Recorder)
    CatalogSession("shufersal", http2=False)
    CatalogSession("shufersal", http2=True, transport=httpx.MockTransport(lambda r: httpx.Response(200)))
    open_session(SHUFERSAL, http2=False)

    assert [kwargs["http2"] for kwargs in seen] == [False, True, False]
