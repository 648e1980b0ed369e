"""Shared fixtures: local storage, catalog payloads and a fake browser portal."""
import asyncio
import gzip
from contextlib import asynccontextmanager

import pytest

from pricefeed.chains import browser
from pricefeed.store.blob import LocalBlobStore
from pricefeed.store.sqlite_store import SQLiteStore


def catalog_xml(items: list[dict], store_id: str = "5", root_tag: str = "root") -> bytes:
    """Vendor-style PriceFull document."""
    rows = []
    for item in items:
        fields = "".join(f"<{k}>{v}</{k}>" for k, v in item.items())
        rows.append(f"<Item>{fields}</Item>")
    store = f"<StoreId>{store_id}</StoreId>" if store_id is not None else ""
    xml = (
        '<?xml version="1.0" encoding="utf-8"?>'
        f"<{root_tag}><ChainId>7290027600007</ChainId><SubChainId>001</SubChainId>"
        f"{store}<BikoretNo>4</BikoretNo>"
        f'<Items Count="{len(rows)}">{"".join(rows)}</Items></{root_tag}>'
    )
    return xml.encode("utf-8")


def catalog_gz(items: list[dict], **kwargs) -> bytes:
    return gzip.compress(catalog_xml(items, **kwargs))


SAMPLE_ITEMS = [
    {
        "ItemCode": "7290000000011",
        "ItemName": "חלב 3% 1 ליטר",
        "ItemPrice": "6.90",
        "Quantity": "1.00",
        "UnitOfMeasure": "ליטר",
        "PriceUpdateDate": "2026-01-14 05:01:00",
        "bIsWeighted": "0",
        "QtyInPackage": "1",
    },
    {
        "ItemCode": "1234",
        "ItemName": "Bread  (sliced)",
        "ItemPrice": "9.5",
        "PriceUpdateDate": "2026-01-14 06:00:00",
        "bIsWeighted": "1",
    },
]


@pytest.fixture
def store(tmp_path):
    db = SQLiteStore(tmp_path / "pricefeed.db")
    asyncio.run(db.initialize())
    return db


@pytest.fixture
def blobs(tmp_path):
    return LocalBlobStore(tmp_path / "blobs", overwrite=False)


@pytest.fixture
def sample_gz():
    return catalog_gz(SAMPLE_ITEMS)


PORTAL = "https://url.publishedprices.co.il"
PORTAL_FILE = f"{PORTAL}/file/d/PriceFull7290803800003-016-202601140010.gz"
PORTAL_HREFS = [
    PORTAL_FILE,
    f"{PORTAL}/file/d/Promo7290803800003-016-202601140010.gz",
    f"{PORTAL}/file/d/Stores7290803800003-202601140010.xml",
    f"{PORTAL}/logout",
    PORTAL_FILE,
]
PORTAL_COOKIES = [{"name": "cftpSID", "value": "sess-1", "domain": "url.publishedprices.co.il", "path": "/"}]


class FakeMouse:
    def __init__(self, page):
        self.page = page

    async def wheel(self, delta_x, delta_y):
        self.page.events.append("scroll")


class FakeInput:
    def __init__(self, page, field):
        self.page = page
        self.field = field

    async def fill(self, value):
        self.page.filled[self.field] = value


class FakePage:
    """Just enough of a playwright Page for the publishedprices flow."""

    def __init__(self, portal):
        self.portal = portal
        self.url = "about:blank"
        self.events: list[str] = []
        self.filled: dict[str, str] = {}
        self.mouse = FakeMouse(self)

    async def goto(self, url, wait_until=None):
        self.events.append(f"goto {url}")
        self.url = url if self.portal.logged_in and url != f"{PORTAL}/" else f"{PORTAL}/login"

    async def fill(self, selector, value):
        self.filled["username"] = value

    async def query_selector(self, selector):
        return FakeInput(self, "password")

    @asynccontextmanager
    async def expect_navigation(self, wait_until=None):
        yield

    async def click(self, selector):
        self.events.append("submit")
        if self.portal.accept_login:
            self.portal.logged_in = True
            self.url = f"{PORTAL}/file"

    async def wait_for_timeout(self, ms):
        return None

    async def eval_on_selector_all(self, selector, script):
        self.events.append("enumerate")
        return list(self.portal.hrefs)


class FakeContext:
    def __init__(self, portal):
        self.portal = portal

    async def new_page(self):
        self.portal.page = FakePage(self.portal)
        return self.portal.page

    async def cookies(self):
        return list(self.portal.cookies) if self.portal.logged_in else []


class FakeBrowser:
    def __init__(self, portal):
        self.portal = portal
        self.closed = False

    async def new_context(self, **kwargs):
        self.portal.context_options = kwargs
        return FakeContext(self.portal)

    async def close(self):
        self.closed = True


class FakePortal:
    """Stands in for ``async_playwright()`` and records what the browser did."""

    def __init__(self, hrefs=PORTAL_HREFS, cookies=PORTAL_COOKIES, accept_login=True):
        self.hrefs = hrefs
        self.cookies = cookies
        self.accept_login = accept_login
        self.logged_in = False
        self.page = None
        self.browser = None
        self.context_options: dict = {}
        self.chromium = self

    def __call__(self):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def launch(self, headless=True):
        self.browser = FakeBrowser(self)
        return self.browser


@pytest.fixture
def portal(monkeypatch):
    fake = FakePortal()
    monkeypatch.setattr(browser, "async_playwright", fake)
    return fake
