"""Registered chains and strategy selection."""
import logging
from typing import Optional

import httpx

from pricefeed.auth.session import CatalogSession
from pricefeed.chains.base import ChainSpec, Discoverer, DiscoveryKind, compile_patterns
from pricefeed.chains.browser import BrowserDiscoverer
from pricefeed.chains.homepage import HomepageDiscoverer
from pricefeed.chains.listing import ListingDiscoverer
from pricefeed.config import config
from pricefeed.fetch.client import FetchClient
from pricefeed.fetch.endpoints import PUBLISHED_PRICES_BASE, SHUFERSAL_BASE
from pricefeed.parse import filenames

logger = logging.getLogger(__name__)

SHUFERSAL = ChainSpec(
    name="shufersal",
    discovery=DiscoveryKind.LISTING,
    base_url=SHUFERSAL_BASE,
    grammars=(
        filenames.PRICE_LONG,
        filenames.PRICE_FULL_LONG,
        filenames.PRICE_SHORT,
        filenames.PRICE_FULL_SHORT,
    ),
    allow=compile_patterns(r"blob\.core\.windows\.net", r"\.gz(\?|$)", r"(/|^)PriceFull\d+"),
    deny=compile_patterns(r"(/|^)Promo\d+"),
    strip_query_in_key=True,
)

YOHANANOF = ChainSpec(
    name="yohananof",
    discovery=DiscoveryKind.BROWSER,
    base_url=PUBLISHED_PRICES_BASE,
    grammars=(
        filenames.PRICE_FULL_LONG,
        filenames.PRICE_FULL_SUB,
        filenames.PRICE_FULL_SHORT,
    ),
    allow=compile_patterns(r"\.gz(\?|$)", r"PriceFull\d+"),
    deny=compile_patterns(r"(/|^)Promo\d+"),
    default_username="yohananof",
    default_password="",
    verify_tls=False,
)

CHAINS: dict[str, ChainSpec] = {c.name: c for c in (SHUFERSAL, YOHANANOF)}

DISCOVERERS: dict[DiscoveryKind, type[Discoverer]] = {
    DiscoveryKind.LISTING: ListingDiscoverer,
    DiscoveryKind.HOMEPAGE: HomepageDiscoverer,
    DiscoveryKind.BROWSER: BrowserDiscoverer,
}


def get_chain(name: str) -> ChainSpec:
    try:
        return CHAINS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"Unknown chain {name!r} (known: {', '.join(sorted(CHAINS))})") from None


def make_discoverer(
    chain: ChainSpec,
    client: FetchClient,
    kind: Optional[DiscoveryKind] = None,
    max_pages: int = config.MAX_PAGES,
) -> Discoverer:
    kind = kind or chain.discovery_kind()
    return DISCOVERERS[kind](chain, client, max_pages=max_pages)


def open_session(
    chain: ChainSpec,
    kind: Optional[DiscoveryKind] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    http2: bool = config.HTTP2,
) -> CatalogSession:
    """Session configured for the chain's strategy (credential header for homepage scrape)."""
    kind = kind or chain.discovery_kind()
    username, password = chain.credentials()
    return CatalogSession(
        chain.name,
        username=username,
        password=password,
        use_basic_auth=kind == DiscoveryKind.HOMEPAGE,
        verify=chain.verify_tls,
        http2=http2,
        transport=transport,
    )
