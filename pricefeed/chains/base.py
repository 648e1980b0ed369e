"""Chain descriptions and the discovery strategy contract."""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pricefeed.config import Config, config
from pricefeed.fetch.client import FetchClient
from pricefeed.fetch.endpoints import strip_query
from pricefeed.parse.filenames import FilenameGrammar, resolve_from_response
from pricefeed.parse.links import dedupe

logger = logging.getLogger(__name__)


class DiscoveryKind(str, Enum):
    """Closed set of discovery strategies."""

    LISTING = "listing"
    HOMEPAGE = "homepage"
    BROWSER = "browser"


@dataclass(frozen=True)
class ChainSpec:
    """Everything chain-specific: where files are listed and how they are named."""

    name: str
    discovery: DiscoveryKind
    base_url: str
    grammars: tuple[FilenameGrammar, ...]
    allow: tuple[re.Pattern, ...]
    deny: tuple[re.Pattern, ...] = ()
    catalog_marker: str = "PriceFull"
    schema: str = "price_full/v1"
    default_username: Optional[str] = None
    default_password: str = ""
    strip_query_in_key: bool = False
    verify_tls: bool = True
    listing_category: int = 0

    def ledger_key(self, url: str) -> str:
        """Key under which a URL is recorded in the ledger."""
        return strip_query(url) if self.strip_query_in_key else url

    def discovery_kind(self) -> DiscoveryKind:
        """Registered strategy unless <CHAIN>_DISCOVERY overrides it."""
        override = Config.chain_setting(self.name, "DISCOVERY")
        if override:
            return DiscoveryKind(override.strip().lower())
        return self.discovery

    def credentials(self) -> tuple[Optional[str], str]:
        username = Config.chain_setting(self.name, "USERNAME", self.default_username)
        password = Config.chain_setting(self.name, "PASSWORD", self.default_password) or ""
        return username, password

    def resolve_store_id(
        self,
        declared_name: Optional[str],
        final_url: Optional[str],
        requested_url: Optional[str],
    ) -> Optional[str]:
        return resolve_from_response(self.grammars, declared_name, final_url, requested_url)

    def is_catalog_path(self, storage_path: Optional[str]) -> bool:
        return bool(storage_path) and self.catalog_marker.lower() in storage_path.lower()


def compile_patterns(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


class Discoverer(ABC):
    """Produces candidate catalog URLs for one chain on one run."""

    kind: DiscoveryKind

    def __init__(self, chain: ChainSpec, client: FetchClient, max_pages: int = config.MAX_PAGES):
        self.chain = chain
        self.client = client
        self.max_pages = max_pages

    async def authenticate(self) -> None:
        """Session state the downloader reuses (browser cookies); a no-op by default."""

    async def discover(self) -> list[str]:
        urls = dedupe(await self._discover())
        logger.info(f"[DISCOVER] {self.chain.name} ({self.kind.value}): {len(urls)} catalog links")
        return urls

    @abstractmethod
    async def _discover(self) -> list[str]:
        """Strategy-specific URL enumeration."""
