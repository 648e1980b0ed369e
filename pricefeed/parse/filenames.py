"""Resolve a store identifier from catalog file names.

Each chain publishes files under its own naming grammar, e.g.::

    PriceFull7290027600007-001-274-20260114-050100.gz   (chain-sub-store-date-time)
    PriceFull7290803800003-009-202601140501.gz          (chain-store-timestamp)

A chain declares an ordered tuple of grammars; the first match wins, so
longer (more specific) grammars must come first.
"""
import re
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import unquote, urlparse

STORE_ID_WIDTH = 3


@dataclass(frozen=True)
class FilenameGrammar:
    """One filename pattern with a ``store`` capture group."""

    name: str
    pattern: re.Pattern

    def match(self, name_or_url: str) -> Optional[str]:
        m = self.pattern.search(name_or_url)
        if not m:
            return None
        return normalize_store_id(m.group("store"))


def grammar(name: str, regex: str) -> FilenameGrammar:
    return FilenameGrammar(name=name, pattern=re.compile(regex, re.IGNORECASE))


# <prefix><chain>-<sub>-<store>-YYYYMMDD-HHMMSS.gz
PRICE_LONG = grammar("price_long", r"Price\d+-\d+-(?P<store>\d{1,4})-\d{8}-\d{6}\.gz")
PRICE_FULL_LONG = grammar("price_full_long", r"PriceFull\d+-\d+-(?P<store>\d{1,4})-\d{8}-\d{6}\.gz")
# <prefix><chain>-<sub>-<store>-YYYYMMDDHHMM.gz
PRICE_FULL_SUB = grammar("price_full_sub", r"PriceFull\d+-\d+-(?P<store>\d{1,4})-\d{12}\.gz")
# <prefix><chain>-<store>-YYYYMMDDHHMM.gz
PRICE_SHORT = grammar("price_short", r"Price\d+-(?P<store>\d{1,4})-\d{12}\.gz")
PRICE_FULL_SHORT = grammar("price_full_short", r"PriceFull\d+-(?P<store>\d{1,4})-\d{12}\.gz")


def normalize_store_id(value) -> Optional[str]:
    """Left-zero-pad a store id to the canonical width; None for blanks."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if text.isdigit():
        text = str(int(text))
    return text.zfill(STORE_ID_WIDTH)


def resolve_store_id(name_or_url: Optional[str], grammars: Iterable[FilenameGrammar]) -> Optional[str]:
    """Try grammars in order against a file name or URL."""
    if not name_or_url:
        return None
    candidate = unquote(name_or_url)
    for g in grammars:
        store_id = g.match(candidate)
        if store_id:
            return store_id
    return None


def resolve_from_response(
    grammars: Iterable[FilenameGrammar],
    declared_name: Optional[str],
    final_url: Optional[str],
    requested_url: Optional[str],
) -> Optional[str]:
    """Disposition name first, then the final URL, then the requested URL."""
    grammars = tuple(grammars)
    for candidate in (declared_name, final_url, requested_url):
        store_id = resolve_store_id(candidate, grammars)
        if store_id:
            return store_id
    return None


_DISPOSITION_RE = re.compile(
    r"filename\*?\s*=\s*(?:UTF-8'')?\"?([^\";]+)\"?",
    re.IGNORECASE,
)


def filename_from_disposition(header: Optional[str]) -> Optional[str]:
    """Extract the file name from a Content-Disposition header."""
    if not header:
        return None
    m = _DISPOSITION_RE.search(header)
    if not m:
        return None
    return unquote(m.group(1).strip()) or None


def basename_from_url(url: Optional[str]) -> Optional[str]:
    """Last path segment of a URL (query string ignored)."""
    if not url:
        return None
    path = urlparse(url).path
    base = path.rsplit("/", 1)[-1]
    return unquote(base) or None
