"""Extract catalog download links from listing pages."""
import logging
import re
from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse

from selectolax.parser import HTMLParser

logger = logging.getLogger(__name__)


def extract_links(html_content: str, base_url: str) -> list[str]:
    """
    Extract every <a href="..."> from HTML as absolute URLs.
    Order of first appearance is kept; duplicates are dropped.
    """
    if not html_content:
        return []

    parser = HTMLParser(html_content)
    links: list[str] = []
    for link in parser.css("a[href]"):
        href = link.attributes.get("href")
        if href:
            normalized = normalize_url(href, base_url)
            if normalized:
                links.append(normalized)
    return dedupe(links)


def filter_links(
    links: Iterable[str],
    allow: Iterable[re.Pattern],
    deny: Iterable[re.Pattern] = (),
) -> list[str]:
    """Keep links matching every allow pattern and no deny pattern."""
    allow = tuple(allow)
    deny = tuple(deny)
    kept = [
        url
        for url in links
        if all(p.search(url) for p in allow) and not any(p.search(url) for p in deny)
    ]
    return dedupe(kept)


def dedupe(urls: Iterable[str]) -> list[str]:
    """Drop duplicates, keeping the first occurrence."""
    return list(dict.fromkeys(urls))


def normalize_url(url: str, base_url: str) -> Optional[str]:
    """Normalize URL to absolute form."""
    if not url:
        return None

    # Remove whitespace
    url = url.strip()
    if not url or url.startswith("#") or url.lower().startswith(("javascript:", "mailto:")):
        return None

    # Make absolute
    if url.startswith("http://") or url.startswith("https://"):
        return url
    elif url.startswith("//"):
        parsed = urlparse(base_url)
        return f"{parsed.scheme}:{url}"
    elif url.startswith("/"):
        parsed = urlparse(base_url)
        return f"{parsed.scheme}://{parsed.netloc}{url}"
    else:
        # Relative URL
        return urljoin(base_url, url)
