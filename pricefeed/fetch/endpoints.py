"""URL builders for chain portals."""
from urllib.parse import urlencode, urlsplit, urlunsplit

SHUFERSAL_BASE = "https://prices.shufersal.co.il"
PUBLISHED_PRICES_BASE = "https://url.publishedprices.co.il"


def shufersal_listing_url(page: int, category: int = 0, base: str = SHUFERSAL_BASE) -> str:
    """Page N of the UpdateCategory file listing (category 0 = all)."""
    query = urlencode(
        {
            "catID": category,
            "page": page,
            "sort": "Size",
            "sortdir": "DESC",
            "storeId": 0,
        }
    )
    return f"{base}/FileObject/UpdateCategory?{query}"


def published_prices_login_url(base: str = PUBLISHED_PRICES_BASE) -> str:
    return f"{base}/"


def published_prices_listing_url(base: str = PUBLISHED_PRICES_BASE) -> str:
    return f"{base}/file"


def strip_query(url: str) -> str:
    """URL without query string or fragment (drops expiring signatures)."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))
