"""Tests for link extraction and filtering."""
from pricefeed.chains.registry import SHUFERSAL
from pricefeed.parse.links import dedupe, extract_links, filter_links, normalize_url

LISTING_HTML = """
<html><body><table>
<tr><td><a href="https://pricesprodpublic.blob.core.windows.net/pricefull/PriceFull7290027600007-001-274-20260114-050100.gz?sv=2014&amp;sig=a">Download</a></td></tr>
<tr><td><a href="https://pricesprodpublic.blob.core.windows.net/promofull/PromoFull7290027600007-001-274-20260114-050100.gz?sig=b">Download</a></td></tr>
<tr><td><a href="https://pricesprodpublic.blob.core.windows.net/price/Price7290027600007-001-274-20260114-050100.gz?sig=c">Download</a></td></tr>
<tr><td><a href="https://pricesprodpublic.blob.core.windows.net/pricefull/PriceFull7290027600007-001-274-20260114-050100.gz?sv=2014&amp;sig=a">Again</a></td></tr>
</table>
<a href="/FileObject/UpdateCategory?page=2">Next</a>
<a href="#top">Top</a>
<a href="javascript:void(0)">JS</a>
</body></html>
"""


def test_extract_links_absolute_and_deduplicated():
    """Test anchors become absolute and duplicates are dropped."""
    links = extract_links(LISTING_HTML, "https://prices.shufersal.co.il/FileObject/UpdateCategory?page=1")
    assert "https://prices.shufersal.co.il/FileObject/UpdateCategory?page=2" in links
    assert len([link for link in links if "PriceFull" in link]) == 1
    assert not any(link.startswith("javascript") or link.endswith("#top") for link in links)


def test_filter_links_keeps_full_catalogs_only():
    """Test allow/deny patterns of the listing chain."""
    links = extract_links(LISTING_HTML, "https://prices.shufersal.co.il/")
    kept = filter_links(links, SHUFERSAL.allow, SHUFERSAL.deny)
    assert len(kept) == 1
    assert "PriceFull7290027600007-001-274" in kept[0]


def test_normalize_url_variants():
    """Test relative, protocol-relative and ignored hrefs."""
    base = "https://url.publishedprices.co.il/file"
    assert normalize_url("/file/d/a.gz", base) == "https://url.publishedprices.co.il/file/d/a.gz"
    assert normalize_url("//cdn.example.com/a.gz", base) == "https://cdn.example.com/a.gz"
    assert normalize_url("mailto:a@b.c", base) is None
    assert normalize_url("  ", base) is None


def test_dedupe_keeps_first_order():
    """Test order of first appearance is kept."""
    assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]


def test_empty_html():
    """Test empty HTML."""
    assert extract_links("", "https://x/") == []
