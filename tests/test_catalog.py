"""Tests for the PriceFull catalog decoder."""
import gzip
from datetime import datetime

import pytest

from conftest import SAMPLE_ITEMS, catalog_gz
from pricefeed.errors import CatalogError
from pricefeed.parse.catalog import decode_catalog, derive_barcode, get_schema


def test_decodes_header_and_items():
    """Test header fields and normalized rows."""
    catalog = decode_catalog(catalog_gz(SAMPLE_ITEMS))
    assert catalog.chain_id == "7290027600007"
    assert catalog.sub_chain_id == "001"
    assert catalog.store_id == "005"
    assert catalog.bikoret_no == 4
    assert len(catalog.items) == 2

    milk, bread = catalog.items
    assert milk["item_code"] == "7290000000011"
    assert milk["barcode"] == "7290000000011"
    assert milk["canonical_key"] == "חלב"
    assert milk["price"] == pytest.approx(6.90)
    assert milk["unit_qty"] == 1.0
    assert milk["is_weighted"] is False
    assert milk["price_update_time"] == datetime(2026, 1, 14, 5, 1)

    assert bread["item_name"] == "Bread (sliced)"
    assert bread["canonical_key"] == "Bread"
    assert bread["barcode"] is None
    assert bread["is_weighted"] is True
    assert bread["last_sale_datetime"] is None


def test_single_item_catalog():
    """Test a document with exactly one Item."""
    catalog = decode_catalog(catalog_gz(SAMPLE_ITEMS[:1]))
    assert [row["item_code"] for row in catalog.items] == ["7290000000011"]


def test_zero_valid_items_fails_with_no_items():
    """Test all rows missing price or name fails the file."""
    items = [
        {"ItemCode": "1", "ItemName": "", "ItemPrice": "3.00"},
        {"ItemCode": "2", "ItemName": "Salt", "ItemPrice": "abc"},
        {"ItemCode": "3", "ItemName": "Sugar"},
    ]
    with pytest.raises(CatalogError, match="no items"):
        decode_catalog(catalog_gz(items))


def test_invalid_rows_are_rejected_not_the_file():
    """Test row-level rejection with counts."""
    items = SAMPLE_ITEMS + [
        {"ItemCode": "9", "ItemName": "Broken", "ItemPrice": "nan"},
        {"ItemName": "No code", "ItemPrice": "1.00"},
    ]
    catalog = decode_catalog(catalog_gz(items))
    assert len(catalog.items) == 2
    assert catalog.rejected == {"invalid_name_or_price": 1, "missing_item_code": 1}


def test_duplicate_item_codes_last_wins():
    """Test one row per item code."""
    items = [
        {"ItemCode": "77", "ItemName": "Tea", "ItemPrice": "5.00"},
        {"ItemCode": "77", "ItemName": "Tea", "ItemPrice": "6.00"},
    ]
    catalog = decode_catalog(catalog_gz(items))
    assert len(catalog.items) == 1
    assert catalog.items[0]["price"] == 6.0


def test_not_gzip_is_rejected():
    """Test the signature check on stored bytes."""
    with pytest.raises(CatalogError, match="gzip"):
        decode_catalog(b"<html><body>login</body></html>")


def test_corrupt_gzip_is_rejected():
    """Test a truncated gzip stream."""
    data = catalog_gz(SAMPLE_ITEMS)[:20]
    with pytest.raises(CatalogError, match="gzip decompress failed"):
        decode_catalog(data)


def test_missing_root_is_hard_failure():
    """Test an unrecognized top-level element."""
    with pytest.raises(CatalogError, match="missing root"):
        decode_catalog(catalog_gz(SAMPLE_ITEMS, root_tag="Prices"))


def test_root_is_case_insensitive():
    """Test <Root> is accepted like <root>."""
    catalog = decode_catalog(catalog_gz(SAMPLE_ITEMS, root_tag="Root"))
    assert catalog.store_id == "005"


def test_missing_store_id_uses_fallback_or_fails():
    """Test XML store id preference and fallback."""
    data = catalog_gz(SAMPLE_ITEMS, store_id=None)
    assert decode_catalog(data, fallback_store_id="12").store_id == "012"
    with pytest.raises(CatalogError, match="Missing StoreId"):
        decode_catalog(data)


def test_xml_store_id_preferred_over_ledger():
    """Test the declared store id wins."""
    assert decode_catalog(catalog_gz(SAMPLE_ITEMS, store_id="274"), fallback_store_id="001").store_id == "274"


def test_missing_items_container():
    """Test a root without Items."""
    xml = b"<root><StoreId>1</StoreId></root>"
    with pytest.raises(CatalogError, match="No Items"):
        decode_catalog(gzip.compress(xml))


def test_attribute_style_fields():
    """Test aliases found as attributes with other casing."""
    xml = (
        b'<root ChainID="1" StoreID="7"><Items>'
        b'<Item><ITEMCODE>12345678</ITEMCODE><ItemNm>Oil 1 l</ItemNm><ItemPrice>12.00</ItemPrice></Item>'
        b"</Items></root>"
    )
    catalog = decode_catalog(gzip.compress(xml))
    assert catalog.store_id == "007"
    assert catalog.items[0]["barcode"] == "12345678"
    assert catalog.items[0]["canonical_key"] == "Oil"


def test_derive_barcode():
    """Test barcode-shaped codes only."""
    assert derive_barcode("1234567") is None
    assert derive_barcode("12345678") == "12345678"
    assert derive_barcode("123456789012345") is None
    assert derive_barcode("ABC12345678") is None


def test_unknown_schema():
    """Test schema lookup."""
    assert get_schema("price_full/v1").version == "price_full/v1"
    with pytest.raises(CatalogError):
        get_schema("price_full/v9")
