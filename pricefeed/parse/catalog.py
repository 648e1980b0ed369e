"""Decode vendor PriceFull XML catalogs into normalized price rows.

Field names vary in casing between chains and feed versions, so each
schema version carries an explicit alias table. A document whose top-level
shape is not recognized fails the whole file; a single bad item only
drops that item.
"""
import gzip
import logging
import math
import re
import zlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from lxml import etree

from pricefeed.auth.login_detector import is_gzip
from pricefeed.errors import CatalogError
from pricefeed.parse.canonical import collapse_whitespace, normalize_canonical
from pricefeed.parse.filenames import normalize_store_id

logger = logging.getLogger(__name__)

BARCODE_RE = re.compile(r"^\d{8,14}$")

TIMESTAMP_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%Y%m%d%H%M%S",
    "%Y%m%d%H%M",
    "%Y-%m-%d",
]


@dataclass(frozen=True)
class CatalogSchema:
    """Versioned mapping from field-name aliases to canonical fields."""

    version: str
    root_tags: tuple[str, ...]
    items_tags: tuple[str, ...]
    item_tags: tuple[str, ...]
    header: dict[str, tuple[str, ...]]
    item: dict[str, tuple[str, ...]]


PRICE_FULL_V1 = CatalogSchema(
    version="price_full/v1",
    root_tags=("root",),
    items_tags=("items",),
    item_tags=("item",),
    header={
        "chain_id": ("ChainID", "ChainId"),
        "sub_chain_id": ("SubChainID", "SubChainId"),
        "store_id": ("StoreID", "StoreId"),
        "bikoret_no": ("BikoretNo",),
    },
    item={
        "item_code": ("ItemCode",),
        "item_name": ("ItemName", "ItemNm"),
        "price": ("ItemPrice",),
        "unit_qty": ("Quantity",),
        "unit_of_measure": ("UnitOfMeasure",),
        "price_update_time": ("PriceUpdateTime", "PriceUpdateDate"),
        "last_sale_datetime": ("LastSaleDateTime",),
        "is_weighted": ("bIsWeighted",),
        "qty_in_package": ("QtyInPackage",),
    },
)

SCHEMAS: dict[str, CatalogSchema] = {PRICE_FULL_V1.version: PRICE_FULL_V1}


def get_schema(version: str) -> CatalogSchema:
    try:
        return SCHEMAS[version]
    except KeyError:
        raise CatalogError(f"Unknown catalog schema: {version}") from None


@dataclass
class DecodedCatalog:
    """Header fields plus the valid item rows of one catalog file."""

    chain_id: Optional[str]
    sub_chain_id: Optional[str]
    store_id: str
    bikoret_no: Optional[int]
    items: list[dict[str, Any]] = field(default_factory=list)
    rejected: dict[str, int] = field(default_factory=dict)


def _local(tag: Any) -> Optional[str]:
    # Comments and processing instructions have non-string tags
    if not isinstance(tag, str):
        return None
    return etree.QName(tag).localname.lower()


def _field(elem, aliases: tuple[str, ...]) -> Optional[str]:
    """Value of the first alias found as attribute or child element."""
    wanted = {a.lower() for a in aliases}
    for key, value in elem.attrib.items():
        if _local(key) in wanted and value is not None and value.strip():
            return value.strip()
    for child in elem:
        if _local(child.tag) in wanted:
            text = (child.text or "").strip()
            if text:
                return text
    return None


def num_or_none(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        n = float(str(value).strip())
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def int_or_none(value: Optional[str]) -> Optional[int]:
    n = num_or_none(value)
    return int(n) if n is not None else None


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Try the timestamp formats vendors use; None if none fits."""
    if not value:
        return None
    text = value.strip()
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def tri_state(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return str(value).strip() in ("1", "true", "True")


def derive_barcode(item_code: Optional[str]) -> Optional[str]:
    """Item codes that look like EAN/UPC barcodes (8-14 digits)."""
    if item_code and BARCODE_RE.match(item_code):
        return item_code
    return None


def decompress(data: bytes) -> bytes:
    """Verify the gzip signature and decompress."""
    if not is_gzip(data):
        raise CatalogError("Not a gzip file (magic bytes missing)")
    try:
        return gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as e:
        raise CatalogError(f"gzip decompress failed: {e}") from e


def parse_xml(xml_bytes: bytes):
    parser = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=True)
    try:
        return etree.fromstring(xml_bytes, parser)
    except etree.XMLSyntaxError as e:
        raise CatalogError(f"XML parse error: {e}") from e


def decode_item(elem, schema: CatalogSchema) -> tuple[Optional[dict[str, Any]], Optional[str]]:
    """Return (row, None) or (None, rejection reason)."""
    values = {name: _field(elem, aliases) for name, aliases in schema.item.items()}

    name = collapse_whitespace(values["item_name"])
    price = num_or_none(values["price"])
    if not name or price is None:
        return None, "invalid_name_or_price"

    item_code = values["item_code"]
    if not item_code:
        return None, "missing_item_code"

    return {
        "item_code": item_code,
        "barcode": derive_barcode(item_code),
        "item_name": name,
        "canonical_key": normalize_canonical(name),
        "price": price,
        "unit_qty": num_or_none(values["unit_qty"]),
        "unit_of_measure": values["unit_of_measure"],
        "price_update_time": parse_timestamp(values["price_update_time"]),
        "last_sale_datetime": parse_timestamp(values["last_sale_datetime"]),
        "is_weighted": tri_state(values["is_weighted"]),
        "qty_in_package": num_or_none(values["qty_in_package"]),
    }, None


def decode_catalog(
    data: bytes,
    fallback_store_id: Optional[str] = None,
    schema: CatalogSchema = PRICE_FULL_V1,
) -> DecodedCatalog:
    """Decode gzip-compressed catalog bytes.

    Raises CatalogError for file-level failures: bad signature, broken XML,
    missing root, unresolvable store id, no Items container, or zero valid
    items after filtering.
    """
    root = parse_xml(decompress(data))

    if _local(root.tag) not in schema.root_tags:
        raise CatalogError(f"XML missing root (top-level element is <{root.tag}>)")

    xml_store_id = _field(root, schema.header["store_id"])
    store_id = normalize_store_id(xml_store_id) or normalize_store_id(fallback_store_id)
    if not store_id:
        raise CatalogError("Missing StoreId in XML")

    container = next((c for c in root if _local(c.tag) in schema.items_tags), None)
    if container is None:
        raise CatalogError("No Items in XML")

    catalog = DecodedCatalog(
        chain_id=_field(root, schema.header["chain_id"]),
        sub_chain_id=_field(root, schema.header["sub_chain_id"]),
        store_id=store_id,
        bikoret_no=int_or_none(_field(root, schema.header["bikoret_no"])),
    )

    by_code: dict[str, dict[str, Any]] = {}
    for elem in container:
        if _local(elem.tag) not in schema.item_tags:
            continue
        row, reason = decode_item(elem, schema)
        if row is None:
            catalog.rejected[reason] = catalog.rejected.get(reason, 0) + 1
            continue
        if row["item_code"] in by_code:
            catalog.rejected["duplicate_item_code"] = catalog.rejected.get("duplicate_item_code", 0) + 1
        # Last occurrence wins, one row per item_code
        by_code[row["item_code"]] = row

    if not by_code:
        raise CatalogError("no items")

    catalog.items = list(by_code.values())
    if catalog.rejected:
        logger.debug(f"Rejected rows for store {store_id}: {catalog.rejected}")
    return catalog
