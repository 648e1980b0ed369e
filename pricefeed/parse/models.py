"""Data models for ledger entries, price rows and daily statistics."""
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileStatus(str, Enum):
    """Ledger status of one catalog file."""

    DOWNLOADED = "downloaded"
    FAILED = "failed"
    SKIPPED = "skipped"
    PARSED = "parsed"


# States a transition may start from; anything else is never reverted.
ALLOWED_FROM: dict[FileStatus, tuple[FileStatus, ...]] = {
    FileStatus.PARSED: (FileStatus.DOWNLOADED, FileStatus.PARSED),
    FileStatus.FAILED: (FileStatus.DOWNLOADED, FileStatus.PARSED, FileStatus.FAILED),
}


class RawFileRecord(BaseModel):
    """One download attempt, keyed by (chain, file_url)."""

    id: Optional[int] = Field(default=None, description="Store-assigned, preserved on upsert")
    chain: str
    store_id: Optional[str] = None
    file_url: str
    storage_path: Optional[str] = None
    content_hash: Optional[str] = None
    status: FileStatus
    error: Optional[str] = None
    attempts: int = 0
    fetched_at: datetime = Field(default_factory=utcnow)

    def ledger_row(self) -> dict[str, Any]:
        """Row for the raw_files table (never carries the id)."""
        return {
            "chain": self.chain,
            "store_id": self.store_id,
            "file_url": self.file_url,
            "storage_path": self.storage_path,
            "content_hash": self.content_hash,
            "status": self.status.value,
            "error": self.error,
            "attempts": self.attempts,
            "fetched_at": self.fetched_at.isoformat(),
        }


class PriceRecord(BaseModel):
    """One catalog line item of one ingested file."""

    raw_file_id: int
    chain: str
    sub_chain_id: Optional[str] = None
    store_id: Optional[str] = None
    bikoret_no: Optional[int] = None
    item_code: str
    barcode: Optional[str] = None
    item_name: str
    canonical_key: Optional[str] = None
    price: float
    unit_qty: Optional[float] = None
    unit_of_measure: Optional[str] = None
    price_update_time: Optional[datetime] = None
    last_sale_datetime: Optional[datetime] = None
    is_weighted: Optional[bool] = None
    qty_in_package: Optional[float] = None
    fetched_at: datetime = Field(default_factory=utcnow)

    def row(self) -> dict[str, Any]:
        data = self.model_dump()
        for key in ("price_update_time", "last_sale_datetime", "fetched_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data


class ProductStatsDaily(BaseModel):
    """Per (day, chain, canonical_key) statistics."""

    day: date
    chain: str
    canonical_key: str
    avg_price: float
    sample_count: int
    min_price: float
    max_price: float

    def row(self) -> dict[str, Any]:
        data = self.model_dump()
        data["day"] = self.day.isoformat()
        return data
