"""Relational store contract shared by the SQLite and Supabase backends.

Three tables back the pipeline: ``raw_files`` (the ledger, unique per
chain + file_url), ``prices`` (unique per raw_file_id + item_code) and
``product_stats_daily`` (unique per day + chain + canonical_key). The
unique keys are what make every write an idempotent upsert.
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from pricefeed.parse.models import (
    ALLOWED_FROM,
    FileStatus,
    PriceRecord,
    ProductStatsDaily,
    RawFileRecord,
)
from pricefeed.parse.redact import ledger_error

logger = logging.getLogger(__name__)

RAW_FILES_TABLE = "raw_files"
RAW_FILE_EVENTS_TABLE = "raw_file_events"
PRICES_TABLE = "prices"
STATS_TABLE = "product_stats_daily"


class PriceStore(ABC):
    """Ledger, price rows and daily statistics."""

    async def initialize(self) -> None:
        """Create tables if the backend manages its own schema."""

    # Ledger

    @abstractmethod
    async def get_raw_file(self, chain: str, file_url: str) -> Optional[RawFileRecord]:
        ...

    @abstractmethod
    async def get_raw_file_by_id(self, raw_file_id: int) -> Optional[RawFileRecord]:
        ...

    @abstractmethod
    async def upsert_raw_file(self, record: RawFileRecord) -> RawFileRecord:
        """Insert or overwrite the record for (chain, file_url); returns it with its id."""

    @abstractmethod
    async def list_downloaded(self, chain: str, marker: str, limit: int) -> list[RawFileRecord]:
        """Downloaded entries whose storage path contains marker, most recent first."""

    @abstractmethod
    async def update_store_id(self, raw_file_id: int, store_id: str) -> None:
        ...

    @abstractmethod
    async def _write_status(
        self, raw_file_id: int, status: FileStatus, error: Optional[str], attempts: int
    ) -> None:
        ...

    @abstractmethod
    async def log_event(self, record: RawFileRecord) -> None:
        """Append the record's current outcome to the event history."""

    @abstractmethod
    async def ledger_stats(self, chain: Optional[str] = None) -> dict[str, int]:
        """Count of ledger entries per status."""

    async def mark_parsed(self, raw_file_id: int) -> bool:
        return await self.transition(raw_file_id, FileStatus.PARSED)

    async def mark_failed(self, raw_file_id: int, error: str) -> bool:
        return await self.transition(raw_file_id, FileStatus.FAILED, error)

    async def transition(self, raw_file_id: int, status: FileStatus, error: Optional[str] = None) -> bool:
        """Move a ledger entry forward; refuses transitions that would revert it.

        Returns False (and writes nothing) when the entry is missing or its
        current status is not an allowed origin for ``status``.
        """
        record = await self.get_raw_file_by_id(raw_file_id)
        if record is None:
            logger.warning(f"Ledger entry {raw_file_id} not found; cannot mark {status.value}")
            return False
        if record.status not in ALLOWED_FROM[status]:
            logger.warning(
                f"Refusing ledger transition {record.status.value} -> {status.value} for {raw_file_id}"
            )
            return False

        attempts = record.attempts + 1 if status == FileStatus.FAILED else record.attempts
        message = ledger_error(error) if error else None
        await self._write_status(raw_file_id, status, message, attempts)

        record.status = status
        record.error = message
        record.attempts = attempts
        await self.log_event(record)
        return True

    # Prices

    @abstractmethod
    async def upsert_prices(self, rows: list[PriceRecord]) -> int:
        """Upsert one batch keyed by (raw_file_id, item_code); returns rows written."""

    @abstractmethod
    async def delete_prices_for_file(self, raw_file_id: int) -> int:
        ...

    @abstractmethod
    async def count_prices(self, raw_file_id: Optional[int] = None) -> int:
        ...

    @abstractmethod
    async def fetch_prices_since(self, cutoff: datetime) -> list[dict[str, Any]]:
        """Rows with a canonical key whose effective timestamp is >= cutoff.

        Each dict carries chain, canonical_key, price, price_update_time and
        fetched_at.
        """

    # Daily statistics

    @abstractmethod
    async def upsert_daily_stats(self, stats: list[ProductStatsDaily]) -> int:
        ...

    @abstractmethod
    async def list_daily_stats(self, chain: Optional[str] = None) -> list[ProductStatsDaily]:
        ...

    async def close(self) -> None:
        """Release backend resources."""
