"""Supabase (Postgres) backend, see sql/schema.sql."""
import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Any, Callable, Optional

from supabase import Client, create_client
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pricefeed.config import config
from pricefeed.parse.models import FileStatus, PriceRecord, ProductStatsDaily, RawFileRecord, utcnow
from pricefeed.store.base import (
    PRICES_TABLE,
    RAW_FILE_EVENTS_TABLE,
    RAW_FILES_TABLE,
    STATS_TABLE,
    PriceStore,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 1000


def create_supabase_client() -> Client:
    if not config.SUPABASE_URL or not config.SUPABASE_SERVICE_ROLE:
        raise ValueError("Supabase configuration missing")
    return create_client(config.SUPABASE_URL, config.SUPABASE_SERVICE_ROLE)


class SupabaseStore(PriceStore):
    """Runs the synchronous supabase client in the default thread pool."""

    def __init__(self, client: Optional[Client] = None):
        self.client: Client = client or create_supabase_client()

    async def _run(self, fn: Callable, *args) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, *args))

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type((Exception,)),
        reraise=True,
    )
    def _execute(self, query) -> Any:
        """Execute a built postgrest query (called from thread pool)."""
        return query.execute()

    async def _query(self, query) -> Any:
        return await self._run(self._execute, query)

    async def _fetch_all(self, build: Callable[[], Any]) -> list[dict[str, Any]]:
        """Page through a select with .range() until a short page."""
        rows: list[dict[str, Any]] = []
        start = 0
        while True:
            response = await self._query(build().range(start, start + PAGE_SIZE - 1))
            batch = response.data or []
            rows.extend(batch)
            if len(batch) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE

    # Ledger

    async def get_raw_file(self, chain: str, file_url: str) -> Optional[RawFileRecord]:
        response = await self._query(
            self.client.table(RAW_FILES_TABLE).select("*").eq("chain", chain).eq("file_url", file_url).limit(1)
        )
        return RawFileRecord(**response.data[0]) if response.data else None

    async def get_raw_file_by_id(self, raw_file_id: int) -> Optional[RawFileRecord]:
        response = await self._query(
            self.client.table(RAW_FILES_TABLE).select("*").eq("id", raw_file_id).limit(1)
        )
        return RawFileRecord(**response.data[0]) if response.data else None

    async def upsert_raw_file(self, record: RawFileRecord) -> RawFileRecord:
        response = await self._query(
            self.client.table(RAW_FILES_TABLE).upsert(record.ledger_row(), on_conflict="chain,file_url")
        )
        if response.data:
            return RawFileRecord(**response.data[0])
        stored = await self.get_raw_file(record.chain, record.file_url)
        return stored or record

    async def list_downloaded(self, chain: str, marker: str, limit: int) -> list[RawFileRecord]:
        response = await self._query(
            self.client.table(RAW_FILES_TABLE)
            .select("*")
            .eq("chain", chain)
            .eq("status", FileStatus.DOWNLOADED.value)
            .ilike("storage_path", f"%{marker}%")
            .order("fetched_at", desc=True)
            .limit(limit)
        )
        return [RawFileRecord(**row) for row in response.data or []]

    async def update_store_id(self, raw_file_id: int, store_id: str) -> None:
        await self._query(
            self.client.table(RAW_FILES_TABLE).update({"store_id": store_id}).eq("id", raw_file_id)
        )

    async def _write_status(
        self, raw_file_id: int, status: FileStatus, error: Optional[str], attempts: int
    ) -> None:
        await self._query(
            self.client.table(RAW_FILES_TABLE)
            .update({"status": status.value, "error": error, "attempts": attempts})
            .eq("id", raw_file_id)
        )

    async def log_event(self, record: RawFileRecord) -> None:
        event = {
            "chain": record.chain,
            "file_url": record.file_url,
            "status": record.status.value,
            "error": record.error,
            "attempt": record.attempts,
            "occurred_at": utcnow().isoformat(),
        }
        try:
            await self._query(self.client.table(RAW_FILE_EVENTS_TABLE).insert(event))
        except Exception as e:
            # History is secondary to the ledger row itself
            logger.warning(f"Failed to append ledger event for {record.file_url}: {e}")

    async def ledger_stats(self, chain: Optional[str] = None) -> dict[str, int]:
        def build():
            query = self.client.table(RAW_FILES_TABLE).select("status")
            return query.eq("chain", chain) if chain else query

        stats: dict[str, int] = {}
        for row in await self._fetch_all(build):
            stats[row["status"]] = stats.get(row["status"], 0) + 1
        return stats

    # Prices

    async def upsert_prices(self, rows: list[PriceRecord]) -> int:
        if not rows:
            return 0
        await self._query(
            self.client.table(PRICES_TABLE).upsert(
                [r.row() for r in rows], on_conflict="raw_file_id,item_code"
            )
        )
        return len(rows)

    async def delete_prices_for_file(self, raw_file_id: int) -> int:
        response = await self._query(
            self.client.table(PRICES_TABLE).delete().eq("raw_file_id", raw_file_id)
        )
        return len(response.data or [])

    async def count_prices(self, raw_file_id: Optional[int] = None) -> int:
        query = self.client.table(PRICES_TABLE).select("id", count="exact")
        if raw_file_id is not None:
            query = query.eq("raw_file_id", raw_file_id)
        response = await self._query(query.limit(1))
        return response.count or 0

    async def fetch_prices_since(self, cutoff: datetime) -> list[dict[str, Any]]:
        bound = cutoff.strftime("%Y-%m-%dT%H:%M:%SZ")

        def build():
            return (
                self.client.table(PRICES_TABLE)
                .select("chain,canonical_key,price,price_update_time,fetched_at")
                .not_.is_("canonical_key", "null")
                .or_(f"price_update_time.gte.{bound},and(price_update_time.is.null,fetched_at.gte.{bound})")
                .order("id")
            )

        return await self._fetch_all(build)

    # Daily statistics

    async def upsert_daily_stats(self, stats: list[ProductStatsDaily]) -> int:
        if not stats:
            return 0
        await self._query(
            self.client.table(STATS_TABLE).upsert(
                [s.row() for s in stats], on_conflict="day,chain,canonical_key"
            )
        )
        return len(stats)

    async def list_daily_stats(self, chain: Optional[str] = None) -> list[ProductStatsDaily]:
        def build():
            query = self.client.table(STATS_TABLE).select("*")
            if chain:
                query = query.eq("chain", chain)
            return query.order("day").order("canonical_key")

        return [ProductStatsDaily(**row) for row in await self._fetch_all(build)]
