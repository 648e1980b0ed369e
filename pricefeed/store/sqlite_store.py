"""SQLite backend for local runs and tests."""
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from pricefeed.config import LOCAL_DB
from pricefeed.parse.models import FileStatus, PriceRecord, ProductStatsDaily, RawFileRecord, utcnow
from pricefeed.store.base import PriceStore

logger = logging.getLogger(__name__)

SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS raw_files (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chain TEXT NOT NULL,
        store_id TEXT,
        file_url TEXT NOT NULL,
        storage_path TEXT,
        content_hash TEXT,
        status TEXT NOT NULL,
        error TEXT,
        attempts INTEGER NOT NULL DEFAULT 0,
        fetched_at TEXT NOT NULL,
        UNIQUE (chain, file_url)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_raw_files_status ON raw_files(chain, status)",
    """
    CREATE TABLE IF NOT EXISTS raw_file_events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        chain TEXT NOT NULL,
        file_url TEXT NOT NULL,
        status TEXT NOT NULL,
        error TEXT,
        attempt INTEGER NOT NULL,
        occurred_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS prices (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        raw_file_id INTEGER NOT NULL,
        chain TEXT NOT NULL,
        sub_chain_id TEXT,
        store_id TEXT,
        bikoret_no INTEGER,
        item_code TEXT NOT NULL,
        barcode TEXT,
        item_name TEXT NOT NULL,
        canonical_key TEXT,
        price REAL NOT NULL,
        unit_qty REAL,
        unit_of_measure TEXT,
        price_update_time TEXT,
        last_sale_datetime TEXT,
        is_weighted INTEGER,
        qty_in_package REAL,
        fetched_at TEXT NOT NULL,
        UNIQUE (raw_file_id, item_code)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_prices_canonical ON prices(chain, canonical_key)",
    """
    CREATE TABLE IF NOT EXISTS product_stats_daily (
        day TEXT NOT NULL,
        chain TEXT NOT NULL,
        canonical_key TEXT NOT NULL,
        avg_price REAL NOT NULL,
        sample_count INTEGER NOT NULL,
        min_price REAL NOT NULL,
        max_price REAL NOT NULL,
        PRIMARY KEY (day, chain, canonical_key)
    )
    """,
]

RAW_FILE_COLUMNS = (
    "id, chain, store_id, file_url, storage_path, content_hash, status, error, attempts, fetched_at"
)

PRICE_COLUMNS = (
    "raw_file_id", "chain", "sub_chain_id", "store_id", "bikoret_no", "item_code", "barcode",
    "item_name", "canonical_key", "price", "unit_qty", "unit_of_measure", "price_update_time",
    "last_sale_datetime", "is_weighted", "qty_in_package", "fetched_at",
)


def _record(row: aiosqlite.Row) -> RawFileRecord:
    return RawFileRecord(**dict(row))


class SQLiteStore(PriceStore):
    """aiosqlite-backed store; one connection per operation."""

    def __init__(self, db_path: Path = LOCAL_DB):
        self.db_path = Path(db_path)

    async def initialize(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self.db_path) as db:
            for statement in SCHEMA:
                await db.execute(statement)
            await db.commit()
        logger.info(f"SQLite store initialized at {self.db_path}")

    async def _fetch_one(self, query: str, params: tuple) -> Optional[RawFileRecord]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            row = await cursor.fetchone()
            return _record(row) if row else None

    async def get_raw_file(self, chain: str, file_url: str) -> Optional[RawFileRecord]:
        return await self._fetch_one(
            f"SELECT {RAW_FILE_COLUMNS} FROM raw_files WHERE chain = ? AND file_url = ?",
            (chain, file_url),
        )

    async def get_raw_file_by_id(self, raw_file_id: int) -> Optional[RawFileRecord]:
        return await self._fetch_one(
            f"SELECT {RAW_FILE_COLUMNS} FROM raw_files WHERE id = ?",
            (raw_file_id,),
        )

    async def upsert_raw_file(self, record: RawFileRecord) -> RawFileRecord:
        row = record.ledger_row()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO raw_files
                    (chain, store_id, file_url, storage_path, content_hash, status, error, attempts, fetched_at)
                VALUES
                    (:chain, :store_id, :file_url, :storage_path, :content_hash, :status, :error, :attempts, :fetched_at)
                ON CONFLICT (chain, file_url) DO UPDATE SET
                    store_id = excluded.store_id,
                    storage_path = excluded.storage_path,
                    content_hash = excluded.content_hash,
                    status = excluded.status,
                    error = excluded.error,
                    attempts = excluded.attempts,
                    fetched_at = excluded.fetched_at
                """,
                row,
            )
            await db.commit()
            cursor = await db.execute(
                "SELECT id FROM raw_files WHERE chain = ? AND file_url = ?",
                (record.chain, record.file_url),
            )
            (raw_file_id,) = await cursor.fetchone()
        return record.model_copy(update={"id": raw_file_id})

    async def list_downloaded(self, chain: str, marker: str, limit: int) -> list[RawFileRecord]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"""
                SELECT {RAW_FILE_COLUMNS} FROM raw_files
                WHERE chain = ? AND status = ? AND storage_path LIKE ?
                ORDER BY fetched_at DESC, id DESC
                LIMIT ?
                """,
                (chain, FileStatus.DOWNLOADED.value, f"%{marker}%", limit),
            )
            return [_record(row) for row in await cursor.fetchall()]

    async def update_store_id(self, raw_file_id: int, store_id: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("UPDATE raw_files SET store_id = ? WHERE id = ?", (store_id, raw_file_id))
            await db.commit()

    async def _write_status(
        self, raw_file_id: int, status: FileStatus, error: Optional[str], attempts: int
    ) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "UPDATE raw_files SET status = ?, error = ?, attempts = ? WHERE id = ?",
                (status.value, error, attempts, raw_file_id),
            )
            await db.commit()

    async def log_event(self, record: RawFileRecord) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO raw_file_events (chain, file_url, status, error, attempt, occurred_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (record.chain, record.file_url, record.status.value, record.error, record.attempts,
                 utcnow().isoformat()),
            )
            await db.commit()

    async def list_events(self, chain: str, file_url: str) -> list[dict[str, Any]]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT status, error, attempt, occurred_at FROM raw_file_events
                WHERE chain = ? AND file_url = ? ORDER BY id
                """,
                (chain, file_url),
            )
            return [dict(row) for row in await cursor.fetchall()]

    async def ledger_stats(self, chain: Optional[str] = None) -> dict[str, int]:
        query = "SELECT status, COUNT(*) FROM raw_files"
        params: tuple = ()
        if chain:
            query += " WHERE chain = ?"
            params = (chain,)
        query += " GROUP BY status"
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            return {row[0]: row[1] for row in await cursor.fetchall()}

    async def upsert_prices(self, rows: list[PriceRecord]) -> int:
        if not rows:
            return 0
        columns = ", ".join(PRICE_COLUMNS)
        placeholders = ", ".join(f":{c}" for c in PRICE_COLUMNS)
        updates = ", ".join(
            f"{c} = excluded.{c}" for c in PRICE_COLUMNS if c not in ("raw_file_id", "item_code")
        )
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                f"""
                INSERT INTO prices ({columns}) VALUES ({placeholders})
                ON CONFLICT (raw_file_id, item_code) DO UPDATE SET {updates}
                """,
                [r.row() for r in rows],
            )
            await db.commit()
        return len(rows)

    async def delete_prices_for_file(self, raw_file_id: int) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM prices WHERE raw_file_id = ?", (raw_file_id,))
            await db.commit()
            return cursor.rowcount

    async def count_prices(self, raw_file_id: Optional[int] = None) -> int:
        query = "SELECT COUNT(*) FROM prices"
        params: tuple = ()
        if raw_file_id is not None:
            query += " WHERE raw_file_id = ?"
            params = (raw_file_id,)
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(query, params)
            (count,) = await cursor.fetchone()
            return count

    async def fetch_prices_since(self, cutoff: datetime) -> list[dict[str, Any]]:
        # ISO strings compare correctly against a naive seconds-precision prefix
        bound = cutoff.strftime("%Y-%m-%dT%H:%M:%S")
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT chain, canonical_key, price, price_update_time, fetched_at FROM prices
                WHERE canonical_key IS NOT NULL
                  AND COALESCE(price_update_time, fetched_at) >= ?
                """,
                (bound,),
            )
            return [dict(row) for row in await cursor.fetchall()]

    async def upsert_daily_stats(self, stats: list[ProductStatsDaily]) -> int:
        if not stats:
            return 0
        async with aiosqlite.connect(self.db_path) as db:
            await db.executemany(
                """
                INSERT INTO product_stats_daily
                    (day, chain, canonical_key, avg_price, sample_count, min_price, max_price)
                VALUES
                    (:day, :chain, :canonical_key, :avg_price, :sample_count, :min_price, :max_price)
                ON CONFLICT (day, chain, canonical_key) DO UPDATE SET
                    avg_price = excluded.avg_price,
                    sample_count = excluded.sample_count,
                    min_price = excluded.min_price,
                    max_price = excluded.max_price
                """,
                [s.row() for s in stats],
            )
            await db.commit()
        return len(stats)

    async def list_daily_stats(self, chain: Optional[str] = None) -> list[ProductStatsDaily]:
        query = "SELECT day, chain, canonical_key, avg_price, sample_count, min_price, max_price FROM product_stats_daily"
        params: tuple = ()
        if chain:
            query += " WHERE chain = ?"
            params = (chain,)
        query += " ORDER BY day, chain, canonical_key"
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            return [ProductStatsDaily(**dict(row)) for row in await cursor.fetchall()]
