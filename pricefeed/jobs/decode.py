"""Decode stage: downloaded ledger entries to price rows."""
import logging
import uuid
from typing import Optional

from pricefeed.chains.base import ChainSpec
from pricefeed.config import config
from pricefeed.errors import BatchWriteError, SchemaError, StorageError
from pricefeed.jobs.metrics import Metrics
from pricefeed.jobs.metrics_exporter import MetricsExporter
from pricefeed.jobs.upserter import BatchUpserter
from pricefeed.parse.catalog import DecodedCatalog, decode_catalog, get_schema
from pricefeed.parse.models import FileStatus, PriceRecord, RawFileRecord, utcnow
from pricefeed.store.base import PriceStore
from pricefeed.store.blob import BlobStore

logger = logging.getLogger(__name__)


def build_rows(record: RawFileRecord, catalog: DecodedCatalog) -> list[PriceRecord]:
    fetched_at = utcnow()
    return [
        PriceRecord(
            raw_file_id=record.id,
            chain=record.chain,
            sub_chain_id=catalog.sub_chain_id,
            store_id=catalog.store_id,
            bikoret_no=catalog.bikoret_no,
            fetched_at=fetched_at,
            **item,
        )
        for item in catalog.items
    ]


class DecodeRunner:
    """Decodes the most recent downloaded catalogs of one chain."""

    def __init__(
        self,
        chain: ChainSpec,
        store: PriceStore,
        blobs: BlobStore,
        limit: int = config.DECODE_BATCH_LIMIT,
        upserter: Optional[BatchUpserter] = None,
        exporter: Optional[MetricsExporter] = None,
    ):
        self.chain = chain
        self.store = store
        self.blobs = blobs
        self.limit = limit
        self.schema = get_schema(chain.schema)
        self.upserter = upserter or BatchUpserter(store)
        self.run_id = str(uuid.uuid4())
        self.exporter = exporter or MetricsExporter(self.run_id)
        self.metrics = Metrics()

    async def run(self) -> dict:
        entries = await self.store.list_downloaded(self.chain.name, self.chain.catalog_marker, self.limit)
        self.metrics.total = len(entries)
        logger.info(f"[PARSE] {self.chain.name}: {len(entries)} downloaded catalogs to decode")

        for record in entries:
            try:
                await self.decode_file(record)
            except Exception as e:
                logger.error(f"[FAIL] unexpected error decoding file {record.id}: {e}", exc_info=True)
                await self._fail(record, f"{type(e).__name__}: {e}")

        summary = self.metrics.get_summary()
        logger.info(
            f"[PARSE] {self.chain.name} done: parsed={summary.get('parsed', 0)} "
            f"failed={summary.get('failed', 0)} rows={summary.get('rows', 0)}"
        )
        await self.exporter.export("decode", self.chain.name, summary)
        return summary

    async def reprocess(self, raw_file_id: int) -> FileStatus:
        """Supersede one file's rows by decoding it again."""
        record = await self.store.get_raw_file_by_id(raw_file_id)
        if record is None:
            raise ValueError(f"Raw file {raw_file_id} not found")
        if record.status not in (FileStatus.DOWNLOADED, FileStatus.PARSED):
            raise ValueError(
                f"Raw file {raw_file_id} is {record.status.value}; only downloaded or parsed files can be reprocessed"
            )

        deleted = await self.store.delete_prices_for_file(raw_file_id)
        logger.info(f"[PARSE] reprocessing raw file {raw_file_id}: removed {deleted} existing rows")
        return await self.decode_file(record)

    async def decode_file(self, record: RawFileRecord) -> FileStatus:
        """Decode and write one file; returns its resulting ledger status."""
        self.metrics.increment("processed")
        if not record.storage_path:
            return await self._fail(record, "No storage path recorded")

        try:
            data = await self.blobs.get(record.storage_path)
            catalog = decode_catalog(data, fallback_store_id=record.store_id, schema=self.schema)
        except (StorageError, SchemaError) as e:
            return await self._fail(record, str(e))

        if catalog.store_id != record.store_id:
            logger.info(f"[PARSE] {record.id}: store id {record.store_id} -> {catalog.store_id} (from XML)")
            await self.store.update_store_id(record.id, catalog.store_id)

        rows = build_rows(record, catalog)
        try:
            written = await self.upserter.write(rows)
        except BatchWriteError as e:
            self.metrics.increment("rows", e.written)
            return await self._fail(record, str(e))

        await self.store.mark_parsed(record.id)
        self.metrics.increment("parsed")
        self.metrics.increment("rows", written)
        rejected = sum(catalog.rejected.values())
        self.metrics.increment("rejected_rows", rejected)
        logger.info(
            f"[PARSE] {record.chain} store {catalog.store_id} file {record.id}: "
            f"{written} rows ({rejected} rejected)"
        )
        return FileStatus.PARSED

    async def _fail(self, record: RawFileRecord, error: str) -> FileStatus:
        await self.store.mark_failed(record.id, error)
        self.metrics.increment("failed")
        logger.warning(f"[FAIL] decode {record.chain} file {record.id} ({record.storage_path}): {error}")
        return FileStatus.FAILED
