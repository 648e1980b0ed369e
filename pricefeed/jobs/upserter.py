"""Batched, idempotent writes of price rows."""
import logging

from pricefeed.config import config
from pricefeed.errors import BatchWriteError
from pricefeed.parse.models import PriceRecord
from pricefeed.store.base import PriceStore

logger = logging.getLogger(__name__)


class BatchUpserter:
    """Writes rows in fixed-size batches keyed by (raw_file_id, item_code).

    Stops at the first failing batch; batches already written stay written.
    """

    def __init__(self, store: PriceStore, batch_size: int = config.UPSERT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.store = store
        self.batch_size = batch_size

    async def write(self, rows: list[PriceRecord]) -> int:
        written = 0
        for start in range(0, len(rows), self.batch_size):
            batch = rows[start : start + self.batch_size]
            batch_no = start // self.batch_size + 1
            try:
                written += await self.store.upsert_prices(batch)
            except Exception as e:
                raise BatchWriteError(
                    f"Batch {batch_no} upsert failed after {written} rows: {e}", written=written
                ) from e
            logger.debug(f"Upserted batch {batch_no} ({len(batch)} rows)")
        return written
