"""Daily per-product statistics over a trailing window."""
import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from pricefeed.config import config
from pricefeed.parse.models import ProductStatsDaily, utcnow
from pricefeed.store.base import PriceStore

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def as_utc(value: Any) -> Optional[datetime]:
    """datetime or ISO string to an aware UTC datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def window_start(now: datetime, days_back: int) -> datetime:
    """Midnight UTC ``days_back`` days before now, so touched days are recomputed whole."""
    start_day = as_utc(now).date() - timedelta(days=days_back)
    return datetime.combine(start_day, time.min, tzinfo=timezone.utc)


def effective_time(row: dict[str, Any]) -> Optional[datetime]:
    return as_utc(row.get("price_update_time")) or as_utc(row.get("fetched_at"))


def round_price(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def compute_daily_stats(
    rows: Iterable[dict[str, Any]],
    start: datetime,
    end: Optional[datetime] = None,
) -> list[ProductStatsDaily]:
    """Group rows by (day, chain, canonical_key) within [start, end].

    Rows without a canonical key or an effective timestamp are ignored.
    """
    start = as_utc(start)
    end = as_utc(end) if end is not None else None
    groups: dict[tuple[date, str, str], list[Decimal]] = defaultdict(list)

    for row in rows:
        key = row.get("canonical_key")
        if not key or row.get("price") is None:
            continue
        ts = effective_time(row)
        if ts is None or ts < start or (end is not None and ts > end):
            continue
        groups[(ts.date(), row["chain"], key)].append(Decimal(str(row["price"])))

    stats = []
    for (day, chain, key), prices in sorted(groups.items()):
        stats.append(
            ProductStatsDaily(
                day=day,
                chain=chain,
                canonical_key=key,
                avg_price=round_price(sum(prices) / len(prices)),
                sample_count=len(prices),
                min_price=float(min(prices)),
                max_price=float(max(prices)),
            )
        )
    return stats


class DailyAggregator:
    """Recomputes and upserts product_stats_daily for the trailing window."""

    def __init__(self, store: PriceStore):
        self.store = store

    async def refresh(
        self,
        days_back: int = config.AGGREGATE_DAYS_BACK,
        now: Optional[datetime] = None,
    ) -> list[ProductStatsDaily]:
        now = as_utc(now) if now is not None else utcnow()
        start = window_start(now, days_back)
        rows = await self.store.fetch_prices_since(start)
        stats = compute_daily_stats(rows, start, now)
        written = await self.store.upsert_daily_stats(stats)
        logger.info(
            f"[AGG] window {start.date().isoformat()}..{now.date().isoformat()}: "
            f"{len(rows)} rows -> {written} daily stats"
        )
        return stats
