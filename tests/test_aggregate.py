"""Tests for daily statistics."""
import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal

from pricefeed.jobs.aggregate import DailyAggregator, compute_daily_stats, round_price, window_start
from pricefeed.parse.models import PriceRecord

NOW = datetime(2026, 1, 14, 12, 0, tzinfo=timezone.utc)


def price(item_code, value, key="חלב", when=datetime(2026, 1, 14, 5, 1), chain="shufersal", raw_file_id=1, **kw):
    return PriceRecord(
        raw_file_id=raw_file_id,
        chain=chain,
        item_code=item_code,
        item_name="x",
        canonical_key=key,
        price=value,
        price_update_time=when,
        **kw,
    )


def test_window_starts_at_midnight():
    """Test whole days are recomputed."""
    assert window_start(NOW, 1) == datetime(2026, 1, 13, tzinfo=timezone.utc)
    assert window_start(NOW, 0) == datetime(2026, 1, 14, tzinfo=timezone.utc)


def test_compute_average_min_max():
    """Test 10/12/11 in one group."""
    rows = [
        {"chain": "shufersal", "canonical_key": "חלב", "price": p, "price_update_time": "2026-01-14T05:00:00"}
        for p in (10, 12, 11)
    ]
    [stat] = compute_daily_stats(rows, window_start(NOW, 1), NOW)
    assert stat.day == date(2026, 1, 14)
    assert stat.avg_price == 11.0
    assert stat.min_price == 10.0
    assert stat.max_price == 12.0
    assert stat.sample_count == 3


def test_average_rounds_half_up():
    """Test two-decimal rounding."""
    rows = [
        {"chain": "c", "canonical_key": "k", "price": p, "price_update_time": "2026-01-14T05:00:00"}
        for p in (1.00, 1.01)
    ]
    [stat] = compute_daily_stats(rows, window_start(NOW, 1))
    assert stat.avg_price == 1.01
    assert round_price(Decimal("2.675")) == 2.68


def test_rows_without_key_or_outside_window_are_ignored():
    """Test filtering."""
    rows = [
        {"chain": "c", "canonical_key": None, "price": 5, "price_update_time": "2026-01-14T05:00:00"},
        {"chain": "c", "canonical_key": "k", "price": 5, "price_update_time": "2026-01-01T05:00:00"},
        {"chain": "c", "canonical_key": "k", "price": 7, "price_update_time": None,
         "fetched_at": "2026-01-13T22:00:00+00:00"},
    ]
    stats = compute_daily_stats(rows, window_start(NOW, 1), NOW)
    assert [(s.day, s.sample_count, s.avg_price) for s in stats] == [(date(2026, 1, 13), 1, 7.0)]


def test_groups_by_day_and_chain():
    """Test grouping keys."""
    rows = [
        {"chain": "a", "canonical_key": "k", "price": 1, "price_update_time": "2026-01-13T05:00:00"},
        {"chain": "a", "canonical_key": "k", "price": 3, "price_update_time": "2026-01-14T05:00:00"},
        {"chain": "b", "canonical_key": "k", "price": 5, "price_update_time": "2026-01-14T05:00:00"},
    ]
    stats = compute_daily_stats(rows, window_start(NOW, 2))
    assert [(s.day.isoformat(), s.chain, s.avg_price) for s in stats] == [
        ("2026-01-13", "a", 1.0),
        ("2026-01-14", "a", 3.0),
        ("2026-01-14", "b", 5.0),
    ]


def test_refresh_is_idempotent(store):
    """Test refreshing twice yields identical stored statistics."""
    rows = [price("1", 10.0), price("2", 12.0), price("3", 11.0), price("4", 4.0, key=None)]
    asyncio.run(store.upsert_prices(rows))

    aggregator = DailyAggregator(store)
    first = asyncio.run(aggregator.refresh(days_back=1, now=NOW))
    stored_first = asyncio.run(store.list_daily_stats())
    second = asyncio.run(aggregator.refresh(days_back=1, now=NOW))
    stored_second = asyncio.run(store.list_daily_stats())

    assert first == second
    assert stored_first == stored_second
    assert len(stored_second) == 1
    stat = stored_second[0]
    assert (stat.avg_price, stat.min_price, stat.max_price, stat.sample_count) == (11.0, 10.0, 12.0, 3)


def test_refresh_recomputes_touched_day(store):
    """Test new rows on a day replace that day's statistics."""
    asyncio.run(store.upsert_prices([price("1", 10.0)]))
    aggregator = DailyAggregator(store)
    asyncio.run(aggregator.refresh(days_back=1, now=NOW))

    asyncio.run(store.upsert_prices([price("1", 20.0, raw_file_id=2)]))
    asyncio.run(aggregator.refresh(days_back=1, now=NOW))
    [stat] = asyncio.run(store.list_daily_stats("shufersal"))
    assert stat.sample_count == 2
    assert stat.avg_price == 15.0


def test_effective_time_falls_back_to_fetch_time(store):
    """Test rows without an update time use fetched_at."""
    row = price("1", 8.0, when=None, fetched_at=datetime(2026, 1, 14, 9, 0, tzinfo=timezone.utc))
    asyncio.run(store.upsert_prices([row]))
    [stat] = asyncio.run(DailyAggregator(store).refresh(days_back=0, now=NOW))
    assert stat.day == date(2026, 1, 14)
    assert stat.avg_price == 8.0
