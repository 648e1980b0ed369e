"""Main entry point with CLI."""
import argparse
import asyncio
import logging
import sys
from typing import Optional

from pricefeed.chains.base import ChainSpec, DiscoveryKind
from pricefeed.chains.registry import CHAINS, get_chain
from pricefeed.config import Config, config
from pricefeed.jobs.aggregate import DailyAggregator
from pricefeed.jobs.collect import CollectRunner
from pricefeed.jobs.decode import DecodeRunner
from pricefeed.logging_conf import setup_logging
from pricefeed.store.factory import open_blobs, open_store

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Supermarket price catalog ingestion")
    parser.add_argument("--local", action="store_true", help="Use local SQLite + filesystem backends")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    def add_chain(p: argparse.ArgumentParser) -> None:
        p.add_argument("--chain", required=True, choices=sorted(CHAINS), help="Chain identifier")

    def add_collect_options(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--url",
            action="append",
            default=None,
            help="Seed URL (repeatable); bypasses discovery",
        )
        p.add_argument("--max-pages", type=int, default=None, help=f"Listing page ceiling (default: {config.MAX_PAGES})")
        p.add_argument(
            "--max-downloads",
            type=int,
            default=None,
            help=f"Cap on successful downloads (default: {config.MAX_DOWNLOADS})",
        )
        p.add_argument(
            "--concurrency",
            type=int,
            default=None,
            help=f"Download workers (default: {config.CONCURRENCY})",
        )
        p.add_argument(
            "--stop-after-minutes",
            type=int,
            default=config.STOP_AFTER_MINUTES,
            help="Stop starting new downloads after N minutes",
        )
        p.add_argument(
            "--max-consecutive-errors",
            type=int,
            default=config.MAX_CONSECUTIVE_ERRORS,
            help="Stop after N failed downloads in a row",
        )
        p.add_argument(
            "--discovery",
            choices=[k.value for k in DiscoveryKind],
            default=None,
            help="Override the chain's discovery strategy",
        )

    def add_decode_options(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--limit",
            type=int,
            default=None,
            help=f"Files to decode per run (default: {config.DECODE_BATCH_LIMIT})",
        )

    def add_aggregate_options(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--days-back",
            type=int,
            default=None,
            help=f"Trailing window in days (default: {config.AGGREGATE_DAYS_BACK})",
        )

    collect = sub.add_parser("collect", help="Discover and download catalog files")
    add_chain(collect)
    add_collect_options(collect)

    decode = sub.add_parser("decode", help="Decode downloaded catalogs into price rows")
    add_chain(decode)
    add_decode_options(decode)
    decode.add_argument("--reprocess", type=int, default=None, metavar="RAW_FILE_ID", help="Re-decode one file")

    aggregate = sub.add_parser("aggregate", help="Refresh daily product statistics")
    add_aggregate_options(aggregate)

    run_all = sub.add_parser("run-all", help="collect, decode, then aggregate")
    add_chain(run_all)
    add_collect_options(run_all)
    add_decode_options(run_all)
    add_aggregate_options(run_all)

    stats = sub.add_parser("stats", help="Ledger status counts")
    stats.add_argument("--chain", default=None, choices=sorted(CHAINS))

    return parser.parse_args(argv)


async def collect(args: argparse.Namespace, chain: ChainSpec, store, blobs) -> dict:
    runner = CollectRunner(
        chain,
        store,
        blobs,
        seeds=args.url,
        max_pages=args.max_pages or config.MAX_PAGES,
        max_downloads=args.max_downloads if args.max_downloads is not None else config.MAX_DOWNLOADS,
        concurrency=args.concurrency or config.CONCURRENCY,
        stop_after_minutes=args.stop_after_minutes,
        max_consecutive_errors=args.max_consecutive_errors,
        kind=DiscoveryKind(args.discovery) if args.discovery else None,
    )
    return await runner.run()


async def decode(args: argparse.Namespace, chain: ChainSpec, store, blobs) -> dict:
    runner = DecodeRunner(chain, store, blobs, limit=args.limit or config.DECODE_BATCH_LIMIT)
    if getattr(args, "reprocess", None) is not None:
        status = await runner.reprocess(args.reprocess)
        logger.info(f"Reprocessed raw file {args.reprocess}: {status.value}")
        return {"reprocessed": args.reprocess, "status": status.value}
    return await runner.run()


async def aggregate(args: argparse.Namespace, store) -> int:
    days_back = args.days_back if args.days_back is not None else config.AGGREGATE_DAYS_BACK
    stats = await DailyAggregator(store).refresh(days_back=days_back)
    return len(stats)


async def run(args: argparse.Namespace) -> None:
    store = await open_store()
    try:
        if args.command == "stats":
            counts = await store.ledger_stats(args.chain)
            logger.info(f"Ledger{' ' + args.chain if args.chain else ''}: {counts or 'empty'}")
            return

        if args.command == "aggregate":
            await aggregate(args, store)
            return

        chain = get_chain(args.chain)
        blobs = open_blobs()
        if args.command in ("collect", "run-all"):
            summary = await collect(args, chain, store, blobs)
            logger.info(f"Collect summary: {summary.get('downloaded', 0)} downloaded")
        if args.command in ("decode", "run-all"):
            await decode(args, chain, store, blobs)
        if args.command == "run-all":
            await aggregate(args, store)
    finally:
        await store.close()


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging("DEBUG" if args.verbose else None)

    if args.local:
        Config.use_local()

    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    logger.info("=" * 60)
    logger.info(f"Price ingestion: {args.command}")
    logger.info(f"Store backend: {config.STORE_BACKEND} | Blob backend: {config.BLOB_BACKEND}")
    logger.info("=" * 60)

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
