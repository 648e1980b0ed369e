"""Collect stage: discovery then downloads, for one chain."""
import asyncio
import logging
import uuid
from typing import Awaitable, Optional, TypeVar

import httpx

from pricefeed.chains.base import ChainSpec, DiscoveryKind
from pricefeed.chains.registry import make_discoverer, open_session
from pricefeed.config import config
from pricefeed.errors import DiscoveryError
from pricefeed.fetch.client import FetchClient
from pricefeed.jobs.downloader import Downloader, DownloadResult, Outcome
from pricefeed.jobs.metrics import Metrics
from pricefeed.jobs.metrics_exporter import MetricsExporter
from pricefeed.jobs.run_control import RunControl
from pricefeed.parse.links import dedupe
from pricefeed.parse.redact import redact_string
from pricefeed.store.base import PriceStore
from pricefeed.store.blob import BlobStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CollectRunner:
    """Discovers catalog URLs for a chain and feeds them to the downloader.

    Workers pull from a queue in discovery order; with the default
    concurrency of 1 the run is strictly sequential. Each file gets its own
    deadline, and any failure inside it becomes a ledger entry instead of
    ending the run.
    """

    def __init__(
        self,
        chain: ChainSpec,
        store: PriceStore,
        blobs: BlobStore,
        seeds: Optional[list[str]] = None,
        max_pages: int = config.MAX_PAGES,
        max_downloads: Optional[int] = config.MAX_DOWNLOADS,
        stop_after_minutes: Optional[int] = config.STOP_AFTER_MINUTES,
        max_consecutive_errors: Optional[int] = config.MAX_CONSECUTIVE_ERRORS,
        concurrency: int = config.CONCURRENCY,
        kind: Optional[DiscoveryKind] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        exporter: Optional[MetricsExporter] = None,
        discovery_timeout: float = config.DISCOVERY_TIMEOUT,
        download_timeout: float = config.DOWNLOAD_TIMEOUT,
        rate_per_domain: float = config.RATE_PER_DOMAIN,
    ):
        self.chain = chain
        self.store = store
        self.blobs = blobs
        self.seeds = dedupe(seeds or config.seed_urls(chain.name))
        self.max_pages = max_pages
        self.concurrency = max(1, concurrency)
        self.kind = kind or chain.discovery_kind()
        self.transport = transport
        self.discovery_timeout = discovery_timeout
        self.download_timeout = download_timeout
        self.rate_per_domain = rate_per_domain

        self.run_id = str(uuid.uuid4())
        self.exporter = exporter or MetricsExporter(self.run_id)
        self.run_control = RunControl(
            max_downloads=max_downloads,
            stop_after_minutes=stop_after_minutes,
            max_consecutive_errors=max_consecutive_errors,
        )
        self.metrics = Metrics()

    async def run(self) -> dict:
        logger.info(f"Run ID: {self.run_id} (collect {self.chain.name}, {self.kind.value})")
        async with open_session(self.chain, self.kind, transport=self.transport) as session:
            client = FetchClient(session, rate_per_domain=self.rate_per_domain)
            urls = await self.resolve_urls(client)
            self.metrics.total = len(urls)
            self.metrics.increment("discovered", len(urls))

            downloader = Downloader(self.chain, client, self.store, self.blobs)
            try:
                await self.download_all(downloader, urls)
            finally:
                summary = await self._final_report(client)
        return summary

    async def resolve_urls(self, client: FetchClient) -> list[str]:
        """Seed list when provided, otherwise the chain's discovery strategy.

        Seeds skip enumeration only; the strategy still sets up the session
        (browser login) so the downloader is authenticated.
        """
        discoverer = make_discoverer(self.chain, client, self.kind, max_pages=self.max_pages)
        if self.seeds:
            logger.info(f"[DISCOVER] {self.chain.name}: using {len(self.seeds)} seed URLs, discovery bypassed")
            await self._within_deadline(discoverer.authenticate(), "session setup")
            return self.seeds
        return await self._within_deadline(discoverer.discover(), "discovery")

    async def _within_deadline(self, step: Awaitable[T], label: str) -> T:
        try:
            return await asyncio.wait_for(step, timeout=self.discovery_timeout)
        except asyncio.TimeoutError as e:
            raise DiscoveryError(
                f"{self.chain.name}: {label} exceeded {self.discovery_timeout}s"
            ) from e

    async def download_all(self, downloader: Downloader, urls: list[str]) -> None:
        queue: asyncio.Queue[str] = asyncio.Queue()
        for url in urls:
            queue.put_nowait(url)

        async def worker() -> None:
            while True:
                try:
                    url = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                try:
                    should_stop, reason = self.run_control.should_stop()
                    if should_stop:
                        if not self.run_control.stop_reason:
                            self.run_control.stop_reason = reason
                            logger.warning(f"Stop condition met: {reason}")
                        continue
                    await self.process_url(downloader, url)
                finally:
                    queue.task_done()

        await asyncio.gather(*(worker() for _ in range(self.concurrency)))

    async def process_url(self, downloader: Downloader, url: str) -> None:
        existing = await downloader.lookup(url)
        if not downloader.needs_fetch(existing):
            self.metrics.increment("already_recorded")
            logger.debug(f"[SKIP] already recorded ({existing.status.value}): {redact_string(url)}")
            return

        if not self.run_control.try_reserve():
            return

        self.metrics.increment("processed")
        try:
            result = await asyncio.wait_for(downloader.fetch(url, existing), timeout=self.download_timeout)
        except asyncio.TimeoutError:
            attempts = (existing.attempts if existing else 0) + 1
            result = await downloader.fail(url, attempts, f"Download timed out after {self.download_timeout}s")
        except Exception as e:
            logger.error(f"[FAIL] unexpected error for {redact_string(url)}: {e}", exc_info=True)
            attempts = (existing.attempts if existing else 0) + 1
            result = await downloader.fail(url, attempts, f"{type(e).__name__}: {e}")

        self.record(result)
        if self.metrics.get("processed") % 10 == 0:
            self.metrics.report()

    def record(self, result: DownloadResult) -> None:
        if result.outcome == Outcome.DOWNLOADED:
            self.run_control.record_download()
            self.metrics.increment("downloaded")
            return

        self.run_control.release()
        if result.outcome == Outcome.SKIPPED:
            self.run_control.record_skip()
            self.metrics.increment("skipped")
        else:
            self.run_control.record_error()
            self.metrics.increment("failed")

    async def _final_report(self, client: FetchClient) -> dict:
        summary = self.metrics.get_summary()
        run_summary = self.run_control.get_summary()
        summary.update(
            {
                "requests": client.request_count,
                "retries": client.retry_count,
                "stop_reason": run_summary["stop_reason"],
            }
        )

        logger.info("=" * 60)
        logger.info(f"FINAL REPORT: collect {self.chain.name}")
        logger.info(f"Run ID: {self.run_id}")
        logger.info(f"Elapsed: {run_summary['elapsed_minutes']:.2f} minutes")
        logger.info(f"Discovered: {summary.get('discovered', 0)}")
        logger.info(f"Already recorded: {summary.get('already_recorded', 0)}")
        logger.info(f"Downloaded: {summary.get('downloaded', 0)}")
        logger.info(f"Skipped: {summary.get('skipped', 0)}")
        logger.info(f"Failed: {summary.get('failed', 0)}")
        logger.info(f"HTTP requests: {client.request_count} (retries: {client.retry_count})")
        if run_summary["stop_reason"]:
            logger.info(f"Stopped early: {run_summary['stop_reason']}")
        logger.info("=" * 60)

        await self.exporter.export("collect", self.chain.name, summary)
        return summary
