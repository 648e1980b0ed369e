"""Deduplicating downloader: one candidate URL in, one ledger outcome out.

Order per file: ledger lookup (no network if already recorded), fetch,
content hash, gzip signature check, store-id resolution, upload, and
only then the ``downloaded`` ledger write.
"""
import hashlib
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from pricefeed.auth.login_detector import describe_non_gzip, is_gzip
from pricefeed.chains.base import ChainSpec
from pricefeed.config import config
from pricefeed.errors import AuthenticityError, IdentityError, StorageError, TransportError
from pricefeed.fetch.client import FetchClient
from pricefeed.parse.filenames import basename_from_url, filename_from_disposition
from pricefeed.parse.models import FileStatus, RawFileRecord, utcnow
from pricefeed.parse.redact import ledger_error, redact_string
from pricefeed.store.base import PriceStore
from pricefeed.store.blob import BlobStore, object_key

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    DOWNLOADED = "downloaded"
    FAILED = "failed"
    SKIPPED = "skipped"
    ALREADY_RECORDED = "already_recorded"


@dataclass
class DownloadResult:
    url: str
    outcome: Outcome
    record: Optional[RawFileRecord] = None


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def choose_filename(
    chain: str,
    digest: str,
    declared_name: Optional[str],
    final_url: Optional[str],
    requested_url: Optional[str],
) -> str:
    """Disposition name, then a .gz URL basename, then a hash-derived name."""
    if declared_name:
        return declared_name
    for url in (final_url, requested_url):
        name = basename_from_url(url)
        if name and name.lower().endswith(".gz"):
            return name
    return f"{chain}_{digest[:12]}.gz"


class Downloader:
    """Fetches catalog files for one chain and records every outcome."""

    def __init__(
        self,
        chain: ChainSpec,
        client: FetchClient,
        store: PriceStore,
        blobs: BlobStore,
        run_date: Optional[date] = None,
        max_attempts: int = config.MAX_FILE_ATTEMPTS,
    ):
        self.chain = chain
        self.client = client
        self.store = store
        self.blobs = blobs
        self.run_date = run_date or utcnow().date()
        self.max_attempts = max_attempts

    async def lookup(self, url: str) -> Optional[RawFileRecord]:
        return await self.store.get_raw_file(self.chain.name, self.chain.ledger_key(url))

    def needs_fetch(self, existing: Optional[RawFileRecord]) -> bool:
        """New URLs, and failed ones with attempts left."""
        if existing is None:
            return True
        return existing.status == FileStatus.FAILED and existing.attempts < self.max_attempts

    async def download(self, url: str) -> DownloadResult:
        existing = await self.lookup(url)
        if not self.needs_fetch(existing):
            logger.debug(f"[SKIP] already recorded ({existing.status.value}): {redact_string(url)}")
            return DownloadResult(url, Outcome.ALREADY_RECORDED, existing)
        return await self.fetch(url, existing)

    async def fetch(self, url: str, existing: Optional[RawFileRecord] = None) -> DownloadResult:
        attempts = (existing.attempts if existing else 0) + 1
        logger.info(f"[DL] {self.chain.name} attempt {attempts}: {redact_string(url)}")

        try:
            response = await self.client.get(url)
            if not response.is_success:
                raise TransportError(f"Download HTTP {response.status_code}", status_code=response.status_code)
        except TransportError as e:
            return await self.fail(url, attempts, str(e))

        data = response.content
        digest = sha256_hex(data)
        final_url = str(response.url)
        declared_name = filename_from_disposition(response.headers.get("content-disposition"))

        try:
            store_id = self.identify(data, declared_name, final_url, url)
        except AuthenticityError as e:
            return await self.fail(url, attempts, str(e), content_hash=digest)
        except IdentityError as e:
            return await self.finish(url, FileStatus.SKIPPED, attempts, error=str(e), content_hash=digest)

        filename = choose_filename(self.chain.name, digest, declared_name, final_url, url)
        path = object_key(self.chain.name, self.run_date.isoformat(), store_id, filename)
        try:
            await self.blobs.put(path, data)
        except StorageError as e:
            return await self.fail(
                url, attempts, f"Storage upload failed: {e}", store_id=store_id, content_hash=digest
            )

        return await self.finish(
            url,
            FileStatus.DOWNLOADED,
            attempts,
            store_id=store_id,
            storage_path=path,
            content_hash=digest,
        )

    def identify(self, data: bytes, declared_name: Optional[str], final_url: str, url: str) -> str:
        """Signature check, then store id resolution.

        Raises AuthenticityError for a payload without the gzip signature
        and IdentityError when no grammar yields a store id.
        """
        if not is_gzip(data):
            message, head = describe_non_gzip(data, final_url)
            raise AuthenticityError(message, head=head)

        store_id = self.chain.resolve_store_id(declared_name, final_url, url)
        if not store_id:
            name = declared_name or basename_from_url(final_url) or url
            raise IdentityError(f"no storeId in filename: {name}")
        return store_id

    async def fail(self, url: str, attempts: int, error: str, **fields) -> DownloadResult:
        return await self.finish(url, FileStatus.FAILED, attempts, error=error, **fields)

    async def finish(
        self,
        url: str,
        status: FileStatus,
        attempts: int,
        error: Optional[str] = None,
        store_id: Optional[str] = None,
        storage_path: Optional[str] = None,
        content_hash: Optional[str] = None,
    ) -> DownloadResult:
        """Upsert the ledger entry and append its history event."""
        record = RawFileRecord(
            chain=self.chain.name,
            store_id=store_id,
            file_url=self.chain.ledger_key(url),
            storage_path=storage_path,
            content_hash=content_hash,
            status=status,
            error=ledger_error(error) if error else None,
            attempts=attempts,
        )
        record = await self.store.upsert_raw_file(record)
        await self.store.log_event(record)

        if status == FileStatus.DOWNLOADED:
            logger.info(f"[OK] {self.chain.name} store {store_id}: {storage_path}")
            outcome = Outcome.DOWNLOADED
        elif status == FileStatus.SKIPPED:
            logger.info(f"[SKIP] {record.error}")
            outcome = Outcome.SKIPPED
        else:
            logger.warning(f"[FAIL] {redact_string(url)}: {record.error}")
            outcome = Outcome.FAILED
        return DownloadResult(url, outcome, record)
