"""Object store for raw catalog bytes.

Writes are create-if-absent by default: an existing object with the same
bytes counts as a successful write, a different object at the same key
raises BlobExistsError.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from functools import partial
from pathlib import Path
from typing import Optional

import aiofiles
from supabase import Client

from pricefeed.config import LOCAL_BLOB_DIR, config
from pricefeed.errors import BlobExistsError, StorageError
from pricefeed.store.supabase_store import create_supabase_client

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/gzip"


def object_key(chain: str, day: str, store_id: str, filename: str) -> str:
    """Key layout: chain/YYYY-MM-DD/storeId/filename."""
    safe_name = filename.replace("/", "_").replace("\\", "_")
    return f"{chain}/{day}/{store_id}/{safe_name}"


class BlobStore(ABC):
    """Key/value blob interface."""

    def __init__(self, overwrite: bool = config.STORAGE_OVERWRITE):
        self.overwrite = overwrite

    @abstractmethod
    async def get(self, path: str) -> bytes:
        ...

    @abstractmethod
    async def _create(self, path: str, data: bytes) -> bool:
        """Write if absent; False when an object already exists at path."""

    @abstractmethod
    async def _replace(self, path: str, data: bytes) -> None:
        ...

    async def put(self, path: str, data: bytes) -> str:
        if self.overwrite:
            await self._replace(path, data)
            return path

        if await self._create(path, data):
            logger.debug(f"Stored {len(data)} bytes at {path}")
            return path

        existing = await self.get(path)
        if existing != data:
            raise BlobExistsError(f"Object already exists with different content: {path}")
        logger.debug(f"Identical object already stored at {path}")
        return path


class LocalBlobStore(BlobStore):
    """Filesystem-backed store under data/blobs."""

    def __init__(self, root: Path = LOCAL_BLOB_DIR, overwrite: bool = config.STORAGE_OVERWRITE):
        super().__init__(overwrite)
        self.root = Path(root)

    def _file(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise StorageError(f"Invalid storage path: {path}")
        return target

    async def get(self, path: str) -> bytes:
        target = self._file(path)
        try:
            async with aiofiles.open(target, "rb") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise StorageError(f"Object not found: {path}") from e
        except OSError as e:
            raise StorageError(f"Read failed for {path}: {e}") from e

    async def _create(self, path: str, data: bytes) -> bool:
        target = self._file(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "xb") as f:
                await f.write(data)
        except FileExistsError:
            return False
        except OSError as e:
            raise StorageError(f"Write failed for {path}: {e}") from e
        return True

    async def _replace(self, path: str, data: bytes) -> None:
        target = self._file(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"Write failed for {path}: {e}") from e


class SupabaseBlobStore(BlobStore):
    """Supabase Storage bucket."""

    def __init__(
        self,
        client: Optional[Client] = None,
        bucket: str = config.STORAGE_BUCKET,
        overwrite: bool = config.STORAGE_OVERWRITE,
    ):
        super().__init__(overwrite)
        self.client: Client = client or create_supabase_client()
        self.bucket = bucket

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, *args, **kwargs))

    def _upload(self, path: str, data: bytes, upsert: bool):
        return self.client.storage.from_(self.bucket).upload(
            path,
            data,
            file_options={"content-type": CONTENT_TYPE, "upsert": "true" if upsert else "false"},
        )

    async def get(self, path: str) -> bytes:
        try:
            return await self._run(self.client.storage.from_(self.bucket).download, path)
        except Exception as e:
            raise StorageError(f"Download from storage failed for {path}: {e}") from e

    async def _create(self, path: str, data: bytes) -> bool:
        try:
            await self._run(self._upload, path, data, False)
        except Exception as e:
            if _is_duplicate(e):
                return False
            raise StorageError(f"Upload failed for {path}: {e}") from e
        return True

    async def _replace(self, path: str, data: bytes) -> None:
        try:
            await self._run(self._upload, path, data, True)
        except Exception as e:
            raise StorageError(f"Upload failed for {path}: {e}") from e


def _is_duplicate(error: Exception) -> bool:
    text = str(error).lower()
    return "duplicate" in text or "already exists" in text or "409" in text
