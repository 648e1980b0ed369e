"""Build the configured store backends."""
from pricefeed.config import LOCAL_BLOB_DIR, LOCAL_DB, config
from pricefeed.store.base import PriceStore
from pricefeed.store.blob import BlobStore, LocalBlobStore, SupabaseBlobStore
from pricefeed.store.sqlite_store import SQLiteStore
from pricefeed.store.supabase_store import SupabaseStore


async def open_store() -> PriceStore:
    if config.STORE_BACKEND == "sqlite":
        store: PriceStore = SQLiteStore(LOCAL_DB)
    else:
        store = SupabaseStore()
    await store.initialize()
    return store


def open_blobs() -> BlobStore:
    if config.BLOB_BACKEND == "local":
        return LocalBlobStore(LOCAL_BLOB_DIR)
    return SupabaseBlobStore()
