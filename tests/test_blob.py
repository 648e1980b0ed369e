"""Tests for the local blob store."""
import asyncio

import pytest

from pricefeed.errors import BlobExistsError, StorageError
from pricefeed.store.blob import LocalBlobStore, object_key


def test_object_key_layout():
    """Test chain/day/store/filename keys."""
    assert object_key("shufersal", "2026-01-14", "274", "a/b.gz") == "shufersal/2026-01-14/274/a_b.gz"


def test_create_if_absent(tmp_path):
    """Test same bytes succeed and different bytes conflict."""
    blobs = LocalBlobStore(tmp_path, overwrite=False)
    asyncio.run(blobs.put("c/d/1/f.gz", b"one"))
    asyncio.run(blobs.put("c/d/1/f.gz", b"one"))
    with pytest.raises(BlobExistsError):
        asyncio.run(blobs.put("c/d/1/f.gz", b"two"))
    assert asyncio.run(blobs.get("c/d/1/f.gz")) == b"one"


def test_overwrite_mode_replaces(tmp_path):
    """Test the overwrite flag."""
    blobs = LocalBlobStore(tmp_path, overwrite=True)
    asyncio.run(blobs.put("k.gz", b"one"))
    asyncio.run(blobs.put("k.gz", b"two"))
    assert asyncio.run(blobs.get("k.gz")) == b"two"


def test_paths_cannot_escape_root(tmp_path):
    """Test traversal keys are rejected."""
    blobs = LocalBlobStore(tmp_path / "root")
    with pytest.raises(StorageError):
        asyncio.run(blobs.put("../outside.gz", b"x"))

