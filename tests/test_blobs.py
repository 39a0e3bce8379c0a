"""Tests for LocalBlobStore."""

from __future__ import annotations

import pytest

from stratus.access.blobs import LocalBlobStore
from stratus.access.protocol import BlobStore


@pytest.fixture
def store(tmp_path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path)


class TestLocalBlobStore:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, BlobStore)

    async def test_put_and_get(self, store, tmp_path):
        await store.put("alice/1_a.txt", b"hello")
        assert (tmp_path / "alice" / "1_a.txt").read_bytes() == b"hello"
        assert await store.get("alice/1_a.txt") == b"hello"

    async def test_remove(self, store, tmp_path):
        await store.put("alice/1_a.txt", b"hello")
        await store.remove("alice/1_a.txt")
        assert not (tmp_path / "alice" / "1_a.txt").exists()
        with pytest.raises(FileNotFoundError):
            await store.get("alice/1_a.txt")

    async def test_remove_missing_is_success(self, store):
        await store.remove("alice/never-written")

    async def test_escape_rejected(self, store):
        with pytest.raises(PermissionError):
            await store.put("../outside.txt", b"x")
        with pytest.raises(PermissionError):
            await store.remove("alice/../../outside.txt")

    async def test_invalid_locator(self, store):
        with pytest.raises(ValueError):
            await store.get("")
        with pytest.raises(ValueError):
            await store.get("a\0b")

    async def test_leading_slash_stays_inside_root(self, store, tmp_path):
        await store.put("/alice/b.txt", b"x")
        assert (tmp_path / "alice" / "b.txt").exists()
