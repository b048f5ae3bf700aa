"""Unit tests for LocalBlobStore."""

from __future__ import annotations

import pytest

from docingest.utils.errors import BlobNotFoundError, BlobStoreError


class TestLocalBlobStore:
    @pytest.mark.asyncio
    async def test_put_get_exists(self, blob_store) -> None:
        await blob_store.put("acme/doc-1/report.txt", b"hello")

        assert await blob_store.exists("acme/doc-1/report.txt")
        assert await blob_store.get("acme/doc-1/report.txt") == b"hello"

    @pytest.mark.asyncio
    async def test_get_missing_raises(self, blob_store) -> None:
        with pytest.raises(BlobNotFoundError):
            await blob_store.get("acme/none.txt")

    @pytest.mark.asyncio
    async def test_delete_is_idempotent_and_prunes_directories(
        self, blob_store, tmp_path
    ) -> None:
        await blob_store.put("acme/doc-1/report.txt", b"hello")

        assert await blob_store.delete("acme/doc-1/report.txt") is True
        assert await blob_store.delete("acme/doc-1/report.txt") is False
        assert not (tmp_path / "blobs" / "acme").exists()

    @pytest.mark.asyncio
    async def test_rejects_paths_outside_root(self, blob_store) -> None:
        with pytest.raises(BlobStoreError, match="escapes"):
            await blob_store.put("../outside.txt", b"x")

    @pytest.mark.asyncio
    async def test_no_partial_file_left(self, blob_store, tmp_path) -> None:
        await blob_store.put("acme/a.txt", b"data")
        assert not (tmp_path / "blobs" / "acme" / "a.txt.part").exists()
