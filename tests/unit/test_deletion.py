"""Unit tests for the DeletionCoordinator."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from docingest.models.document import Document
from docingest.models.fragment import Fragment, VectorRecord
from docingest.pipeline.deletion import DeletionCoordinator
from docingest.utils.errors import BlobStoreError, DocumentNotFoundError, VectorStoreError

_OWNER = "acme"


async def _seed(metadata_store, blob_store, vector_store, doc_id: str = "doc-1", vectors: int = 5):
    blob_path = f"{_OWNER}/{doc_id}/report.txt"
    await blob_store.put(blob_path, b"raw bytes")
    await metadata_store.create(
        Document(id=doc_id, owner_id=_OWNER, title="Report", raw_blob_path=blob_path)
    )
    await metadata_store.put_batches(doc_id, [[Fragment(text="t", order=0, document_id=doc_id)]])
    await vector_store.upsert(
        _OWNER,
        [
            VectorRecord(id=f"{doc_id}-{i}", vector=[0.1], metadata={"document_id": doc_id})
            for i in range(vectors)
        ],
    )
    return blob_path


class TestDeletionCoordinator:
    @pytest.mark.asyncio
    async def test_removes_blob_row_batches_and_vectors(
        self, metadata_store, blob_store, fake_vector_store
    ) -> None:
        blob_path = await _seed(metadata_store, blob_store, fake_vector_store)
        await _seed(metadata_store, blob_store, fake_vector_store, doc_id="doc-2", vectors=3)
        coordinator = DeletionCoordinator(metadata_store, blob_store, fake_vector_store)

        result = await coordinator.delete("doc-1", _OWNER)

        assert result.blob_removed is True
        assert result.metadata_removed is True
        assert result.vectors_removed == 5
        assert result.vector_cleanup_failed is False
        assert not await blob_store.exists(blob_path)
        assert await metadata_store.get("doc-1") is None
        assert await metadata_store.get_batch("doc-1", 0) is None
        assert fake_vector_store.ids(_OWNER) == {"doc-2-0", "doc-2-1", "doc-2-2"}

    @pytest.mark.asyncio
    async def test_pages_through_large_vector_sets(
        self, metadata_store, blob_store, fake_vector_store
    ) -> None:
        await _seed(metadata_store, blob_store, fake_vector_store, vectors=25)
        coordinator = DeletionCoordinator(
            metadata_store, blob_store, fake_vector_store, delete_batch_size=10
        )

        result = await coordinator.delete("doc-1", _OWNER)

        assert result.vectors_removed == 25
        assert fake_vector_store.ids(_OWNER) == set()

    @pytest.mark.asyncio
    async def test_prefix_guard_skips_foreign_ids(self, metadata_store, blob_store) -> None:
        store = AsyncMock()
        store.list_ids = AsyncMock(return_value=["doc-1-0", "doc-10-0"])
        store.delete_many = AsyncMock(return_value=1)
        await metadata_store.create(Document(id="doc-1", owner_id=_OWNER, title="t"))
        coordinator = DeletionCoordinator(metadata_store, blob_store, store, delete_batch_size=10)

        await coordinator.delete("doc-1", _OWNER)

        for call in store.delete_many.await_args_list:
            assert call.args[1] == ["doc-1-0"]

    @pytest.mark.asyncio
    async def test_missing_blob_is_fine(self, metadata_store, blob_store, fake_vector_store) -> None:
        blob_path = await _seed(metadata_store, blob_store, fake_vector_store)
        await blob_store.delete(blob_path)
        coordinator = DeletionCoordinator(metadata_store, blob_store, fake_vector_store)

        result = await coordinator.delete("doc-1", _OWNER)

        assert result.blob_removed is False
        assert result.metadata_removed is True

    @pytest.mark.asyncio
    async def test_other_owner_cannot_delete(
        self, metadata_store, blob_store, fake_vector_store
    ) -> None:
        await _seed(metadata_store, blob_store, fake_vector_store)
        coordinator = DeletionCoordinator(metadata_store, blob_store, fake_vector_store)

        with pytest.raises(DocumentNotFoundError):
            await coordinator.delete("doc-1", "mallory")
        assert await metadata_store.get("doc-1") is not None

    @pytest.mark.asyncio
    async def test_vector_store_down_without_force_raises(
        self, metadata_store, blob_store, fake_vector_store
    ) -> None:
        await _seed(metadata_store, blob_store, fake_vector_store)
        fake_vector_store.unreachable = True
        coordinator = DeletionCoordinator(metadata_store, blob_store, fake_vector_store)

        with pytest.raises(VectorStoreError):
            await coordinator.delete("doc-1", _OWNER)
        # Blob and row go first, so the document is already gone for the user.
        assert await metadata_store.get("doc-1") is None

    @pytest.mark.asyncio
    async def test_force_reports_vector_cleanup_failure(
        self, metadata_store, blob_store, fake_vector_store
    ) -> None:
        await _seed(metadata_store, blob_store, fake_vector_store)
        fake_vector_store.unreachable = True
        coordinator = DeletionCoordinator(metadata_store, blob_store, fake_vector_store)

        result = await coordinator.delete("doc-1", _OWNER, force=True)

        assert result.metadata_removed is True
        assert result.vector_cleanup_failed is True
        assert result.vectors_removed == 0

    @pytest.mark.asyncio
    async def test_blob_failure_blocks_unless_forced(
        self, metadata_store, blob_store, fake_vector_store
    ) -> None:
        await _seed(metadata_store, blob_store, fake_vector_store)
        blob_store.delete = AsyncMock(side_effect=BlobStoreError(message="disk on fire"))
        coordinator = DeletionCoordinator(metadata_store, blob_store, fake_vector_store)

        with pytest.raises(BlobStoreError):
            await coordinator.delete("doc-1", _OWNER)
        assert await metadata_store.get("doc-1") is not None

        result = await coordinator.delete("doc-1", _OWNER, force=True)
        assert result.metadata_removed is True
        assert result.vectors_removed == 5
