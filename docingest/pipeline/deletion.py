"""Deletion coordinator: removes a document from every store it touched.

Order matters and is fixed:

    1. raw blob        (already gone is fine)
    2. metadata row    (plus staged batches)
    3. vector entries  (listed by document id, deleted in pages)

Steps 1-2 are what the user sees.  Step 3 can fail independently (vector
store unreachable); in normal mode the failure propagates after the
document is already logically gone, in ``force`` mode it is logged and
reported through ``vector_cleanup_failed`` so user-visible deletion is
guaranteed at the cost of possible orphaned vectors.
"""

from __future__ import annotations

import structlog

from docingest.interfaces.blob_store import IBlobStore
from docingest.interfaces.metadata_store import IMetadataStore
from docingest.interfaces.vector_store_provider import IVectorStoreProvider
from docingest.models.document import DeletionResult
from docingest.utils.errors import BlobNotFoundError, BlobStoreError, DocumentNotFoundError

logger = structlog.get_logger(logger_name=__name__)


class DeletionCoordinator:
    """Removes blob, metadata row and vectors for one document."""

    def __init__(
        self,
        metadata_store: IMetadataStore,
        blob_store: IBlobStore,
        vector_store: IVectorStoreProvider,
        delete_batch_size: int = 1000,
    ) -> None:
        self._metadata_store = metadata_store
        self._blob_store = blob_store
        self._vector_store = vector_store
        self._delete_batch_size = max(delete_batch_size, 1)

    async def delete(
        self, document_id: str, owner_id: str, force: bool = False
    ) -> DeletionResult:
        """Delete *document_id* for *owner_id*.

        Raises
        ------
        DocumentNotFoundError
            If the document is missing or owned by someone else.
        BlobStoreError
            If the blob cannot be removed and *force* is not set.
        VectorStoreError
            If vector cleanup fails and *force* is not set (the blob and
            row are already gone at that point).
        """
        document = await self._metadata_store.get(document_id, owner_id)
        if document is None:
            raise DocumentNotFoundError(
                message=f"Document {document_id} not found", provider_name="deletion"
            )

        log = logger.bind(document_id=document_id, owner_id=owner_id, force=force)

        # 1. Blob
        blob_removed = False
        if document.raw_blob_path:
            try:
                blob_removed = await self._blob_store.delete(document.raw_blob_path)
            except BlobNotFoundError:
                blob_removed = False
            except BlobStoreError as exc:
                if not force:
                    raise
                log.warning("blob_delete_failed_forced", error=str(exc))

        # 2. Metadata row and staged batches
        await self._metadata_store.delete_batches(document_id)
        metadata_removed = await self._metadata_store.delete(document_id)

        # 3. Vectors
        vectors_removed = 0
        vector_cleanup_failed = False
        try:
            vectors_removed = await self._purge_vectors(document_id, owner_id)
        except Exception as exc:
            if not force:
                log.error("vector_cleanup_failed", error=str(exc))
                raise
            vector_cleanup_failed = True
            log.warning("vector_cleanup_failed_forced", error=str(exc))

        log.info(
            "document_deleted",
            blob_removed=blob_removed,
            metadata_removed=metadata_removed,
            vectors_removed=vectors_removed,
            vector_cleanup_failed=vector_cleanup_failed,
        )
        return DeletionResult(
            document_id=document_id,
            blob_removed=blob_removed,
            metadata_removed=metadata_removed,
            vectors_removed=vectors_removed,
            vector_cleanup_failed=vector_cleanup_failed,
        )

    async def _purge_vectors(self, document_id: str, namespace: str) -> int:
        """List-then-delete in pages until a short page, then verify once."""
        removed = await self._delete_pass(document_id, namespace)
        # Verification: writers racing the delete may have added entries.
        leftover = await self._delete_pass(document_id, namespace)
        if leftover:
            logger.warning(
                "vector_cleanup_verification_removed",
                document_id=document_id,
                count=leftover,
            )
        return removed + leftover

    async def _delete_pass(self, document_id: str, namespace: str) -> int:
        prefix = f"{document_id}-"
        page_size = self._delete_batch_size
        removed = 0
        while True:
            listed = await self._vector_store.list_ids(
                namespace, {"document_id": document_id}, limit=page_size
            )
            ids = [vector_id for vector_id in listed if vector_id.startswith(prefix)]
            for start in range(0, len(ids), page_size):
                removed += await self._vector_store.delete_many(
                    namespace, ids[start : start + page_size]
                )
            # A short page means the listing is exhausted; a full page with
            # nothing deletable would never shrink.
            if len(listed) < page_size or not ids:
                return removed
