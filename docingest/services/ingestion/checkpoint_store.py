"""Persisted pipeline state over the metadata store.

Every stage transition the controller makes goes through one method here,
so the set of writes a document can see is small and auditable:

    mark_stage       status/stage/progress on entering a stage
    stage_batches    staged fragments + cursor reset + layout (embedding_prep)
    advance          monotonic cursor + progress after a batch is upserted
    mark_paused      voluntary early exit, cursor untouched
    mark_error       error message, cursor untouched
    mark_complete    terminal write, staged batches dropped

A ``complete`` row is terminal: the store ignores any later write that would
move its status, so a lagging invocation cannot undo a finished one.

Nothing is cached between calls; every read goes to the store so a cold
process sees exactly what the previous invocation committed.
"""

from __future__ import annotations

import structlog

from docingest.interfaces.metadata_store import IMetadataStore
from docingest.models.document import (
    ChunkLayoutSummary,
    Document,
    DocumentStatus,
    PipelineStage,
)
from docingest.models.fragment import Fragment
from docingest.pipeline.budget import (
    EMBEDDING_PROGRESS_START,
    PROGRESS_COMPLETE,
    interpolate_progress,
)
from docingest.utils.errors import DocumentNotFoundError, PipelineError

logger = structlog.get_logger(logger_name=__name__)


class CheckpointStore:
    """Checkpoint reads and writes for the stage controller and resume trigger."""

    def __init__(self, metadata_store: IMetadataStore) -> None:
        self._store = metadata_store

    @property
    def metadata_store(self) -> IMetadataStore:
        return self._store

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def load(self, document_id: str, owner_id: str | None = None) -> Document | None:
        return await self._store.get(document_id, owner_id)

    async def require(self, document_id: str, owner_id: str) -> Document:
        """Load an owner's document or raise :class:`DocumentNotFoundError`."""
        document = await self._store.get(document_id, owner_id)
        if document is None:
            raise DocumentNotFoundError(
                message=f"Document {document_id} not found", provider_name="checkpoint"
            )
        return document

    async def load_batch(self, document_id: str, index: int) -> list[Fragment]:
        batch = await self._store.get_batch(document_id, index)
        if batch is None:
            raise PipelineError(
                message=f"Staged batch {index} missing for document {document_id}",
                provider_name="checkpoint",
            )
        return batch

    # ------------------------------------------------------------------
    # Stage transitions
    # ------------------------------------------------------------------

    async def mark_stage(
        self,
        document_id: str,
        status: DocumentStatus,
        stage: PipelineStage,
        progress: int | None = None,
    ) -> None:
        fields: dict[str, object] = {"status": status, "stage": stage}
        if progress is not None:
            fields["progress"] = progress
        await self._store.update_fields(document_id, fields)
        logger.info(
            "checkpoint_stage",
            document_id=document_id,
            status=status.value,
            stage=stage.value,
            progress=progress,
        )

    async def set_progress(self, document_id: str, progress: int) -> None:
        await self._store.update_fields(document_id, {"progress": progress})

    async def stage_batches(
        self,
        document_id: str,
        batches: list[list[Fragment]],
        layout: ChunkLayoutSummary,
    ) -> None:
        """Persist fragments, then move the document to ``embedding_prep``.

        Batches are written first: a kill between the two writes leaves the
        document in ``chunking`` with the blob intact, and a resume simply
        re-chunks and overwrites the staged rows.
        """
        await self._store.put_batches(document_id, batches)
        await self._store.update_fields(
            document_id,
            {
                "stage": PipelineStage.EMBEDDING_PREP,
                "status": DocumentStatus.CHUNKING,
                "batch_count": len(batches),
                "current_batch": 0,
                "chunk_layout": layout,
                "progress": EMBEDDING_PROGRESS_START,
            },
        )
        logger.info(
            "checkpoint_batches_staged",
            document_id=document_id,
            batch_count=len(batches),
            fragments=sum(len(b) for b in batches),
        )

    async def clear_blob_path(self, document_id: str) -> None:
        await self._store.update_fields(document_id, {"raw_blob_path": None})

    async def enter_embedding(self, document_id: str) -> None:
        await self._store.update_fields(
            document_id,
            {
                "status": DocumentStatus.EMBEDDING,
                "stage": PipelineStage.EMBEDDING,
                "error_message": None,
            },
        )

    async def advance(self, document_id: str, batches_done: int, batch_count: int) -> int:
        """Record that batches ``[0, batches_done)`` are upserted; return progress."""
        progress = interpolate_progress(batches_done, batch_count)
        await self._store.advance_cursor(document_id, batches_done, progress)
        logger.info(
            "checkpoint_advanced",
            document_id=document_id,
            current_batch=batches_done,
            batch_count=batch_count,
            progress=progress,
        )
        return progress

    async def mark_paused(self, document_id: str) -> bool:
        applied = await self._store.update_fields(
            document_id, {"status": DocumentStatus.PAUSED}
        )
        logger.info("checkpoint_paused", document_id=document_id, applied=applied)
        return applied

    async def mark_error(self, document_id: str, message: str) -> bool:
        """Record an error; ``current_batch`` and ``batch_count`` stay as they are.

        Returns ``False`` when the row was already ``complete`` (or gone) and
        the error was not recorded.
        """
        applied = await self._store.update_fields(
            document_id,
            {"status": DocumentStatus.ERROR, "error_message": message},
        )
        logger.error("checkpoint_error", document_id=document_id, error=message, applied=applied)
        return applied

    async def mark_complete(self, document_id: str, vector_count: int) -> None:
        await self._store.update_fields(
            document_id,
            {
                "status": DocumentStatus.COMPLETE,
                "stage": PipelineStage.COMPLETE,
                "progress": PROGRESS_COMPLETE,
                "vector_count": vector_count,
                "chunk_layout": None,
                "error_message": None,
            },
        )
        removed = await self._store.delete_batches(document_id)
        logger.info(
            "checkpoint_complete",
            document_id=document_id,
            vector_count=vector_count,
            staged_batches_removed=removed,
        )

    # ------------------------------------------------------------------
    # Resume preparation
    # ------------------------------------------------------------------

    async def settle_complete(self, document_id: str) -> None:
        """Restore ``status=complete`` on a row whose stage already finished."""
        await self._store.update_fields(
            document_id,
            {
                "status": DocumentStatus.COMPLETE,
                "progress": PROGRESS_COMPLETE,
                "error_message": None,
            },
        )
        await self._store.delete_batches(document_id)
        logger.info("checkpoint_complete_settled", document_id=document_id)

    async def reopen_for_embedding(self, document_id: str) -> None:
        await self._store.update_fields(
            document_id,
            {"status": DocumentStatus.EMBEDDING, "error_message": None},
        )

    async def reopen_for_extraction(self, document_id: str) -> None:
        await self._store.update_fields(
            document_id,
            {
                "status": DocumentStatus.EXTRACTING,
                "stage": PipelineStage.EXTRACTING,
                "error_message": None,
            },
        )
