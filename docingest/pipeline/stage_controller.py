"""Stage controller: drives one document through the ingestion state machine.

    queued -> extracting -> chunking -> embedding_prep -> embedding -> complete
                 |             |                            |
                 +------> paused / error <------------------+

ARCHITECTURE NOTE:
    An invocation may be killed by the host at any moment, so the
    controller never keeps state that matters in memory.  Each unit of work
    is followed by a checkpoint write, and the only ordering guarantee is
    that the batch cursor advances *after* its batch is fully upserted.  A
    kill between the upsert and the checkpoint redoes one batch, and since
    vector ids are deterministic the redo overwrites rather than
    duplicates.

    Instead of waiting to be killed, the controller watches a wall-clock
    budget and pauses itself between batches.  Pausing is a normal return,
    not an error; the resume trigger continues from the persisted cursor,
    possibly in a fresh process with cold caches.

    Every failure is captured on the document row (``status=error`` plus
    the message) and returned in the :class:`InvocationResult`.  ``run``
    does not raise for pipeline failures, which keeps fire-and-forget
    background dispatch from crashing.
"""

from __future__ import annotations

import time
from collections.abc import Callable

import structlog

from docingest.interfaces.blob_store import IBlobStore
from docingest.models.document import (
    ChunkLayoutSummary,
    Document,
    DocumentStatus,
    InvocationResult,
    PipelineStage,
)
from docingest.models.fragment import Fragment
from docingest.pipeline.budget import (
    PROGRESS_CHUNKING,
    PROGRESS_EXTRACTED,
    PROGRESS_EXTRACTING,
    InvocationBudget,
)
from docingest.services.ingestion.batch_uploader import BatchUploader
from docingest.services.ingestion.checkpoint_store import CheckpointStore
from docingest.services.ingestion.chunker import TextChunker
from docingest.services.ingestion.source_processors.dispatcher import ExtractionDispatcher
from docingest.utils.errors import (
    ChunkingError,
    ExtractionError,
    IngestError,
    PipelineError,
)

logger = structlog.get_logger(logger_name=__name__)


def partition_batches(fragments: list[Fragment], batch_size: int) -> list[list[Fragment]]:
    """Split fragments into consecutive batches of at most *batch_size*."""
    size = max(batch_size, 1)
    return [fragments[i : i + size] for i in range(0, len(fragments), size)]


class StageController:
    """Runs the pipeline for a document until it completes, pauses or fails.

    Parameters
    ----------
    checkpoints:
        Persisted pipeline state.
    blob_store:
        Source of raw uploaded bytes.
    extractor:
        Content-type dispatcher for text extraction.
    chunker:
        Splits normalized text into fragments.
    uploader:
        Embeds and upserts one batch of fragments.
    batch_size:
        Fragments per checkpointed batch.
    time_budget_seconds:
        Wall-clock budget per invocation before a voluntary pause.
    clock:
        Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        checkpoints: CheckpointStore,
        blob_store: IBlobStore,
        extractor: ExtractionDispatcher,
        chunker: TextChunker,
        uploader: BatchUploader,
        batch_size: int = 20,
        time_budget_seconds: float = 8.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._checkpoints = checkpoints
        self._blob_store = blob_store
        self._extractor = extractor
        self._chunker = chunker
        self._uploader = uploader
        self._batch_size = max(batch_size, 1)
        self._time_budget = time_budget_seconds
        self._clock = clock
        # Best-effort, process-local guard; correctness across processes
        # comes from idempotent upserts and monotonic checkpoint writes.
        self._active: set[str] = set()

    def is_running(self, document_id: str) -> bool:
        return document_id in self._active

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        document_id: str,
        owner_id: str,
        start_batch: int | None = None,
    ) -> InvocationResult:
        """Advance *document_id* as far as this invocation's budget allows.

        Parameters
        ----------
        document_id:
            Document to process.
        owner_id:
            Owner; must match the stored row.
        start_batch:
            Cursor the caller expects to resume from.  The persisted cursor
            is authoritative; a mismatch is logged and the persisted value
            used, so a stale caller can neither skip nor rewind batches.

        Raises
        ------
        DocumentNotFoundError
            If the document does not exist for *owner_id*.
        """
        document = await self._checkpoints.require(document_id, owner_id)

        if document.stage == PipelineStage.COMPLETE and document.status != DocumentStatus.COMPLETE:
            await self._checkpoints.settle_complete(document_id)
            document = await self._checkpoints.require(document_id, owner_id)

        if document.status == DocumentStatus.COMPLETE:
            logger.info("pipeline_already_complete", document_id=document_id)
            return self._result(document, DocumentStatus.COMPLETE)

        if document_id in self._active:
            logger.info("pipeline_invocation_skipped", document_id=document_id)
            return self._result(document, document.status, skipped=True)

        budget = InvocationBudget(self._time_budget, self._clock)
        self._active.add(document_id)
        with structlog.contextvars.bound_contextvars(
            document_id=document_id, owner_id=owner_id
        ):
            logger.info(
                "pipeline_invocation_started",
                status=document.status.value,
                stage=document.stage.value,
                current_batch=document.current_batch,
                batch_count=document.batch_count,
            )
            try:
                if not document.is_staged:
                    document = await self._extract_and_stage(document)
                return await self._embed_batches(document, budget, start_batch)
            except Exception as exc:  # noqa: BLE001 - every failure is recorded on the row
                return await self._fail(document_id, exc, budget)
            finally:
                self._active.discard(document_id)

    # ------------------------------------------------------------------
    # Stages 1-3: extraction, chunking, embedding prep
    # ------------------------------------------------------------------

    async def _extract_and_stage(self, document: Document) -> Document:
        doc_id = document.id
        if not document.raw_blob_path:
            raise PipelineError(
                message="Raw blob path is missing; extraction cannot run",
                provider_name="stage_controller",
            )

        await self._checkpoints.mark_stage(
            doc_id, DocumentStatus.EXTRACTING, PipelineStage.EXTRACTING, PROGRESS_EXTRACTING
        )
        data = await self._blob_store.get(document.raw_blob_path)
        text = await self._extractor.extract(data, document.content_type)
        if not text.strip():
            raise ExtractionError(
                message="Extraction produced no text", provider_name="stage_controller"
            )
        await self._checkpoints.set_progress(doc_id, PROGRESS_EXTRACTED)

        await self._checkpoints.mark_stage(
            doc_id, DocumentStatus.CHUNKING, PipelineStage.CHUNKING, PROGRESS_CHUNKING
        )
        result = self._chunker.chunk(
            text,
            {"document_id": doc_id, "owner_id": document.owner_id, "title": document.title},
        )
        if not result.fragments:
            raise ChunkingError(
                message="Chunking produced no fragments", provider_name="stage_controller"
            )

        batches = partition_batches(result.fragments, self._batch_size)
        layout = ChunkLayoutSummary(
            batch_sizes=[len(b) for b in batches], metrics=result.metrics
        )
        await self._checkpoints.stage_batches(doc_id, batches, layout)

        # Fragments are durable now; the raw file is no longer needed.
        await self._discard_blob(doc_id, document.raw_blob_path)

        return await self._checkpoints.require(doc_id, document.owner_id)

    async def _discard_blob(self, document_id: str, blob_path: str) -> None:
        try:
            await self._blob_store.delete(blob_path)
        except IngestError as exc:
            # The path stays on the row so the deletion coordinator can retry.
            logger.warning("raw_blob_delete_failed", blob_path=blob_path, error=str(exc))
            return
        await self._checkpoints.clear_blob_path(document_id)
        logger.info("raw_blob_deleted", blob_path=blob_path)

    # ------------------------------------------------------------------
    # Stage 4: embedding loop with timeout guard
    # ------------------------------------------------------------------

    async def _embed_batches(
        self,
        document: Document,
        budget: InvocationBudget,
        start_batch: int | None,
    ) -> InvocationResult:
        doc_id = document.id
        batch_count = document.batch_count
        cursor = document.current_batch
        if start_batch is not None and start_batch != cursor:
            logger.warning(
                "start_batch_mismatch", requested=start_batch, persisted=cursor
            )

        if document.stage != PipelineStage.EMBEDDING or document.status != DocumentStatus.EMBEDDING:
            await self._checkpoints.enter_embedding(doc_id)

        # The budget is checked only after a batch, so every invocation that
        # reaches this loop moves the cursor by at least one.
        processed = 0
        for index in range(cursor, batch_count):
            fragments = await self._checkpoints.load_batch(doc_id, index)
            written = await self._uploader.upload(fragments, document.owner_id)
            progress = await self._checkpoints.advance(doc_id, index + 1, batch_count)
            processed += 1
            logger.info(
                "batch_embedded",
                batch=index,
                batch_count=batch_count,
                vectors=written,
                progress=progress,
                elapsed=round(budget.elapsed(), 3),
            )

            if index + 1 < batch_count and budget.exhausted():
                return await self._pause(document, index + 1, processed, budget)

        vector_count = (
            sum(document.chunk_layout.batch_sizes) if document.chunk_layout else 0
        )
        await self._checkpoints.mark_complete(doc_id, vector_count)
        logger.info(
            "pipeline_complete",
            batches_processed=processed,
            vector_count=vector_count,
            elapsed=round(budget.elapsed(), 3),
        )
        return InvocationResult(
            document_id=doc_id,
            status=DocumentStatus.COMPLETE,
            batches_processed=processed,
            current_batch=batch_count,
            batch_count=batch_count,
            elapsed_seconds=round(budget.elapsed(), 3),
        )

    # ------------------------------------------------------------------
    # Exits
    # ------------------------------------------------------------------

    async def _pause(
        self,
        document: Document,
        cursor: int,
        processed: int,
        budget: InvocationBudget,
    ) -> InvocationResult:
        if not await self._checkpoints.mark_paused(document.id):
            return await self._settled(document.id, budget)
        logger.info(
            "pipeline_paused",
            current_batch=cursor,
            batch_count=document.batch_count,
            batches_processed=processed,
            elapsed=round(budget.elapsed(), 3),
            budget=self._time_budget,
        )
        return InvocationResult(
            document_id=document.id,
            status=DocumentStatus.PAUSED,
            batches_processed=processed,
            current_batch=cursor,
            batch_count=document.batch_count,
            paused=True,
            elapsed_seconds=round(budget.elapsed(), 3),
        )

    async def _fail(
        self, document_id: str, exc: Exception, budget: InvocationBudget
    ) -> InvocationResult:
        message = str(exc)
        logger.error(
            "pipeline_failed",
            error=message,
            error_type=type(exc).__name__,
            exc_info=not isinstance(exc, IngestError),
        )
        if not await self._checkpoints.mark_error(document_id, message):
            return await self._settled(document_id, budget, error=message)
        stored = await self._checkpoints.load(document_id)
        return InvocationResult(
            document_id=document_id,
            status=DocumentStatus.ERROR,
            current_batch=stored.current_batch if stored else 0,
            batch_count=stored.batch_count if stored else 0,
            error=message,
            elapsed_seconds=round(budget.elapsed(), 3),
        )

    async def _settled(
        self, document_id: str, budget: InvocationBudget, error: str | None = None
    ) -> InvocationResult:
        """Report the stored outcome when a pause or error write was refused.

        The store refuses those writes only for a ``complete`` row, which
        means another invocation finished the document first.
        """
        stored = await self._checkpoints.load(document_id)
        if stored is None or stored.status != DocumentStatus.COMPLETE:
            return InvocationResult(
                document_id=document_id,
                status=DocumentStatus.ERROR,
                current_batch=stored.current_batch if stored else 0,
                batch_count=stored.batch_count if stored else 0,
                error=error or "Document row disappeared during the invocation",
                elapsed_seconds=round(budget.elapsed(), 3),
            )
        logger.info("pipeline_superseded", reason=error)
        return InvocationResult(
            document_id=document_id,
            status=DocumentStatus.COMPLETE,
            current_batch=stored.current_batch,
            batch_count=stored.batch_count,
            elapsed_seconds=round(budget.elapsed(), 3),
        )

    @staticmethod
    def _result(
        document: Document, status: DocumentStatus, skipped: bool = False
    ) -> InvocationResult:
        return InvocationResult(
            document_id=document.id,
            status=status,
            current_batch=document.current_batch,
            batch_count=document.batch_count,
            skipped=skipped,
        )
