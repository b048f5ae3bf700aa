"""Resume trigger: first-class re-entry point for documents mid-pipeline.

Continuation across invocations is an explicit, independently callable
operation here rather than a side effect of request handling.  Anything
that can reach :meth:`ResumeTrigger.resume` (a self-triggered call after a
pause, an operator CLI, a cron sweep) can continue a document, and calling
it twice is harmless.

Which restart point is used depends on the persisted ``stage``:

* ``embedding_prep`` / ``embedding`` -- fragments are staged, so embedding
  continues from the persisted batch cursor.
* ``complete`` -- nothing to do.  A row left in ``error`` or ``paused``
  after reaching this stage has its status restored to ``complete``.
* anything earlier -- the raw blob is still required and extraction starts
  over.  The blob is only deleted after batches are staged, so a missing
  path here means the invariant was broken and the resume is refused.

Stale in-progress statuses (``extracting``, ``chunking``, ``embedding``)
are accepted as well as ``paused`` and ``error``: an invocation killed by
the host never gets the chance to write ``paused``.
"""

from __future__ import annotations

import structlog

from docingest.models.document import DocumentStatus, InvocationResult, PipelineStage
from docingest.pipeline.stage_controller import StageController
from docingest.services.ingestion.checkpoint_store import CheckpointStore
from docingest.utils.errors import IngestError, PipelineError

logger = structlog.get_logger(logger_name=__name__)


class ResumeTrigger:
    """Reconstructs just enough state to re-invoke the stage controller."""

    def __init__(self, checkpoints: CheckpointStore, controller: StageController) -> None:
        self._checkpoints = checkpoints
        self._controller = controller

    async def resume(self, document_id: str, owner_id: str) -> InvocationResult:
        """Continue *document_id* from its last checkpoint.

        Raises
        ------
        DocumentNotFoundError
            If the document is missing or belongs to another owner.
        PipelineError
            If extraction must be redone but the raw blob path is gone.
        """
        document = await self._checkpoints.require(document_id, owner_id)

        if document.stage == PipelineStage.COMPLETE and document.status != DocumentStatus.COMPLETE:
            # Every batch is upserted; only the status write was lost.
            await self._checkpoints.settle_complete(document_id)
            document = await self._checkpoints.require(document_id, owner_id)

        if document.status == DocumentStatus.COMPLETE:
            logger.info("resume_noop_complete", document_id=document_id)
            return InvocationResult(
                document_id=document_id,
                status=DocumentStatus.COMPLETE,
                current_batch=document.current_batch,
                batch_count=document.batch_count,
            )

        if self._controller.is_running(document_id):
            logger.info("resume_skipped_running", document_id=document_id)
            return InvocationResult(
                document_id=document_id,
                status=document.status,
                current_batch=document.current_batch,
                batch_count=document.batch_count,
                skipped=True,
            )

        if document.is_staged:
            await self._checkpoints.reopen_for_embedding(document_id)
            logger.info(
                "resume_embedding",
                document_id=document_id,
                previous_status=document.status.value,
                current_batch=document.current_batch,
                batch_count=document.batch_count,
            )
            return await self._controller.run(
                document_id, owner_id, start_batch=document.current_batch
            )

        if not document.raw_blob_path:
            raise PipelineError(
                message=(
                    f"Document {document_id} stopped at stage {document.stage.value} "
                    "but its raw blob path is gone; re-upload required"
                ),
                provider_name="resume_trigger",
            )

        await self._checkpoints.reopen_for_extraction(document_id)
        logger.info(
            "resume_extraction",
            document_id=document_id,
            previous_status=document.status.value,
            previous_stage=document.stage.value,
        )
        return await self._controller.run(document_id, owner_id)

    async def resume_paused(self, limit: int | None = None) -> list[InvocationResult]:
        """Resume every ``paused`` document, one after another.

        Intended for an operator or cron job.  A document that fails to
        resume (deleted mid-sweep, missing blob) is logged and skipped.
        """
        paused = await self._checkpoints.metadata_store.list_documents(
            statuses=[DocumentStatus.PAUSED], limit=limit
        )
        results: list[InvocationResult] = []
        for document in paused:
            try:
                results.append(await self.resume(document.id, document.owner_id))
            except IngestError as exc:
                logger.warning(
                    "resume_sweep_document_failed",
                    document_id=document.id,
                    error=str(exc),
                )
        logger.info("resume_sweep_complete", candidates=len(paused), resumed=len(results))
        return results
