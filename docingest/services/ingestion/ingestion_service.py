"""Service facade for the resumable ingestion pipeline.

This is the surface an HTTP layer (or the operator CLI) calls.  It accepts
uploads, creates ``queued`` document rows, and hands the heavy lifting to
the :class:`StageController` in the background so the caller returns as
soon as the row exists.  Clients then poll :meth:`IngestionService.get_status`.

Self-triggered continuation:
    When an invocation pauses on its time budget and ``auto_resume_on_pause``
    is enabled, the service schedules a :meth:`ResumeTrigger.resume` for the
    same document.  In a host that kills the process after each request
    this is where an outbound "call me again" request would go; in a
    long-lived process it simply runs as the next background task.
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from pathlib import PurePosixPath

import structlog

from docingest.interfaces.blob_store import IBlobStore
from docingest.models.document import (
    DeletionResult,
    Document,
    DocumentStatusView,
    InvocationResult,
)
from docingest.pipeline.deletion import DeletionCoordinator
from docingest.pipeline.resume_trigger import ResumeTrigger
from docingest.pipeline.stage_controller import StageController
from docingest.services.ingestion.checkpoint_store import CheckpointStore
from docingest.services.ingestion.source_processors.dispatcher import (
    SUFFIX_CONTENT_TYPES,
    ExtractionDispatcher,
)
from docingest.utils.concurrency import BackgroundDispatcher
from docingest.utils.errors import DocumentValidationError

logger = structlog.get_logger(logger_name=__name__)

_BYTES_PER_MB = 1024 * 1024


class IngestionService:
    """Entry points for uploading, resuming, deleting and polling documents.

    Parameters
    ----------
    checkpoints:
        Persisted pipeline state (wraps the metadata store).
    blob_store:
        Storage for raw uploads.
    controller:
        Stage controller run for each new document.
    resume_trigger:
        Re-entry point used for resumes and self-triggered continuation.
    deletion:
        Coordinator used by :meth:`delete`.
    extractor:
        Used only to validate that an upload's content type is supported.
    max_file_size_mb:
        Upload size limit.
    auto_resume_on_pause:
        Schedule a resume whenever an invocation pauses.
    """

    def __init__(
        self,
        checkpoints: CheckpointStore,
        blob_store: IBlobStore,
        controller: StageController,
        resume_trigger: ResumeTrigger,
        deletion: DeletionCoordinator,
        extractor: ExtractionDispatcher,
        max_file_size_mb: int = 25,
        auto_resume_on_pause: bool = True,
        dispatcher: BackgroundDispatcher | None = None,
    ) -> None:
        self._checkpoints = checkpoints
        self._blob_store = blob_store
        self._controller = controller
        self._resume_trigger = resume_trigger
        self._deletion = deletion
        self._extractor = extractor
        self._max_file_size_bytes = max_file_size_mb * _BYTES_PER_MB
        self._auto_resume_on_pause = auto_resume_on_pause
        self._dispatcher = dispatcher or BackgroundDispatcher()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upload(
        self,
        data: bytes,
        filename: str,
        owner_id: str,
        title: str | None = None,
        content_type: str | None = None,
    ) -> Document:
        """Validate and store an uploaded file, then start ingestion.

        Raises
        ------
        DocumentValidationError
            If the file is empty, too large, or of an unsupported type.
        """
        if not data:
            raise DocumentValidationError(
                message="Uploaded file is empty", provider_name="ingestion_service"
            )
        if len(data) > self._max_file_size_bytes:
            raise DocumentValidationError(
                message=(
                    f"File is {len(data) / _BYTES_PER_MB:.1f} MB; "
                    f"limit is {self._max_file_size_bytes // _BYTES_PER_MB} MB"
                ),
                provider_name="ingestion_service",
            )

        safe_name = PurePosixPath(filename.replace("\\", "/")).name or "upload"
        resolved_type = content_type or SUFFIX_CONTENT_TYPES.get(
            PurePosixPath(safe_name).suffix.lower()
        )
        if resolved_type is None or not self._extractor.supports(resolved_type):
            raise DocumentValidationError(
                message=f"Unsupported file type: {content_type or safe_name}",
                provider_name="ingestion_service",
            )

        document_id = str(uuid.uuid4())
        blob_path = f"{owner_id}/{document_id}/{safe_name}"
        await self._blob_store.put(blob_path, data)
        logger.info(
            "upload_stored",
            document_id=document_id,
            owner_id=owner_id,
            blob_path=blob_path,
            size_bytes=len(data),
            content_type=resolved_type,
        )
        return await self.ingest(
            blob_path,
            owner_id,
            title or PurePosixPath(safe_name).stem,
            content_type=resolved_type,
            document_id=document_id,
        )

    async def ingest(
        self,
        blob_path: str,
        owner_id: str,
        title: str,
        content_type: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        """Create a ``queued`` row for an already stored blob and start it."""
        resolved_type = content_type or SUFFIX_CONTENT_TYPES.get(
            PurePosixPath(blob_path).suffix.lower(), "text/plain"
        )
        document = Document(
            id=document_id or str(uuid.uuid4()),
            owner_id=owner_id,
            title=title,
            raw_blob_path=blob_path,
            content_type=resolved_type,
        )
        await self._checkpoints.metadata_store.create(document)
        self._dispatch(
            lambda: self._controller.run(document.id, owner_id),
            name=f"ingest:{document.id}",
            document_id=document.id,
            owner_id=owner_id,
        )
        return document

    async def resume(self, document_id: str, owner_id: str) -> InvocationResult:
        """Resume a document in the foreground and return the outcome."""
        result = await self._resume_trigger.resume(document_id, owner_id)
        self._maybe_continue(result, owner_id)
        return result

    async def delete(
        self, document_id: str, owner_id: str, force: bool = False
    ) -> DeletionResult:
        return await self._deletion.delete(document_id, owner_id, force=force)

    async def get_status(self, document_id: str, owner_id: str) -> DocumentStatusView:
        document = await self._checkpoints.require(document_id, owner_id)
        return document.to_status_view()

    async def list_documents(self, owner_id: str) -> list[Document]:
        return await self._checkpoints.metadata_store.list_documents(owner_id=owner_id)

    async def drain(self) -> None:
        """Wait for every background invocation, including continuations."""
        await self._dispatcher.drain()

    # ------------------------------------------------------------------
    # Background dispatch
    # ------------------------------------------------------------------

    def _dispatch(
        self,
        factory: Callable[[], Awaitable[InvocationResult]],
        name: str,
        document_id: str,
        owner_id: str,
    ) -> None:
        async def _run() -> InvocationResult:
            result = await factory()
            self._maybe_continue(result, owner_id)
            return result

        self._dispatcher.dispatch(_run, name=name)
        logger.debug("invocation_dispatched", document_id=document_id, task=name)

    def _maybe_continue(self, result: InvocationResult, owner_id: str) -> None:
        if not (result.paused and self._auto_resume_on_pause):
            return
        logger.info(
            "self_trigger_scheduled",
            document_id=result.document_id,
            current_batch=result.current_batch,
            batch_count=result.batch_count,
        )
        self._dispatch(
            lambda: self._resume_trigger.resume(result.document_id, owner_id),
            name=f"resume:{result.document_id}",
            document_id=result.document_id,
            owner_id=owner_id,
        )
