"""Document lifecycle models for the ingestion pipeline.

A :class:`Document` is the unit of work.  It is created ``queued`` when an
upload is accepted, mutated only by the stage controller and the resume
trigger, and removed (with its blob and vectors) only by the deletion
coordinator.  All models are frozen; state changes are persisted as
partial field updates through the checkpoint store and re-read.

Status vs. stage:
    ``status`` is what a polling client sees.  ``stage`` is the last
    pipeline stage *entered*; the resume trigger reads it to decide whether
    extraction has to be redone (raw blob still needed) or whether the
    staged batches can be embedded directly.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocumentStatus(str, Enum):
    """Client-visible status of a document."""

    QUEUED = "queued"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING = "embedding"
    PAUSED = "paused"
    COMPLETE = "complete"
    ERROR = "error"


class PipelineStage(str, Enum):
    """Last pipeline stage a document entered."""

    QUEUED = "queued"
    EXTRACTING = "extracting"
    CHUNKING = "chunking"
    EMBEDDING_PREP = "embedding_prep"
    EMBEDDING = "embedding"
    COMPLETE = "complete"


# Stages after which fragments are durably staged and the raw blob is no
# longer needed.
STAGED_STAGES: frozenset[PipelineStage] = frozenset(
    {PipelineStage.EMBEDDING_PREP, PipelineStage.EMBEDDING}
)


class ChunkMetrics(BaseModel):
    """Aggregate chunking metrics used for the coverage check."""

    model_config = ConfigDict(frozen=True)

    total_input_chars: int = Field(default=0, ge=0)
    total_output_chars: int = Field(default=0, ge=0)
    # Percent of input characters recovered by fragment bodies, 2 decimals.
    coverage: float = Field(default=0.0, ge=0.0)
    chunk_count: int = Field(default=0, ge=0)
    avg_chunk_size: int = Field(default=0, ge=0)
    largest_chunk: int = Field(default=0, ge=0)
    smallest_chunk: int = Field(default=0, ge=0)


class ChunkLayoutSummary(BaseModel):
    """Compact layout stored on the document row instead of fragment bodies."""

    model_config = ConfigDict(frozen=True)

    batch_sizes: list[int] = Field(default_factory=list)
    metrics: ChunkMetrics = Field(default_factory=ChunkMetrics)


class Document(BaseModel):
    """A document moving through the ingestion pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    title: str
    raw_blob_path: str | None = None
    content_type: str = "text/plain"
    status: DocumentStatus = DocumentStatus.QUEUED
    stage: PipelineStage = PipelineStage.QUEUED
    progress: int = Field(default=0, ge=0, le=100)
    batch_count: int = Field(default=0, ge=0)
    current_batch: int = Field(default=0, ge=0)
    vector_count: int = Field(default=0, ge=0)
    chunk_layout: ChunkLayoutSummary | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_staged(self) -> bool:
        """True once fragments are durably staged for embedding."""
        return self.stage in STAGED_STAGES

    @property
    def remaining_batches(self) -> int:
        return max(self.batch_count - self.current_batch, 0)

    def to_status_view(self) -> DocumentStatusView:
        return DocumentStatusView(
            document_id=self.id,
            status=self.status,
            progress=self.progress,
            stage=self.stage,
            error=self.error_message,
            current_batch=self.current_batch,
            batch_count=self.batch_count,
        )


class DocumentStatusView(BaseModel):
    """Status-polling contract returned to the HTTP layer."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: DocumentStatus
    progress: int
    stage: PipelineStage
    error: str | None = None
    current_batch: int = 0
    batch_count: int = 0


class InvocationResult(BaseModel):
    """Outcome of a single stage-controller invocation."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    status: DocumentStatus
    batches_processed: int = 0
    current_batch: int = 0
    batch_count: int = 0
    paused: bool = False
    # Another invocation in this process already owns the document.
    skipped: bool = False
    error: str | None = None
    elapsed_seconds: float = 0.0


class DeletionResult(BaseModel):
    """Outcome of a deletion-coordinator call."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    blob_removed: bool = False
    metadata_removed: bool = False
    vectors_removed: int = 0
    vector_cleanup_failed: bool = False
