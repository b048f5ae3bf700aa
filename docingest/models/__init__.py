"""docingest domain models -- re-exports all public model classes.

    - document.py -- Document lifecycle, status views, invocation results
    - fragment.py -- Fragments and vector-store records
"""

from __future__ import annotations

from docingest.models.document import (
    ChunkLayoutSummary,
    ChunkMetrics,
    DeletionResult,
    Document,
    DocumentStatus,
    DocumentStatusView,
    InvocationResult,
    PipelineStage,
)
from docingest.models.fragment import Fragment, VectorMatch, VectorRecord, make_vector_id

__all__ = [
    "ChunkLayoutSummary",
    "ChunkMetrics",
    "DeletionResult",
    "Document",
    "DocumentStatus",
    "DocumentStatusView",
    "Fragment",
    "InvocationResult",
    "PipelineStage",
    "VectorMatch",
    "VectorRecord",
    "make_vector_id",
]
