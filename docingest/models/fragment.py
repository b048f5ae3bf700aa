"""Fragment and vector-store record models.

A :class:`Fragment` is a contiguous slice of a document's normalized text.
Overlap between neighbours is carried only as *context* (``pre_context`` /
``post_context``) and never duplicated into the embedded body.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def make_vector_id(document_id: str, order: int) -> str:
    """Deterministic vector-store id; re-upserting the same fragment overwrites."""
    return f"{document_id}-{order}"


class Fragment(BaseModel):
    """A chunk of document text, the unit of embedding and retrieval."""

    model_config = ConfigDict(frozen=True)

    text: str
    pre_context: str = ""
    post_context: str = ""
    # Zero-based position; contiguous 0..N-1 within a document.
    order: int = Field(ge=0)
    document_id: str = ""
    owner_id: str = ""
    title: str = ""

    @property
    def vector_id(self) -> str:
        return make_vector_id(self.document_id, self.order)

    def to_vector_metadata(self) -> dict[str, Any]:
        """Flat metadata stored alongside the vector (scalar values only)."""
        return {
            "text": self.text,
            "pre_context": self.pre_context,
            "post_context": self.post_context,
            "document_id": self.document_id,
            "owner_id": self.owner_id,
            "title": self.title,
            "order": self.order,
        }


class VectorRecord(BaseModel):
    """A single id + vector + metadata entry written to the vector store."""

    model_config = ConfigDict(frozen=True)

    id: str
    vector: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)


class VectorMatch(BaseModel):
    """A query hit returned by the vector store."""

    model_config = ConfigDict(frozen=True)

    id: str
    # Cosine similarity, higher is closer.
    score: float
    metadata: dict[str, Any] = Field(default_factory=dict)
