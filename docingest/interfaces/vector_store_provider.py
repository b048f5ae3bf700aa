"""Abstract base class for namespaced vector-store providers.

Every call takes an owner *namespace*; an implementation must never let a
read, write or delete in one namespace touch entries of another.  Writes
are upserts keyed by a caller-supplied deterministic id, which is what
makes re-running a batch after a crash or resume harmless.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from docingest.models.fragment import VectorMatch, VectorRecord


# Concrete implementation: ChromaDBProvider (docingest/providers/vector_store/)
# One ChromaDB collection per owner namespace.
class IVectorStoreProvider(ABC):
    """Contract for vector-store services used by the ingestion pipeline.

    Filters are flat equality mappings (``{"document_id": "..."}``);
    concrete providers translate them to their backend's query language.
    """

    @abstractmethod
    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Insert or overwrite records by id.

        Parameters
        ----------
        namespace:
            Owner namespace to write into.
        records:
            Records to write.  Existing entries with the same id are
            replaced.

        Returns
        -------
        int
            Number of records written.

        Raises
        ------
        docingest.utils.errors.RateLimitError
            If the store rejects the write for capacity reasons.
        docingest.utils.errors.VectorStoreError
            On any other backend failure.
        """

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return the *top_k* nearest entries to *vector* in *namespace*."""

    @abstractmethod
    async def list_ids(
        self,
        namespace: str,
        filters: dict[str, Any] | None = None,
        limit: int = 1000,
    ) -> list[str]:
        """Return up to *limit* ids matching *filters* in *namespace*."""

    @abstractmethod
    async def delete_many(self, namespace: str, ids: list[str]) -> int:
        """Delete entries by id.  Unknown ids are ignored.

        Returns
        -------
        int
            Number of ids submitted for deletion.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this vector store."""
