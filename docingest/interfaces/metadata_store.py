"""Abstract base class for the document metadata store.

The metadata store is the durable home of pipeline checkpoints.  Two
writes must be monotonic: ``progress`` and ``current_batch`` never move
backwards through :meth:`IMetadataStore.advance_cursor`, so a stale or
duplicate invocation cannot roll a document's cursor back.

Fragment bodies for each embedding batch are staged in a side table keyed
by ``(document_id, batch_index)`` so the document row stays small and a
cold process can resume after the raw blob is gone.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from docingest.models.document import Document, DocumentStatus
from docingest.models.fragment import Fragment


# Concrete implementation: SQLiteMetadataStore (docingest/providers/metadata/)
class IMetadataStore(ABC):
    """Contract for row-per-document metadata storage."""

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables if they do not exist.  Idempotent."""

    @abstractmethod
    async def create(self, document: Document) -> Document:
        """Insert a new document row and return it."""

    @abstractmethod
    async def get(self, document_id: str, owner_id: str | None = None) -> Document | None:
        """Return the document, or ``None`` if missing.

        When *owner_id* is given, a row owned by someone else is treated as
        missing.
        """

    @abstractmethod
    async def update_fields(self, document_id: str, fields: dict[str, Any]) -> bool:
        """Apply a partial update.

        A ``complete`` row is terminal: an update that sets any other
        ``status`` leaves it untouched.

        Returns
        -------
        bool
            ``False`` if no row was changed.

        Raises
        ------
        ValueError
            If *fields* names a column that may not be updated.
        """

    @abstractmethod
    async def advance_cursor(self, document_id: str, current_batch: int, progress: int) -> None:
        """Monotonically raise ``current_batch`` and ``progress``."""

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        """Delete the document row.  Returns ``False`` if it did not exist."""

    @abstractmethod
    async def list_documents(
        self,
        owner_id: str | None = None,
        statuses: list[DocumentStatus] | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """Return documents, newest first, optionally filtered."""

    @abstractmethod
    async def put_batches(self, document_id: str, batches: list[list[Fragment]]) -> None:
        """Replace the staged batches for a document."""

    @abstractmethod
    async def get_batch(self, document_id: str, index: int) -> list[Fragment] | None:
        """Return one staged batch, or ``None`` if it is not staged."""

    @abstractmethod
    async def delete_batches(self, document_id: str) -> int:
        """Delete all staged batches for a document and return how many."""
