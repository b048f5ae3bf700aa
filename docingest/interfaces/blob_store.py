"""Abstract base class for raw-file blob storage.

Holds uploaded files between upload acceptance and the end of chunking.
Paths are opaque, slash-separated keys (``{owner_id}/{document_id}/{name}``).
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementation: LocalBlobStore (docingest/providers/blob/)
class IBlobStore(ABC):
    """Contract for put/get/delete-by-path object storage."""

    @abstractmethod
    async def put(self, path: str, data: bytes) -> None:
        """Store *data* at *path*, overwriting any existing object."""

    @abstractmethod
    async def get(self, path: str) -> bytes:
        """Return the bytes stored at *path*.

        Raises
        ------
        docingest.utils.errors.BlobNotFoundError
            If nothing is stored at *path*.
        docingest.utils.errors.BlobStoreError
            On any other storage failure.
        """

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove the object at *path*.

        Returns
        -------
        bool
            ``True`` if an object was removed, ``False`` if it was already
            gone.
        """

    @abstractmethod
    async def exists(self, path: str) -> bool:
        """Return ``True`` if an object is stored at *path*."""
