"""Blob store implementations."""

from docingest.providers.blob.local_blob_store import LocalBlobStore

__all__ = ["LocalBlobStore"]
