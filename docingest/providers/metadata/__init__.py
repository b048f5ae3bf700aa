"""Metadata store implementations."""

from docingest.providers.metadata.sqlite_metadata_store import SQLiteMetadataStore

__all__ = ["SQLiteMetadataStore"]
