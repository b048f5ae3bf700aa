"""Local-filesystem blob store.

Stores raw uploads under ``blob_root_dir`` using the blob path as a
relative file path.  File I/O runs in a worker thread via
``asyncio.to_thread`` so large uploads don't block the event loop.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from docingest.interfaces.blob_store import IBlobStore
from docingest.utils.errors import BlobNotFoundError, BlobStoreError

logger = structlog.get_logger(logger_name=__name__)


class LocalBlobStore(IBlobStore):
    """Blob store rooted at a local directory."""

    def __init__(self, root_dir: str | Path = "./data/blobs") -> None:
        self._root = Path(root_dir).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self._root / path.lstrip("/")).resolve()
        if target != self._root and self._root not in target.parents:
            raise BlobStoreError(
                message=f"Blob path escapes the store root: {path}",
                provider_name=self.get_provider_name(),
            )
        return target

    async def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so a killed process never leaves a torn blob.
            tmp = target.with_name(target.name + ".part")
            tmp.write_bytes(data)
            tmp.replace(target)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise BlobStoreError(
                message=f"Failed to write blob {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_written", path=path, size_bytes=len(data))

    async def get(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError as exc:
            raise BlobNotFoundError(
                message=f"Blob not found: {path}",
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            raise BlobStoreError(
                message=f"Failed to read blob {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)

        def _remove() -> bool:
            try:
                target.unlink()
            except FileNotFoundError:
                return False
            # Prune now-empty {owner}/{document} directories.
            for parent in target.parents:
                if parent == self._root:
                    break
                try:
                    parent.rmdir()
                except OSError:
                    break
            return True

        try:
            removed = await asyncio.to_thread(_remove)
        except OSError as exc:
            raise BlobStoreError(
                message=f"Failed to delete blob {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        logger.debug("blob_deleted", path=path, removed=removed)
        return removed

    async def exists(self, path: str) -> bool:
        target = self._resolve(path)
        return await asyncio.to_thread(target.is_file)

    def get_provider_name(self) -> str:
        return "local_blob"
