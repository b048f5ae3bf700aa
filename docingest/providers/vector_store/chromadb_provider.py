"""ChromaDB vector store provider adapter.

Wraps ``chromadb.PersistentClient`` to implement
:class:`IVectorStoreProvider`.  Each owner namespace maps to its own
collection, so isolation between owners is structural rather than a
metadata filter that a bug could forget.  Uses cosine distance.
"""

from __future__ import annotations

import hashlib
import os
import re
from typing import Any

# Disable ChromaDB telemetry before importing chromadb.  The env var is
# respected by some versions; Settings(anonymized_telemetry=False) below is
# authoritative for the rest.
os.environ["ANONYMIZED_TELEMETRY"] = "False"

import chromadb
import structlog

from docingest.interfaces.vector_store_provider import IVectorStoreProvider
from docingest.models.fragment import VectorMatch, VectorRecord
from docingest.utils.errors import VectorStoreError

logger = structlog.get_logger(logger_name=__name__)

# ChromaDB collection names: 3-63 chars of [a-zA-Z0-9._-], starting and
# ending with an alphanumeric character.
_MAX_COLLECTION_NAME = 63
_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


class _NoopEmbeddingFunction(chromadb.EmbeddingFunction[list[str]]):
    """No-op embedding function that prevents ChromaDB from loading a model.

    docingest always passes pre-computed embeddings, so ChromaDB's built-in
    embedding is never invoked.  Without this, ChromaDB downloads its
    default ONNX model on collection creation.
    """

    def __call__(self, input: list[str]) -> list[list[float]]:
        raise NotImplementedError(
            "docingest uses pre-computed embeddings; "
            "ChromaDB's built-in embedding should never be called."
        )

    def name(self) -> str:
        """Return function name (required by ChromaDB's EmbeddingFunction protocol)."""
        return "noop_precomputed"


def collection_name_for(prefix: str, namespace: str) -> str:
    """Map an owner namespace to a valid, stable ChromaDB collection name."""
    raw = f"{prefix}_{namespace}"
    name = _INVALID_NAME_CHARS.sub("_", raw).strip("._-")
    if len(name) < 3 or len(name) > _MAX_COLLECTION_NAME or name != raw:
        # Sanitizing could collide two owners; suffix a digest of the raw name.
        digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]
        head = name[: _MAX_COLLECTION_NAME - len(digest) - 1].rstrip("._-")
        name = f"{head}_{digest}" if head else f"ns_{digest}"
    return name


def _translate_filters(filters: dict[str, Any] | None) -> dict[str, Any] | None:
    """Convert a flat equality mapping to a ChromaDB ``where`` clause."""
    if not filters:
        return None
    clauses = [{key: value} for key, value in filters.items()]
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


class ChromaDBProvider(IVectorStoreProvider):
    """Vector store provider backed by ChromaDB with local persistence.

    Collections are created lazily on first use and cached for the life of
    the provider.
    """

    def __init__(
        self,
        persist_directory: str = "./data/chromadb",
        collection_prefix: str = "docingest",
    ) -> None:
        self._persist_directory = persist_directory
        self._collection_prefix = collection_prefix
        self._client = chromadb.PersistentClient(
            path=persist_directory,
            settings=chromadb.config.Settings(anonymized_telemetry=False),
        )
        self._collections: dict[str, Any] = {}

    # ------------------------------------------------------------------
    # Collection management
    # ------------------------------------------------------------------

    def _collection(self, namespace: str) -> Any:
        cached = self._collections.get(namespace)
        if cached is not None:
            return cached

        name = collection_name_for(self._collection_prefix, namespace)
        # Newer ChromaDB versions reject a collection opened with a
        # different embedding function than the one it was persisted with;
        # fall back to the persisted one since embeddings are precomputed.
        try:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
                embedding_function=_NoopEmbeddingFunction(),
            )
        except ValueError:
            collection = self._client.get_or_create_collection(
                name=name,
                metadata={"hnsw:space": "cosine"},
            )
        self._collections[namespace] = collection
        logger.debug("chromadb_collection_opened", namespace=namespace, collection=name)
        return collection

    # ------------------------------------------------------------------
    # IVectorStoreProvider implementation
    # ------------------------------------------------------------------

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> int:
        """Upsert records into the namespace's collection.

        The fragment body is stored as the ChromaDB document as well as in
        metadata so the collection stays readable with ChromaDB's own tools.
        """
        if not records:
            return 0
        try:
            collection = self._collection(namespace)
            collection.upsert(
                ids=[r.id for r in records],
                embeddings=[r.vector for r in records],
                documents=[str(r.metadata.get("text", "")) for r in records],
                metadatas=[self._clean_metadata(r.metadata) for r in records],
            )
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB upsert failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_upsert", namespace=namespace, count=len(records))
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: list[float],
        top_k: int = 10,
        filters: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        """Return the nearest entries; cosine distance is converted to similarity."""
        try:
            collection = self._collection(namespace)
            count = collection.count()
            if count == 0:
                return []

            kwargs: dict[str, Any] = {
                "query_embeddings": [vector],
                "n_results": min(top_k, count),
                "include": ["metadatas", "distances"],
            }
            where = _translate_filters(filters)
            if where:
                kwargs["where"] = where
            results = collection.query(**kwargs)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB query failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        ids = results["ids"][0] if results.get("ids") else []
        distances = results["distances"][0] if results.get("distances") else []
        metadatas = results["metadatas"][0] if results.get("metadatas") else []

        matches: list[VectorMatch] = []
        for i, match_id in enumerate(ids):
            distance = distances[i] if i < len(distances) else 1.0
            metadata = metadatas[i] if i < len(metadatas) and metadatas[i] else {}
            matches.append(
                VectorMatch(
                    id=match_id,
                    score=round(1.0 - float(distance), 6),
                    metadata=dict(metadata),
                )
            )
        return matches

    async def list_ids(
        self,
        namespace: str,
        filters: dict[str, Any] | None = None,
        limit: int = 1000,
    ) -> list[str]:
        try:
            collection = self._collection(namespace)
            kwargs: dict[str, Any] = {"limit": limit, "include": []}
            where = _translate_filters(filters)
            if where:
                kwargs["where"] = where
            result = collection.get(**kwargs)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB list_ids failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return list(result.get("ids") or [])

    async def delete_many(self, namespace: str, ids: list[str]) -> int:
        if not ids:
            return 0
        try:
            collection = self._collection(namespace)
            collection.delete(ids=ids)
        except Exception as exc:
            raise VectorStoreError(
                message=f"ChromaDB delete failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.debug("chromadb_delete_many", namespace=namespace, count=len(ids))
        return len(ids)

    def get_provider_name(self) -> str:
        return "chromadb"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
        """ChromaDB metadata values must be str, int, float or bool; drop None."""
        cleaned: dict[str, Any] = {}
        for key, value in metadata.items():
            if value is None:
                continue
            if isinstance(value, (str, int, float, bool)):
                cleaned[key] = value
            else:
                cleaned[key] = str(value)
        return cleaned
