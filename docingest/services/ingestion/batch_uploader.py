"""Embeds fragments and writes them to the vector store in bounded groups.

Each sub-batch of ``batch_size`` fragments is embedded through the
:class:`EmbeddingCache` and upserted under deterministic ids
(``"{document_id}-{order}"``), so running the same sub-batch twice leaves
the store exactly as running it once.

On a :class:`RateLimitError` from either the embedding provider or the
vector store, the *same* sub-batch is retried split into groups of
``fallback_batch_size``, dispatched together under a semaphore.  If any
fallback group fails its error propagates and the caller leaves its
checkpoint where it was.
"""

from __future__ import annotations

import asyncio

import structlog

from docingest.interfaces.vector_store_provider import IVectorStoreProvider
from docingest.models.fragment import Fragment, VectorRecord
from docingest.services.ingestion.embedding_cache import EmbeddingCache
from docingest.utils.concurrency import throttled_gather
from docingest.utils.errors import RateLimitError

logger = structlog.get_logger(logger_name=__name__)


def _partition(items: list[Fragment], size: int) -> list[list[Fragment]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class BatchUploader:
    """Embed-then-upsert writer with rate-limit degradation."""

    def __init__(
        self,
        embedder: EmbeddingCache,
        vector_store: IVectorStoreProvider,
        batch_size: int = 40,
        fallback_batch_size: int = 20,
        max_concurrency: int = 2,
    ) -> None:
        self._embedder = embedder
        self._vector_store = vector_store
        self._batch_size = max(batch_size, 1)
        self._fallback_batch_size = max(min(fallback_batch_size, self._batch_size), 1)
        self._max_concurrency = max(max_concurrency, 1)

    async def upload(self, fragments: list[Fragment], namespace: str) -> int:
        """Embed and upsert *fragments* into *namespace*.

        Returns
        -------
        int
            Number of vectors written.

        Raises
        ------
        RateLimitError
            If a fallback group is still rate limited.
        docingest.utils.errors.IngestError
            Any other provider or store failure, immediately.
        """
        written = 0
        for sub_batch in _partition(fragments, self._batch_size):
            try:
                written += await self._write(sub_batch, namespace)
            except RateLimitError as exc:
                logger.warning(
                    "upsert_rate_limited",
                    namespace=namespace,
                    sub_batch_size=len(sub_batch),
                    fallback_size=self._fallback_batch_size,
                    error=str(exc),
                )
                written += await self._write_degraded(sub_batch, namespace)
        return written

    async def _write(self, fragments: list[Fragment], namespace: str) -> int:
        # Only the body is embedded; context travels as metadata.
        vectors = await self._embedder.embed_many([f.text for f in fragments])
        records = [
            VectorRecord(id=f.vector_id, vector=v, metadata=f.to_vector_metadata())
            for f, v in zip(fragments, vectors)
        ]
        return await self._vector_store.upsert(namespace, records)

    async def _write_degraded(self, fragments: list[Fragment], namespace: str) -> int:
        groups = _partition(fragments, self._fallback_batch_size)
        semaphore = asyncio.Semaphore(self._max_concurrency)
        results = await throttled_gather(
            [self._write(group, namespace) for group in groups],
            semaphore=semaphore,
        )

        written = 0
        for group, result in zip(groups, results):
            if isinstance(result, BaseException):
                logger.error(
                    "upsert_fallback_failed",
                    namespace=namespace,
                    group_size=len(group),
                    first_order=group[0].order,
                    error=str(result),
                )
                raise result
            written += result

        logger.info(
            "upsert_fallback_succeeded",
            namespace=namespace,
            groups=len(groups),
            written=written,
        )
        return written
