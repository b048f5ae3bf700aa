"""Content-hash memoization around an embedding provider.

Keys are the SHA-256 of the fragment text, so identical text embeds once
per process regardless of which document it came from.  The cache is a
size-capped ``cachetools.LRUCache``: it is a process-local cost saver,
never a correctness mechanism, and a cold process simply re-embeds.
"""

from __future__ import annotations

import hashlib

import structlog
from cachetools import LRUCache

from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.utils.errors import EmbeddingProviderError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_MAX_ENTRIES = 10_000


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingCache:
    """LRU cache in front of an :class:`IEmbeddingProvider`.

    Provider errors propagate unchanged; this layer adds no retries.  A
    response whose vector count does not match the request raises
    :class:`EmbeddingProviderError` and caches nothing.
    """

    def __init__(
        self,
        provider: IEmbeddingProvider,
        max_entries: int = _DEFAULT_MAX_ENTRIES,
    ) -> None:
        self._provider = provider
        self._cache: LRUCache[str, list[float]] = LRUCache(maxsize=max(max_entries, 1))
        self._hits = 0
        self._misses = 0

    @property
    def provider(self) -> IEmbeddingProvider:
        return self._provider

    async def embed(self, text: str) -> list[float]:
        """Return the vector for *text*, calling the provider on a miss."""
        key = content_hash(text)
        cached = self._cache.get(key)
        if cached is not None:
            self._hits += 1
            return cached

        self._misses += 1
        vector = await self._provider.embed_single(text)
        self._cache[key] = vector
        return vector

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Return vectors for *texts* in order.

        All misses go to the provider in a single batched call; text that
        appears more than once in *texts* is embedded once.
        """
        if not texts:
            return []

        keys = [content_hash(t) for t in texts]
        resolved: dict[str, list[float]] = {}
        missing: dict[str, str] = {}
        for key, text in zip(keys, texts):
            if key in resolved or key in missing:
                continue
            cached = self._cache.get(key)
            if cached is not None:
                resolved[key] = cached
            else:
                missing[key] = text

        self._hits += len(texts) - len(missing)
        self._misses += len(missing)

        if missing:
            vectors = await self._provider.embed(list(missing.values()))
            if len(vectors) != len(missing):
                # Nothing is cached from a response that cannot be matched to its inputs.
                raise EmbeddingProviderError(
                    message=f"Provider returned {len(vectors)} vectors for {len(missing)} inputs",
                    provider_name=self._provider.get_provider_name(),
                )
            for key, vector in zip(missing.keys(), vectors):
                self._cache[key] = vector
                resolved[key] = vector

        logger.debug(
            "embedding_cache_lookup",
            requested=len(texts),
            embedded=len(missing),
            cache_size=len(self._cache),
        )
        return [resolved[key] for key in keys]

    def stats(self) -> dict[str, int]:
        return {"hits": self._hits, "misses": self._misses, "size": len(self._cache)}

    def clear(self) -> None:
        self._cache.clear()
