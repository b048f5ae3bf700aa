"""OpenAI-compatible embedding provider adapter.

Wraps the ``openai`` async client to implement :class:`IEmbeddingProvider`.
Supports real OpenAI and OpenAI-compatible providers (TogetherAI,
Fireworks) via custom ``base_url`` and model name settings.

Rate-limit (429) and capacity (503) responses are raised as
:class:`RateLimitError` so the batch uploader can retry the same work in
smaller groups; every other API failure becomes
:class:`EmbeddingProviderError`.
"""

from __future__ import annotations

import openai
import structlog

from docingest.config.settings import Settings
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.utils.errors import EmbeddingProviderError, RateLimitError

logger = structlog.get_logger(logger_name=__name__)

_OPENAI_BATCH_LIMIT = 2048

# Known embedding model dimensions.
_MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-large-en-v1.5": 1024,
}

_CAPACITY_STATUS_CODES = frozenset({429, 503})


def map_openai_error(exc: openai.APIError, provider_name: str, label: str) -> Exception:
    """Translate an ``openai`` exception into the docingest hierarchy."""
    if isinstance(exc, openai.RateLimitError):
        return RateLimitError(
            message=f"{label} rate limit: {exc}", provider_name=provider_name
        )
    if isinstance(exc, openai.APIStatusError) and exc.status_code in _CAPACITY_STATUS_CODES:
        return RateLimitError(
            message=f"{label} over capacity ({exc.status_code}): {exc}",
            provider_name=provider_name,
        )
    return EmbeddingProviderError(
        message=f"{label} API error: {exc}", provider_name=provider_name
    )


class OpenAIEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by an OpenAI-compatible embeddings API.

    Uses ``text-embedding-3-small`` (1536 dims) by default.  When
    ``openai_base_url`` is configured the client points at that URL and
    uses ``openai_embedding_model`` if set.  SDK-level retries are disabled
    so rate limits surface immediately to the batch uploader's degradation
    path instead of stalling inside the invocation time budget.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._api_key = settings.openai_api_key

        client_kwargs: dict = {"api_key": self._api_key, "max_retries": 0}
        if settings.openai_base_url:
            client_kwargs["base_url"] = settings.openai_base_url

        self._client = openai.AsyncOpenAI(**client_kwargs)
        self._model = settings.openai_embedding_model or "text-embedding-3-small"
        self._dimension = _MODEL_DIMENSIONS.get(self._model, 768)
        self._provider_label = (
            "openai-compatible_embedding" if settings.openai_base_url else "openai_embedding"
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Automatically splits into batches of 2048 if the input exceeds the
        per-call limit.
        """
        if not texts:
            return []

        try:
            all_embeddings: list[list[float]] = []
            for start in range(0, len(texts), _OPENAI_BATCH_LIMIT):
                batch = texts[start : start + _OPENAI_BATCH_LIMIT]
                response = await self._client.embeddings.create(
                    input=batch,
                    model=self._model,
                )
                all_embeddings.extend(item.embedding for item in response.data)
                logger.info(
                    "openai_embedding_batch",
                    model=self._model,
                    provider=self._provider_label,
                    batch_size=len(batch),
                    tokens=response.usage.total_tokens if response.usage else None,
                )
        except openai.APIError as exc:
            raise map_openai_error(exc, self.get_provider_name(), self._provider_label) from exc

        if len(all_embeddings) != len(texts):
            raise EmbeddingProviderError(
                message=(
                    f"{self._provider_label} returned {len(all_embeddings)} vectors "
                    f"for {len(texts)} inputs"
                ),
                provider_name=self.get_provider_name(),
            )
        return all_embeddings

    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string."""
        result = await self.embed([text])
        return result[0]

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return self._provider_label

    def is_available(self) -> bool:
        """Return ``True`` if an API key is configured."""
        return bool(self._api_key)
