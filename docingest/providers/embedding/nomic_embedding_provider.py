"""Local embeddings with ``nomic-embed-text`` served by Ollama.

Ollama exposes an OpenAI-compatible ``/v1/embeddings`` endpoint, so the
``openai`` client does the transport; this adapter adds what is specific to
a local Nomic model:

* Every input is prefixed with ``search_document:``.  Nomic models are
  trained with task prefixes, and everything this pipeline embeds is a
  stored fragment.
* Ollama answers 503 while it is loading the model into memory and 429
  when its request queue is full.  Both become :class:`RateLimitError`, so
  the batch uploader backs off to smaller groups exactly as it does for a
  hosted API.
* A vector count or width that does not match the input is an
  :class:`EmbeddingProviderError`.  A silently swapped model would
  otherwise write vectors of the wrong width into an existing namespace.
* :meth:`is_available` requires the model to be pulled, not just the
  server to be up.
"""

from __future__ import annotations

import httpx
import openai
import structlog

from docingest.config.settings import Settings
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.providers.embedding.openai_embedding_provider import map_openai_error
from docingest.utils.errors import EmbeddingProviderError

logger = structlog.get_logger(logger_name=__name__)

_MODEL = "nomic-embed-text"
_DIMENSION = 768
_DOCUMENT_PREFIX = "search_document: "

# Ollama holds a whole request in memory; keep calls modest.
_OLLAMA_BATCH_LIMIT = 256


class NomicEmbeddingProvider(IEmbeddingProvider):
    """768-dimensional ``nomic-embed-text`` vectors from a local Ollama server."""

    def __init__(self, settings: Settings) -> None:
        self._base_url = settings.ollama_base_url.rstrip("/")
        self._client = openai.AsyncOpenAI(
            base_url=f"{self._base_url}/v1",
            api_key="ollama",  # required by the client, ignored by Ollama
            max_retries=0,
        )

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), _OLLAMA_BATCH_LIMIT):
            chunk = texts[start : start + _OLLAMA_BATCH_LIMIT]
            group = [_DOCUMENT_PREFIX + text for text in chunk]
            try:
                response = await self._client.embeddings.create(input=group, model=_MODEL)
            except openai.APIError as exc:
                raise map_openai_error(exc, self.get_provider_name(), "Ollama embedding") from exc
            vectors.extend(item.embedding for item in response.data)
            logger.debug("nomic_embedding_batch", group_size=len(group), offset=start)

        self._check_shape(vectors, len(texts))
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    def get_dimension(self) -> int:
        return _DIMENSION

    def get_provider_name(self) -> str:
        return "nomic_embedding"

    def is_available(self) -> bool:
        """Return ``True`` if Ollama is reachable and has the model pulled."""
        if not self._base_url:
            return False
        try:
            response = httpx.get(f"{self._base_url}/api/tags", timeout=3.0)
        except (httpx.ConnectError, httpx.TimeoutException):
            return False
        if response.status_code != 200:
            return False
        models = response.json().get("models", [])
        pulled = any(m.get("name", "").split(":")[0] == _MODEL for m in models)
        if not pulled:
            logger.warning("nomic_model_not_pulled", base_url=self._base_url, model=_MODEL)
        return pulled

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _check_shape(self, vectors: list[list[float]], expected: int) -> None:
        if len(vectors) != expected:
            raise EmbeddingProviderError(
                message=f"Ollama returned {len(vectors)} vectors for {expected} inputs",
                provider_name=self.get_provider_name(),
            )
        widths = {len(v) for v in vectors}
        if widths != {_DIMENSION}:
            raise EmbeddingProviderError(
                message=(
                    f"Ollama returned vectors of width {sorted(widths)}; "
                    f"{_MODEL} produces {_DIMENSION}"
                ),
                provider_name=self.get_provider_name(),
            )
