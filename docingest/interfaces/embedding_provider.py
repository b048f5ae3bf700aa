"""Abstract base class for text-embedding service providers.

Defines the contract for generating embedding vectors from text.
Implementations wrap OpenAI-compatible embedding endpoints or Nomic
``nomic-embed-text`` served locally by Ollama; the embedding cache and the
batch uploader depend only on this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   OpenAIEmbeddingProvider  -- text-embedding-3-small (requires API key)
#   NomicEmbeddingProvider   -- nomic-embed-text via Ollama (local)
# Located in: docingest/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the ingestion pipeline."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Embedding vectors corresponding positionally to *texts*.  Each
            inner list has length equal to :meth:`get_dimension`.

        Raises
        ------
        docingest.utils.errors.RateLimitError
            If the provider rejects the call for rate or capacity reasons.
        docingest.utils.errors.EmbeddingProviderError
            If the embedding API call fails for any other reason.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string.

        Convenience wrapper around :meth:`embed` for query-time use.
        """

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors.

        Example values: ``1536`` (OpenAI ``text-embedding-3-small``),
        ``768`` (Nomic ``nomic-embed-text``).
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and reachable."""
