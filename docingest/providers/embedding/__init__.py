"""Embedding provider implementations.

Two implementations of IEmbeddingProvider (in priority order):
    1. OpenAIEmbeddingProvider -- text-embedding-3-small (1536 dims), or any
       OpenAI-compatible endpoint via OPENAI_BASE_URL.
    2. NomicEmbeddingProvider  -- nomic-embed-text via Ollama (768 dims).
       Free and local, but requires a running Ollama server.
"""

from docingest.providers.embedding.nomic_embedding_provider import NomicEmbeddingProvider
from docingest.providers.embedding.openai_embedding_provider import OpenAIEmbeddingProvider

__all__ = ["OpenAIEmbeddingProvider", "NomicEmbeddingProvider"]
