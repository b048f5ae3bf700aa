"""Vector store provider implementations.

ChromaDB is the sole vector store implementation: one persistent collection
per owner namespace, cosine similarity.
"""

from docingest.providers.vector_store.chromadb_provider import ChromaDBProvider

__all__ = ["ChromaDBProvider"]
