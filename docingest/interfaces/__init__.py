"""Abstract interfaces (adapter contracts) for external collaborators."""

from docingest.interfaces.blob_store import IBlobStore
from docingest.interfaces.embedding_provider import IEmbeddingProvider
from docingest.interfaces.metadata_store import IMetadataStore
from docingest.interfaces.text_extractor import ITextExtractor
from docingest.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IBlobStore",
    "IEmbeddingProvider",
    "IMetadataStore",
    "ITextExtractor",
    "IVectorStoreProvider",
]
