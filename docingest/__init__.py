"""docingest -- resumable document ingestion into a namespaced vector store."""

__version__ = "0.1.0"
