"""Utility modules for docingest.

Available utility modules (re-exported here for convenience):

- **errors** -- Exception hierarchy rooted at IngestError; each pipeline
  stage raises its own subclass so callers can handle failures granularly.
- **concurrency** -- semaphore-throttled gather and a background task
  dispatcher that keeps fire-and-forget invocations observable.
- **logging** -- structlog setup with a dual-renderer pattern: coloured
  console output in development, structured JSON in production.
- **text_normalizer** -- sanitization and whitespace normalization of
  extracted document text.
"""

# -- Async concurrency helpers ---------------------------------------------
from docingest.utils.concurrency import BackgroundDispatcher, throttled_gather

# -- Domain exception hierarchy --------------------------------------------
from docingest.utils.errors import (
    BlobNotFoundError,
    BlobStoreError,
    ChunkingError,
    ConfigurationError,
    DocumentNotFoundError,
    DocumentValidationError,
    EmbeddingProviderError,
    ExtractionError,
    IngestError,
    PipelineError,
    RateLimitError,
    VectorStoreError,
)

# -- Structured logging setup ----------------------------------------------
from docingest.utils.logging import configure_logging, get_logger

# -- Text normalization ----------------------------------------------------
from docingest.utils.text_normalizer import clean_extracted_text

__all__ = [
    "BackgroundDispatcher",
    "BlobNotFoundError",
    "BlobStoreError",
    "ChunkingError",
    "ConfigurationError",
    "DocumentNotFoundError",
    "DocumentValidationError",
    "EmbeddingProviderError",
    "ExtractionError",
    "IngestError",
    "PipelineError",
    "RateLimitError",
    "VectorStoreError",
    "clean_extracted_text",
    "configure_logging",
    "get_logger",
    "throttled_gather",
]
