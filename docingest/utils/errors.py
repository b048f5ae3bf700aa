"""Custom exception hierarchy for docingest.

All application exceptions inherit from :class:`IngestError`, which carries
an optional ``provider_name`` so error handlers can identify which external
service (e.g. "openai", "chromadb", "sqlite") caused the failure.

The hierarchy is organized by pipeline stage:

    IngestError  (base -- catch-all for any docingest error)
    +-- ExtractionError          (stage 1: bytes -> text)
    +-- ChunkingError            (stage 2: text -> fragments)
    +-- EmbeddingProviderError   (embedding API failure)
    +-- VectorStoreError         (vector store read/write failure)
    +-- RateLimitError           (rate limit or capacity exceeded)
    +-- BlobStoreError           (raw file storage failure)
    |   +-- BlobNotFoundError    (object already gone)
    +-- DocumentNotFoundError    (missing row or owner mismatch)
    +-- DocumentValidationError  (upload rejected before processing)
    +-- PipelineError            (invalid stage transition)
    +-- ConfigurationError       (startup / missing config)

Callers handle errors at the level they care about: the batch uploader
degrades its sub-batch size on RateLimitError, the deletion coordinator
tolerates BlobNotFoundError, and the stage controller records any
IngestError verbatim on the document row.
"""


class IngestError(Exception):
    """Base exception for all docingest errors.

    ``__str__`` prefixes the provider name in brackets for log scanning,
    e.g. ``[openai_embedding] Rate limit exceeded``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Content errors (fatal for the document)
# ---------------------------------------------------------------------------

class ExtractionError(IngestError):
    """Raised when no extraction method could turn the raw file into text.

    Resumable by re-extraction as long as the raw blob still exists.
    """

    def __init__(
        self,
        message: str = "Text extraction failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ChunkingError(IngestError):
    """Raised when normalized text yields zero fragments."""

    def __init__(
        self,
        message: str = "Chunking produced no fragments",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service / provider errors
# ---------------------------------------------------------------------------

class EmbeddingProviderError(IngestError):
    """Raised when an embedding API call fails or returns malformed data."""

    def __init__(
        self,
        message: str = "Embedding provider call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class VectorStoreError(IngestError):
    """Raised when a vector store operation fails."""

    def __init__(
        self,
        message: str = "Vector store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(IngestError):
    """Raised when a provider rejects a call for rate or capacity reasons.

    The batch uploader catches this to retry the same work in smaller
    groups before giving up.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BlobStoreError(IngestError):
    """Raised when the raw-file blob store fails."""

    def __init__(
        self,
        message: str = "Blob store operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BlobNotFoundError(BlobStoreError):
    """Raised when a blob path does not exist."""

    def __init__(
        self,
        message: str = "Blob not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Caller-facing errors
# ---------------------------------------------------------------------------

class DocumentNotFoundError(IngestError):
    """Raised when a document does not exist or belongs to another owner.

    Both cases produce the same error so callers cannot probe for ids that
    belong to other owners.
    """

    def __init__(
        self,
        message: str = "Document not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class DocumentValidationError(IngestError):
    """Raised when an upload is rejected (size, content type)."""

    def __init__(
        self,
        message: str = "Document failed validation",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(IngestError):
    """Raised when a stage transition is not possible from the stored state."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(IngestError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
