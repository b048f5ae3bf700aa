"""Abstract base class for format-specific text extractors.

Each extractor owns one family of content types and tries a preferred
method before an alternate one; only when both fail does it raise.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations: PDFProcessor, DocxProcessor, TextProcessor
# Located in: docingest/services/ingestion/source_processors/
class ITextExtractor(ABC):
    """Contract for turning raw file bytes into plain text."""

    @abstractmethod
    def supports(self, content_type: str) -> bool:
        """Return ``True`` if this extractor handles *content_type*."""

    @abstractmethod
    async def extract(self, data: bytes, content_type: str) -> str:
        """Extract plain text from *data*.

        Raises
        ------
        docingest.utils.errors.ExtractionError
            If neither the preferred nor the alternate method produced text.
        """

    @abstractmethod
    def get_processor_name(self) -> str:
        """Return a short identifier used in logs and error messages."""
