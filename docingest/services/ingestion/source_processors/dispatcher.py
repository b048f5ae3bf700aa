"""Chooses a source processor by content type and cleans its output.

Unknown content types are decoded as plain text with a warning rather than
rejected, so an upload with a missing or odd MIME type still has a chance
to ingest.  Upload validation in the ingestion service is where unsupported
types are refused.
"""

from __future__ import annotations

import structlog

from docingest.interfaces.text_extractor import ITextExtractor
from docingest.services.ingestion.source_processors.docx_processor import (
    DOCX_CONTENT_TYPE,
    DocxProcessor,
)
from docingest.services.ingestion.source_processors.pdf_processor import PDFProcessor
from docingest.services.ingestion.source_processors.text_processor import TextProcessor
from docingest.utils.text_normalizer import clean_extracted_text

logger = structlog.get_logger(logger_name=__name__)

# File suffix -> canonical content type, for uploads without an explicit type.
SUFFIX_CONTENT_TYPES: dict[str, str] = {
    ".pdf": "application/pdf",
    ".docx": DOCX_CONTENT_TYPE,
    ".txt": "text/plain",
    ".text": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
}


class ExtractionDispatcher:
    """Routes raw bytes to the processor registered for their content type."""

    def __init__(self, processors: list[ITextExtractor] | None = None) -> None:
        self._processors: list[ITextExtractor] = processors or [
            PDFProcessor(),
            DocxProcessor(),
            TextProcessor(),
        ]
        self._plain_text = next(
            (p for p in self._processors if p.supports("text/plain")), TextProcessor()
        )

    def supports(self, content_type: str) -> bool:
        return any(p.supports(_base_type(content_type)) for p in self._processors)

    def processor_for(self, content_type: str) -> ITextExtractor:
        base = _base_type(content_type)
        for processor in self._processors:
            if processor.supports(base):
                return processor
        logger.warning("unknown_content_type_as_text", content_type=content_type)
        return self._plain_text

    async def extract(self, data: bytes, content_type: str) -> str:
        """Extract and clean text.

        Raises
        ------
        docingest.utils.errors.ExtractionError
            If the selected processor's methods all fail.
        """
        processor = self.processor_for(content_type)
        raw = await processor.extract(data, _base_type(content_type))
        return clean_extracted_text(raw)


def _base_type(content_type: str) -> str:
    """Strip parameters: ``text/plain; charset=utf-8`` -> ``text/plain``."""
    return content_type.split(";", 1)[0].strip().lower()
