"""Source processors for the docingest extraction stage.

Each processor converts one family of file formats into plain text, trying
a preferred extraction method and then an alternate one:

- **PDFProcessor**  -- PyMuPDF page text, pypdf fallback
- **DocxProcessor** -- python-docx paragraphs/tables, raw document.xml fallback
- **TextProcessor** -- strict UTF-8, latin-1 fallback

:class:`ExtractionDispatcher` picks the processor by content type and
normalizes the output before chunking.
"""

from docingest.services.ingestion.source_processors.dispatcher import (
    SUFFIX_CONTENT_TYPES,
    ExtractionDispatcher,
)
from docingest.services.ingestion.source_processors.docx_processor import DocxProcessor
from docingest.services.ingestion.source_processors.pdf_processor import PDFProcessor
from docingest.services.ingestion.source_processors.text_processor import TextProcessor

__all__ = [
    "SUFFIX_CONTENT_TYPES",
    "DocxProcessor",
    "ExtractionDispatcher",
    "PDFProcessor",
    "TextProcessor",
]
