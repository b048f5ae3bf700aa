"""Source processor for PDF documents.

Reads PDFs with PyMuPDF (fitz) page by page; when PyMuPDF cannot open the
file or finds no text layer, falls back to pypdf, which tolerates some
malformed cross-reference tables that PyMuPDF rejects.  Scanned PDFs
without an embedded OCR text layer yield no text from either and fail
extraction.
"""

from __future__ import annotations

import io

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
from pypdf import PdfReader

from docingest.services.ingestion.source_processors.base import FallbackTextExtractor


class PDFProcessor(FallbackTextExtractor):
    """Extracts text from PDF bytes, one paragraph block per page."""

    content_types = frozenset({"application/pdf"})

    def get_processor_name(self) -> str:
        return "pdf"

    def _extract_preferred(self, data: bytes) -> str:
        doc = fitz.open(stream=data, filetype="pdf")
        pages: list[str] = []
        try:
            for page in doc:
                text = page.get_text("text").strip()
                if text:
                    pages.append(text)
        finally:
            doc.close()
        return "\n\n".join(pages)

    def _extract_alternate(self, data: bytes) -> str:
        reader = PdfReader(io.BytesIO(data), strict=False)
        pages: list[str] = []
        for page in reader.pages:
            text = (page.extract_text() or "").strip()
            if text:
                pages.append(text)
        return "\n\n".join(pages)
