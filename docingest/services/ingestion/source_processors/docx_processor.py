"""Source processor for Word (.docx) documents.

python-docx reads the XML inside the DOCX zip archive and yields paragraph
and table-cell text with formatting stripped.  Files python-docx refuses
(e.g. missing content-type parts written by some converters) are read
directly from ``word/document.xml``.
"""

from __future__ import annotations

import io
import zipfile
from xml.etree import ElementTree

from docx import Document as DocxDocument

from docingest.services.ingestion.source_processors.base import FallbackTextExtractor

DOCX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_WORD_NS = "{http://schemas.openxmlformats.org/wordprocessingml/2006/main}"


class DocxProcessor(FallbackTextExtractor):
    """Extracts paragraph text from DOCX bytes."""

    content_types = frozenset({DOCX_CONTENT_TYPE})

    def get_processor_name(self) -> str:
        return "docx"

    def _extract_preferred(self, data: bytes) -> str:
        doc = DocxDocument(io.BytesIO(data))
        blocks = [para.text for para in doc.paragraphs if para.text.strip()]
        for table in doc.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    blocks.append(" | ".join(cells))
        return "\n\n".join(blocks)

    def _extract_alternate(self, data: bytes) -> str:
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            xml_bytes = archive.read("word/document.xml")
        root = ElementTree.fromstring(xml_bytes)
        paragraphs: list[str] = []
        for para in root.iter(f"{_WORD_NS}p"):
            text = "".join(node.text or "" for node in para.iter(f"{_WORD_NS}t"))
            if text.strip():
                paragraphs.append(text)
        return "\n\n".join(paragraphs)
