"""Unit tests for the source processors and the extraction dispatcher."""

from __future__ import annotations

import io
import zipfile

import pytest

from docingest.services.ingestion.source_processors import (
    DocxProcessor,
    ExtractionDispatcher,
    PDFProcessor,
    TextProcessor,
)
from docingest.services.ingestion.source_processors.docx_processor import DOCX_CONTENT_TYPE
from docingest.utils.errors import ExtractionError


def _make_pdf(pages: list[str]) -> bytes:
    import fitz

    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _make_docx(paragraphs: list[str], table_rows: list[list[str]] | None = None) -> bytes:
    from docx import Document

    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table_rows:
        table = doc.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for r, row in enumerate(table_rows):
            for c, value in enumerate(row):
                table.cell(r, c).text = value
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


# ======================================================================
# Text
# ======================================================================


class TestTextProcessor:
    @pytest.mark.asyncio
    async def test_utf8_with_bom(self) -> None:
        text = await TextProcessor().extract("\ufeffhéllo".encode("utf-8"), "text/plain")
        assert text == "héllo"

    @pytest.mark.asyncio
    async def test_latin1_fallback(self) -> None:
        text = await TextProcessor().extract(b"caf\xe9", "text/plain")
        assert text == "café"

    @pytest.mark.asyncio
    async def test_empty_fails(self) -> None:
        with pytest.raises(ExtractionError, match="no text"):
            await TextProcessor().extract(b"   ", "text/plain")

    def test_supports(self) -> None:
        processor = TextProcessor()
        assert processor.supports("text/markdown")
        assert not processor.supports("application/pdf")


# ======================================================================
# PDF
# ======================================================================


class TestPDFProcessor:
    @pytest.mark.asyncio
    async def test_extracts_page_text(self) -> None:
        data = _make_pdf(["First page text", "Second page text"])

        text = await PDFProcessor().extract(data, "application/pdf")

        assert "First page text" in text
        assert "Second page text" in text

    @pytest.mark.asyncio
    async def test_garbage_bytes_fail_both_methods(self) -> None:
        with pytest.raises(ExtractionError) as exc_info:
            await PDFProcessor().extract(b"not a pdf at all", "application/pdf")

        assert "preferred" in str(exc_info.value)
        assert "alternate" in str(exc_info.value)
        assert exc_info.value.provider_name == "pdf"

    @pytest.mark.asyncio
    async def test_falls_back_when_preferred_raises(self, monkeypatch) -> None:
        processor = PDFProcessor()

        def _boom(data: bytes) -> str:
            raise RuntimeError("cannot open")

        monkeypatch.setattr(processor, "_extract_preferred", _boom)
        text = await processor.extract(_make_pdf(["Fallback page"]), "application/pdf")

        assert "Fallback page" in text


# ======================================================================
# DOCX
# ======================================================================


class TestDocxProcessor:
    @pytest.mark.asyncio
    async def test_paragraphs_and_tables(self) -> None:
        data = _make_docx(
            ["Opening paragraph.", "", "Closing paragraph."],
            table_rows=[["Name", "Value"], ["alpha", "1"]],
        )

        text = await DocxProcessor().extract(data, DOCX_CONTENT_TYPE)

        assert text.split("\n\n")[:2] == ["Opening paragraph.", "Closing paragraph."]
        assert "Name | Value" in text
        assert "alpha | 1" in text

    @pytest.mark.asyncio
    async def test_raw_xml_fallback(self) -> None:
        xml = (
            '<w:document xmlns:w="http://schemas.openxmlformats.org/'
            'wordprocessingml/2006/main"><w:body>'
            "<w:p><w:r><w:t>Raw </w:t></w:r><w:r><w:t>paragraph</w:t></w:r></w:p>"
            "<w:p><w:r><w:t>Second</w:t></w:r></w:p>"
            "</w:body></w:document>"
        )
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("word/document.xml", xml)

        text = await DocxProcessor().extract(buffer.getvalue(), DOCX_CONTENT_TYPE)

        assert text == "Raw paragraph\n\nSecond"


# ======================================================================
# Dispatcher
# ======================================================================


class TestExtractionDispatcher:
    def test_supports_known_types_with_parameters(self) -> None:
        dispatcher = ExtractionDispatcher()
        assert dispatcher.supports("text/plain; charset=utf-8")
        assert dispatcher.supports("APPLICATION/PDF")
        assert dispatcher.supports(DOCX_CONTENT_TYPE)
        assert not dispatcher.supports("image/png")

    @pytest.mark.asyncio
    async def test_output_is_cleaned(self) -> None:
        raw = "Title\r\n\r\n\r\n\r\nBody   with\x00 junk\t\ttabs.".encode("utf-8")
        text = await ExtractionDispatcher().extract(raw, "text/plain")
        assert text == "Title\n\nBody with junk tabs."

    @pytest.mark.asyncio
    async def test_unknown_type_decoded_as_text(self) -> None:
        dispatcher = ExtractionDispatcher()
        assert isinstance(dispatcher.processor_for("application/x-unknown"), TextProcessor)
        assert await dispatcher.extract(b"plain words", "application/x-unknown") == "plain words"
