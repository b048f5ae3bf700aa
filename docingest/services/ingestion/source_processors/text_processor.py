"""Source processor for plain text and Markdown.

Strict UTF-8 first (a leading BOM is dropped); anything that is not valid
UTF-8 is decoded as latin-1, which maps every byte and therefore never
fails on non-empty input.
"""

from __future__ import annotations

from docingest.services.ingestion.source_processors.base import FallbackTextExtractor


class TextProcessor(FallbackTextExtractor):
    content_types = frozenset({"text/plain", "text/markdown"})

    def get_processor_name(self) -> str:
        return "text"

    def _extract_preferred(self, data: bytes) -> str:
        return data.decode("utf-8-sig")

    def _extract_alternate(self, data: bytes) -> str:
        return data.decode("latin-1")
