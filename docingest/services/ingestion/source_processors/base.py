"""Shared preferred-then-alternate extraction flow for source processors."""

from __future__ import annotations

import asyncio
from abc import abstractmethod

import structlog

from docingest.interfaces.text_extractor import ITextExtractor
from docingest.utils.errors import ExtractionError

logger = structlog.get_logger(logger_name=__name__)


class FallbackTextExtractor(ITextExtractor):
    """Runs ``_extract_preferred``; on failure or empty text, ``_extract_alternate``.

    Both methods are synchronous parser calls and run in a worker thread.
    """

    content_types: frozenset[str] = frozenset()

    def supports(self, content_type: str) -> bool:
        return content_type in self.content_types

    async def extract(self, data: bytes, content_type: str) -> str:
        attempts: list[str] = []
        for method_name, method in (
            ("preferred", self._extract_preferred),
            ("alternate", self._extract_alternate),
        ):
            try:
                text = await asyncio.to_thread(method, data)
            except Exception as exc:  # noqa: BLE001 - parser errors vary by library
                logger.warning(
                    "extraction_method_failed",
                    processor=self.get_processor_name(),
                    method=method_name,
                    error=str(exc),
                )
                attempts.append(f"{method_name}: {exc}")
                continue

            if text and text.strip():
                logger.info(
                    "extraction_succeeded",
                    processor=self.get_processor_name(),
                    method=method_name,
                    chars=len(text),
                )
                return text
            attempts.append(f"{method_name}: no text")

        raise ExtractionError(
            message=f"All extraction methods failed ({'; '.join(attempts)})",
            provider_name=self.get_processor_name(),
        )

    @abstractmethod
    def _extract_preferred(self, data: bytes) -> str: ...

    @abstractmethod
    def _extract_alternate(self, data: bytes) -> str: ...
