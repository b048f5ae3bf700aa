"""Text chunking with paragraph packing and stitched neighbour context.

Splits normalized document text into :class:`~docingest.models.fragment.Fragment`
objects sized in characters (default 2000 with 200 characters of context).

The chunking strategy has two key design goals:

1. **Paragraph-preserving** -- Fragment boundaries align with blank-line
   paragraph breaks wherever possible, so paragraphs are packed greedily
   until the next one would overflow the target size.

2. **Context without duplication** -- Overlap is carried only as
   ``pre_context`` (tail of the previous body) and ``post_context`` (head
   of the next body).  Bodies partition the text, so nothing is embedded
   twice and the concatenated bodies recover the input almost exactly.

A paragraph longer than the target is split at the best boundary inside a
``chunk_size + 100`` window: a sentence end, else a word boundary, else a
hard cut.  Every split consumes at least one character, so the loop always
terminates.
"""

from __future__ import annotations

import re

import structlog
from pydantic import BaseModel, ConfigDict, Field

from docingest.models.document import ChunkMetrics
from docingest.models.fragment import Fragment

logger = structlog.get_logger(logger_name=__name__)

MIN_CHUNK_SIZE = 100
MAX_CHUNK_SIZE = 8000
# Extra characters searched past chunk_size for a sentence end.
BOUNDARY_WINDOW = 100
COVERAGE_WARNING_THRESHOLD = 95.0

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_END = re.compile(r"[.!?]\s+")
_MULTI_SPACE = re.compile(r" {2,}")
_PARAGRAPH_SEPARATOR = "\n\n"


class ChunkingResult(BaseModel):
    """Fragments in order plus the metrics used for the coverage check."""

    model_config = ConfigDict(frozen=True)

    fragments: list[Fragment] = Field(default_factory=list)
    metrics: ChunkMetrics = Field(default_factory=ChunkMetrics)


class TextChunker:
    """Splits text into ordered fragments preserving paragraph boundaries.

    Parameters
    ----------
    chunk_size:
        Target maximum characters per fragment body, clamped to
        ``[100, 8000]``.
    overlap:
        Characters of neighbour context attached to each fragment, clamped
        to ``[0, chunk_size // 4]``.
    """

    def __init__(self, chunk_size: int = 2000, overlap: int = 200) -> None:
        self._chunk_size = min(max(chunk_size, MIN_CHUNK_SIZE), MAX_CHUNK_SIZE)
        self._overlap = min(max(overlap, 0), self._chunk_size // 4)

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chunk(self, text: str, source_metadata: dict[str, object] | None = None) -> ChunkingResult:
        """Split *text* into ordered :class:`Fragment` objects.

        Parameters
        ----------
        text:
            The document text.  Whitespace is normalized before splitting.
        source_metadata:
            Copied into every fragment.  Recognized keys: ``document_id``,
            ``owner_id``, ``title``.

        Returns
        -------
        ChunkingResult
            Fragments with contiguous ``order`` 0..N-1 and aggregate
            metrics.  Empty or whitespace-only input yields an empty result;
            the caller decides whether that is fatal.
        """
        source_metadata = source_metadata or {}
        normalized = self.normalize(text or "")
        if not normalized:
            return ChunkingResult()

        bodies = self._accumulate_chunks(self._split_paragraphs(normalized))
        fragments = self._stitch(bodies, source_metadata)
        metrics = self._compute_metrics(normalized, bodies)

        document_id = source_metadata.get("document_id")
        if metrics.coverage < COVERAGE_WARNING_THRESHOLD:
            logger.warning(
                "chunk_coverage_low",
                document_id=document_id,
                coverage=metrics.coverage,
                input_chars=metrics.total_input_chars,
                output_chars=metrics.total_output_chars,
            )
        if metrics.largest_chunk > MAX_CHUNK_SIZE:
            logger.warning(
                "chunk_oversize",
                document_id=document_id,
                largest_chunk=metrics.largest_chunk,
            )

        logger.debug(
            "chunking_complete",
            document_id=document_id,
            num_chunks=metrics.chunk_count,
            avg_chars=metrics.avg_chunk_size,
            coverage=metrics.coverage,
        )
        return ChunkingResult(fragments=fragments, metrics=metrics)

    @staticmethod
    def normalize(text: str) -> str:
        """Fold CRLF, turn tabs into spaces, collapse space runs and trim."""
        text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\t", " ")
        text = _MULTI_SPACE.sub(" ", text)
        return text.strip()

    # ------------------------------------------------------------------
    # Paragraph packing
    # ------------------------------------------------------------------

    @staticmethod
    def _split_paragraphs(text: str) -> list[str]:
        """Split *text* on blank lines, discarding empty paragraphs."""
        parts = _PARAGRAPH_SPLIT.split(text)
        return [p.strip() for p in parts if p.strip()]

    def _accumulate_chunks(self, paragraphs: list[str]) -> list[str]:
        """Greedily pack paragraphs into bodies no longer than chunk_size."""
        chunks: list[str] = []
        current: list[str] = []
        current_len = 0

        for para in paragraphs:
            if len(para) > self._chunk_size:
                # Flush before switching to boundary splitting.
                if current:
                    chunks.append(_PARAGRAPH_SEPARATOR.join(current))
                    current = []
                    current_len = 0
                chunks.extend(self._split_long_paragraph(para))
                continue

            added = len(para) + (len(_PARAGRAPH_SEPARATOR) if current else 0)
            if current and current_len + added > self._chunk_size:
                chunks.append(_PARAGRAPH_SEPARATOR.join(current))
                current = []
                current_len = 0
                added = len(para)

            current.append(para)
            current_len += added

        if current:
            chunks.append(_PARAGRAPH_SEPARATOR.join(current))
        return chunks

    # ------------------------------------------------------------------
    # Long-paragraph splitting
    # ------------------------------------------------------------------

    def _split_long_paragraph(self, paragraph: str) -> list[str]:
        pieces: list[str] = []
        rest = paragraph
        while len(rest) > self._chunk_size:
            cut = self._find_split_point(rest)
            piece = rest[:cut].rstrip()
            if not piece:
                # Only whitespace before the boundary; take a hard cut.
                cut = self._chunk_size
                piece = rest[:cut]
            pieces.append(piece)
            rest = rest[cut:].lstrip()
        if rest:
            pieces.append(rest)
        return pieces

    def _find_split_point(self, text: str) -> int:
        """Return an index in ``(0, chunk_size + BOUNDARY_WINDOW]`` to cut at.

        Preference order: the last sentence end at or before chunk_size, the
        first sentence end inside the window, the last whitespace before
        chunk_size, a hard cut at chunk_size.
        """
        size = self._chunk_size
        window = text[: size + BOUNDARY_WINDOW]

        last_within: int | None = None
        first_beyond: int | None = None
        for match in _SENTENCE_END.finditer(window):
            end = match.end()
            if end <= size:
                last_within = end
            elif first_beyond is None:
                first_beyond = end
                break

        if last_within is not None and last_within > 0:
            return last_within
        if first_beyond is not None:
            return first_beyond

        space = max(text.rfind(" ", 0, size), text.rfind("\n", 0, size))
        if space > 0:
            return space
        return size

    # ------------------------------------------------------------------
    # Fragments and metrics
    # ------------------------------------------------------------------

    def _stitch(self, bodies: list[str], source_metadata: dict[str, object]) -> list[Fragment]:
        overlap = self._overlap
        fragments: list[Fragment] = []
        for order, body in enumerate(bodies):
            # A zero overlap must not slice with [-0:], which is the whole body.
            pre = bodies[order - 1][-overlap:] if order > 0 and overlap else ""
            post = bodies[order + 1][:overlap] if order + 1 < len(bodies) and overlap else ""
            fragments.append(
                Fragment(
                    text=body,
                    pre_context=pre,
                    post_context=post,
                    order=order,
                    document_id=str(source_metadata.get("document_id", "")),
                    owner_id=str(source_metadata.get("owner_id", "")),
                    title=str(source_metadata.get("title", "")),
                )
            )
        return fragments

    @staticmethod
    def _compute_metrics(normalized: str, bodies: list[str]) -> ChunkMetrics:
        sizes = [len(b) for b in bodies]
        total_input = len(normalized)
        total_output = sum(sizes)
        return ChunkMetrics(
            total_input_chars=total_input,
            total_output_chars=total_output,
            coverage=round(total_output / total_input * 100, 2) if total_input else 0.0,
            chunk_count=len(bodies),
            avg_chunk_size=total_output // len(bodies) if bodies else 0,
            largest_chunk=max(sizes) if sizes else 0,
            smallest_chunk=min(sizes) if sizes else 0,
        )
