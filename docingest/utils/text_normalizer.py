"""Text normalization for extracted document text.

This module handles two distinct normalization concerns:

1. **Sanitization** -- Strips code points that break downstream consumers:
   lone UTF-16 surrogates left by broken PDF text layers, C0 control
   characters other than tab/newline, and the replacement/non-character
   code points ``U+FFFD``, ``U+FFFE``, ``U+FFFF``.  The result is NFKC
   normalized so ligatures ("ﬁ") and full-width forms embed like their
   plain equivalents.

2. **Whitespace normalization** -- Collapses horizontal whitespace while
   *preserving* paragraph breaks, because the chunker packs text on
   blank-line boundaries.  Collapsing every ``\\s+`` run to a single space
   would leave the chunker with one giant paragraph.
"""

import re
import unicodedata

# Lone surrogates and control characters except \t (0x09) and \n (0x0A).
# \r is removed here too; CRLF is folded to LF before this runs.
_INVALID_CHARS = re.compile(
    "[\ud800-\udfff\x00-\x08\x0b-\x1f\x7f\ufffd\ufffe\uffff]"
)
_HORIZONTAL_WS = re.compile("[ \t\f\v\u00a0]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def sanitize_text(text: str) -> str:
    """Remove invalid code points and apply NFKC normalization.

    Args:
        text: Raw extracted text.

    Returns:
        Sanitized text with line structure intact.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _INVALID_CHARS.sub("", text)
    return unicodedata.normalize("NFKC", text)


def normalize_whitespace(text: str) -> str:
    """Collapse horizontal whitespace and excess blank lines.

    Paragraph boundaries (a blank line) survive; three or more newlines
    collapse to exactly one blank line.

    Args:
        text: Sanitized text.

    Returns:
        Whitespace-normalized, trimmed text.
    """
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def clean_extracted_text(text: str) -> str:
    """Full cleanup applied to every extractor's output before chunking."""
    return normalize_whitespace(sanitize_text(text))
