"""Text utilities for normalization and structural metadata defaults."""

import os
import re
import unicodedata

_YEAR_RE = re.compile(r"\b(19|20)\d{2}\b")
MIN_YEAR = 1900
MAX_YEAR = 2100


def normalize(text: str) -> str:
    """
    Normalize text by collapsing whitespace and normalizing unicode quotes.

    Args:
        text: Raw text to normalize

    Returns:
        Normalized text string
    """
    if not text:
        return ""

    text = unicodedata.normalize("NFKC", text)

    # Map typographic quotes and dashes to ASCII so prompts and keywords compare equal.
    quote_map = {
        "\u2018": "'",
        "\u2019": "'",
        "\u201c": '"',
        "\u201d": '"',
        "\u2013": "-",
        "\u2014": "-",
    }

    for unicode_char, ascii_char in quote_map.items():
        text = text.replace(unicode_char, ascii_char)

    # Collapse multiple whitespace characters (spaces, tabs, newlines) into single spaces
    text = re.sub(r"\s+", " ", text)

    return text.strip()


def title_from_filename(filename: str | None) -> str:
    """
    Derive a human-readable title from a filename.

    ``"q3_market-report.pdf"`` becomes ``"q3 market report"``. Used as the
    structural default when metadata extraction is unavailable.
    """
    if not filename:
        return "Untitled"

    stem, _ext = os.path.splitext(os.path.basename(filename))
    title = re.sub(r"[_\-]+", " ", stem)
    title = normalize(title)
    return title or "Untitled"


def normalize_year(value: int | str | None) -> int | None:
    """
    Normalize a year given as int or free text to an integer in [1900, 2100].

    Returns None when no plausible year can be found.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value if MIN_YEAR <= value <= MAX_YEAR else None

    if isinstance(value, str):
        match = _YEAR_RE.search(value)
        if match:
            return int(match.group(0))
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if MIN_YEAR <= parsed <= MAX_YEAR else None

    return None


def to_text_filename(filename: str | None) -> str:
    """Swap a document filename's extension for ``.txt``."""
    stem, _ext = os.path.splitext(os.path.basename(filename or "document"))
    return f"{stem or 'document'}.txt"
