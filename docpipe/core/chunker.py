"""
Splits extracted document text into embedding-sized passages.

Paragraphs (blank-line separated) are windowed by sentence with a small
overlap so that no passage exceeds ``max_sentences`` sentences. Page breaks
emitted by the extractor (form feeds) are treated as paragraph breaks.
"""

import re

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n|\f")


def split_paragraphs(text: str) -> list[str]:
    if not text or not isinstance(text, str):
        return []

    return [p.strip() for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def window_sentences(paragraph: str, max_sentences: int = 6, overlap: int = 1) -> list[str]:
    """
    Split a paragraph into overlapping sentence windows.

    A paragraph with ``max_sentences`` sentences or fewer is returned whole.
    For longer paragraphs consecutive windows share ``overlap`` sentences.
    """
    if not paragraph or max_sentences <= 0:
        return []

    sentences = [s.strip() for s in _SENTENCE_END.split(paragraph) if s.strip()]
    if not sentences:
        return []
    if len(sentences) <= max_sentences:
        return [" ".join(paragraph.split())]

    overlap = max(0, min(overlap, max_sentences - 1))
    step = max_sentences - overlap

    windows = []
    for start in range(0, len(sentences), step):
        windows.append(" ".join(sentences[start : start + max_sentences]))
        if start + max_sentences >= len(sentences):
            break
    return windows


def make_chunks(text: str, max_sent: int = 6, overlap: int = 1) -> list[str]:
    """
    Chunk a whole document.

    Args:
        text: Extracted document text
        max_sent: Maximum number of sentences per chunk
        overlap: Sentences shared between neighbouring chunks of one paragraph

    Returns:
        Chunks in document order
    """
    chunks: list[str] = []
    for paragraph in split_paragraphs(text):
        chunks.extend(window_sentences(paragraph, max_sent, overlap))
    return chunks
