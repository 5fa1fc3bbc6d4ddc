"""Local text extraction backed by PyMuPDF."""

import asyncio
import logging

import fitz  # PyMuPDF

from .base import ExtractedText

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    pass


class PyMuPDFExtractor:
    """Extracts plain text page by page; pages are separated by form feeds."""

    async def extract_text(self, data: bytes) -> ExtractedText:
        return await asyncio.to_thread(self._extract, data)

    def _extract(self, data: bytes) -> ExtractedText:
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as e:
            raise ExtractionError(f"Could not open document: {e}") from e

        try:
            pages = [page.get_text("text").strip() for page in doc]
            page_count = doc.page_count
        finally:
            doc.close()

        text = "\f".join(pages)
        logger.info(f"Extracted {len(text)} chars from {page_count} pages")
        return ExtractedText(text=text, page_count=page_count)
