"""Metadata extraction through a DSPy program."""

import asyncio
import logging

import dspy

from docpipe.core.config import Settings
from docpipe.core.text import normalize
from docpipe.schemas.metadata import DOCUMENT_TYPES, ExtractedMetadata, MetadataHints

logger = logging.getLogger(__name__)


class MetadataSignature(dspy.Signature):
    """Extract bibliographic metadata from a document."""

    document_text = dspy.InputField(desc="beginning of the document text")
    filename = dspy.InputField(desc="original filename")
    existing_keywords = dspy.InputField(desc="keywords already in use; reuse them where they fit")
    existing_technology_areas = dspy.InputField(desc="technology areas already in use; reuse them where they fit")

    title = dspy.OutputField()
    author = dspy.OutputField(desc="primary author or organisation, empty if unknown")
    company = dspy.OutputField(desc="company the document is about, empty if none")
    year = dspy.OutputField(desc="four digit publication year, empty if unknown")
    topic = dspy.OutputField()
    summary = dspy.OutputField(desc="two to four sentences")
    document_type = dspy.OutputField(desc="one of: " + ", ".join(DOCUMENT_TYPES))
    authors = dspy.OutputField(desc="list of author names")
    key_findings = dspy.OutputField(desc="list of up to five findings")
    keywords = dspy.OutputField(desc="list of up to ten keywords")
    technology_areas = dspy.OutputField(desc="list of technology areas")


MetadataExtractor = dspy.Predict(MetadataSignature)

_configured = False


def configure_lm(model: str | None = None) -> None:
    """Configure the DSPy language model once per process."""
    global _configured

    if not _configured:
        dspy.configure(lm=dspy.LM(model or Settings().METADATA_LLM_MODEL))
        _configured = True


def run_extractor(text: str, hints: MetadataHints, max_chars: int) -> ExtractedMetadata:
    """
    Call the DSPy program and validate its output into ExtractedMetadata.

    Output fields the model leaves out or garbles are dropped rather than
    failing the whole extraction.
    """
    out = MetadataExtractor(
        document_text=normalize(text)[:max_chars],
        filename=hints.filename or "",
        existing_keywords=", ".join(hints.existing_keywords),
        existing_technology_areas=", ".join(hints.existing_technology_areas),
    )

    fields = {name: getattr(out, name, None) for name in ExtractedMetadata.model_fields}
    return ExtractedMetadata.model_validate(fields)


class DspyMetadataExtractor:
    def __init__(self, model: str | None = None, max_chars: int | None = None):
        settings = Settings()
        self.model = model or settings.METADATA_LLM_MODEL
        self.max_chars = max_chars or settings.METADATA_MAX_INPUT_CHARS

    async def extract_metadata(self, text: str, hints: MetadataHints) -> ExtractedMetadata:
        configure_lm(self.model)
        metadata = await asyncio.to_thread(run_extractor, text, hints, self.max_chars)
        logger.info(f"Extracted metadata for {hints.filename or 'document'}: title={metadata.title!r}")
        return metadata
