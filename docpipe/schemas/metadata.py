import ast

from pydantic import BaseModel, Field, field_validator

from docpipe.core.text import normalize_year

DOCUMENT_TYPES = (
    "pitch_deck",
    "market_research",
    "financial_report",
    "white_paper",
    "case_study",
    "annual_report",
    "investor_update",
    "other",
)


def _coerce_list(value) -> list[str] | None:
    """Accept a list, a repr of a list, or a comma-separated string."""
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            parsed = ast.literal_eval(value)
        except (ValueError, SyntaxError):
            parsed = value.split(",")
        value = parsed if isinstance(parsed, (list, tuple)) else [str(parsed)]
    items = [str(v).strip() for v in value if str(v).strip()]
    return items or None


class ExtractedMetadata(BaseModel):
    """Structured fields returned by the metadata LLM. Every field is optional."""

    title: str | None = None
    author: str | None = None
    company: str | None = None
    year: int | None = None
    topic: str | None = None
    summary: str | None = None
    document_type: str | None = None
    authors: list[str] | None = None
    key_findings: list[str] | None = None
    keywords: list[str] | None = None
    technology_areas: list[str] | None = None

    @field_validator("year", mode="before")
    @classmethod
    def _normalize_year(cls, value):
        return normalize_year(value)

    @field_validator("document_type", mode="before")
    @classmethod
    def _known_document_type(cls, value):
        if not value:
            return None
        value = str(value).strip().lower().replace(" ", "_").replace("-", "_")
        return value if value in DOCUMENT_TYPES else "other"

    @field_validator("authors", "key_findings", "keywords", "technology_areas", mode="before")
    @classmethod
    def _listify(cls, value):
        return _coerce_list(value)

    @field_validator("title", "author", "company", "topic", "summary", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None


class MetadataHints(BaseModel):
    """Vocabulary already in use, passed to the LLM to keep tags consistent."""

    filename: str | None = None
    existing_keywords: list[str] = Field(default_factory=list)
    existing_technology_areas: list[str] = Field(default_factory=list)
