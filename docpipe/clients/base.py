"""
Contracts of the external services the pipeline depends on.

The core only speaks these protocols; concrete backends live next to this
module and are swappable without touching the orchestrator.
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from docpipe.schemas.metadata import ExtractedMetadata, MetadataHints


@dataclass(frozen=True)
class ExtractedText:
    text: str
    page_count: int | None = None


@dataclass(frozen=True)
class IndexFile:
    """Handle of a file accepted by the index backend."""

    id: str
    status: str


@dataclass(frozen=True)
class IndexFileInfo:
    status: str
    error_message: str | None = None


@runtime_checkable
class BlobStore(Protocol):
    async def get_url(self, storage_id: str) -> str | None: ...

    async def generate_upload_url(self) -> str: ...

    async def download(self, url: str) -> bytes: ...

    async def upload(self, upload_url: str, data: bytes, content_type: str) -> str: ...

    async def delete(self, storage_id: str) -> None: ...


@runtime_checkable
class ExtractionClient(Protocol):
    async def extract_text(self, data: bytes) -> ExtractedText: ...


@runtime_checkable
class MetadataClient(Protocol):
    async def extract_metadata(self, text: str, hints: MetadataHints) -> ExtractedMetadata: ...


@runtime_checkable
class EmbeddingClient(Protocol):
    async def embed(self, texts: list[str]) -> list[list[float]]: ...


@runtime_checkable
class IndexClient(Protocol):
    async def upload(self, content: str, metadata: dict) -> IndexFile: ...

    async def describe(self, file_id: str) -> IndexFileInfo: ...

    async def delete(self, file_id: str) -> None: ...
