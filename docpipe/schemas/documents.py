from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from docpipe.models.document import DocumentSource


class DocumentCreate(BaseModel):
    title: str | None = Field(None, description="Display title; derived from the filename when omitted.")
    filename: str = Field(..., min_length=1)
    content_hash: str | None = Field(
        None, pattern="^[0-9a-f]{64}$", description="SHA-256 of the file bytes; omit for external links."
    )
    storage_id: str | None = Field(None, description="Blob store id of the uploaded file.")
    source_url: str | None = None
    source: str = Field(DocumentSource.UPLOAD, pattern="^(upload|external-link|imported)$")
    author: str | None = None
    description: str | None = None


class DuplicateCheckRequest(BaseModel):
    content_hash: str = Field(..., pattern="^[0-9a-f]{64}$")


class ExistingDocument(BaseModel):
    id: UUID
    title: str
    filename: str
    created_at: datetime


class DuplicateCheckResponse(BaseModel):
    is_duplicate: bool
    existing: ExistingDocument | None = None


class IngestResponse(BaseModel):
    document_id: UUID = Field(..., description="The ID of the registered document.")
    handle: str = Field(..., description="Work queue handle of the processing run.")
    message: str


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    filename: str
    content_hash: str | None = None
    source: str
    status: str
    processing_error: str | None = None
    page_count: int | None = None
    company: str | None = None
    year: int | None = None
    summary: str | None = None
    document_type: str | None = None
    keywords: list[str] | None = None
    index_file_id: str | None = None
    index_status: str | None = None
    approved: bool
    created_at: datetime


class ApproveRequest(BaseModel):
    approved_by: str = Field(..., min_length=1)


class UploadUrlResponse(BaseModel):
    url: str
