from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class JobMetadata(BaseModel):
    """
    Diagnostics bag stored on a ProcessingJob.

    Known keys are typed fields; anything else goes into ``extra`` as strings.
    """

    model_config = ConfigDict(extra="forbid")

    force: bool | None = None
    text_cached: bool | None = None
    page_count: int | None = None
    metadata_skipped: bool | None = None
    metadata_error: str | None = None
    chunk_count: int | None = None
    embeddings_cached: bool | None = None
    index_file_id: str | None = None
    index_status: str | None = None
    skipped_reason: str | None = None
    extra: dict[str, str] = Field(default_factory=dict)

    def merge(self, **updates) -> "JobMetadata":
        return self.model_copy(update=updates)

    def to_db(self) -> dict:
        data = self.model_dump(exclude_none=True)
        if not data.get("extra"):
            data.pop("extra", None)
        return data


class ProcessingJobResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    stage: str
    started_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
    metadata: dict | None = None


class WorkStatusResponse(BaseModel):
    handle: str
    status: str = Field(..., description="pending, running, succeeded, failed, or canceled")
    error: str | None = None


class ReprocessRequest(BaseModel):
    force: bool = Field(False, description="Ignore cached artifacts and call every stage again.")
    kind: str = Field("full", pattern="^(full|metadata)$")


class BatchReprocessRequest(ReprocessRequest):
    document_ids: list[UUID] = Field(..., min_length=1)


class ReprocessResponse(BaseModel):
    document_id: UUID
    handle: str


class BatchReprocessResponse(BaseModel):
    enqueued_count: int
    handles: list[str]


class ReprocessingRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    document_id: UUID
    document_title: str
    handle: str
    kind: str
    status: str
    enqueued_at: datetime
    completed_at: datetime | None = None
    error: str | None = None
