from tortoise import fields

from .base import UUIDModel


class JobStage:
    """ProcessingJob stage constants."""

    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    STORING = "storing"
    COMPLETED = "completed"
    FAILED = "failed"

    ORDER = (EXTRACTING, EMBEDDING, STORING, COMPLETED)
    TERMINAL = (COMPLETED, FAILED)


class ProcessingJob(UUIDModel):
    document = fields.ForeignKeyField("models.Document", related_name="jobs", on_delete=fields.CASCADE)
    stage = fields.CharField(max_length=20, default=JobStage.EXTRACTING)
    started_at = fields.DatetimeField(auto_now_add=True)
    completed_at = fields.DatetimeField(null=True)
    error = fields.TextField(null=True)
    metadata = fields.JSONField(null=True, description="Stage diagnostics, see schemas.jobs.JobMetadata")

    @property
    def is_terminal(self) -> bool:
        return self.stage in JobStage.TERMINAL

    class Meta:
        table = "processing_jobs"
        indexes = (("stage",),)
