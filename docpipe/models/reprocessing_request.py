from tortoise import fields

from .base import UUIDModel


class RequestStatus:
    """ReprocessingRequest status constants."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    ACTIVE = (PENDING, RUNNING)


class RequestKind:
    FULL = "full"
    METADATA = "metadata"


class ReprocessingRequest(UUIDModel):
    document = fields.ForeignKeyField(
        "models.Document", related_name="reprocessing_requests", on_delete=fields.CASCADE
    )
    document_title = fields.CharField(max_length=512)
    handle = fields.CharField(max_length=64, unique=True, description="Work queue handle")
    kind = fields.CharField(max_length=20, default=RequestKind.FULL)
    force = fields.BooleanField(default=False)
    status = fields.CharField(max_length=20, default=RequestStatus.PENDING)
    enqueued_at = fields.DatetimeField(auto_now_add=True)
    completed_at = fields.DatetimeField(null=True)
    error = fields.TextField(null=True)

    class Meta:
        table = "reprocessing_requests"
        indexes = (("status",),)
