from tortoise import fields

from .base import TimestampedModel


class DocumentStatus:
    """Document processing status constants."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    ALL = (PENDING, PROCESSING, COMPLETED, FAILED)


class DocumentSource:
    """Where a document came from."""

    UPLOAD = "upload"
    EXTERNAL_LINK = "external-link"
    IMPORTED = "imported"

    ALL = (UPLOAD, EXTERNAL_LINK, IMPORTED)


class IndexStatus:
    """Availability of a document's file in the search index."""

    PROCESSING = "Processing"
    AVAILABLE = "Available"
    FAILED = "Failed"


class Document(TimestampedModel):
    title = fields.CharField(max_length=512)
    filename = fields.CharField(max_length=512)
    content_hash = fields.CharField(
        max_length=64, unique=True, null=True, description="SHA-256 of the uploaded bytes"
    )
    storage_id = fields.CharField(max_length=255, null=True, description="Blob store id of the raw file")
    source_url = fields.TextField(null=True)
    source = fields.CharField(max_length=20, default=DocumentSource.UPLOAD)

    # Processing
    status = fields.CharField(
        max_length=20,
        default=DocumentStatus.PENDING,
        description="Processing status: pending, processing, completed, or failed",
    )
    processing_error = fields.TextField(null=True, description="Error message from the last failed run")
    extracted_text = fields.TextField(null=True, description="Cached extraction output")
    page_count = fields.IntField(null=True)

    # Extracted metadata
    author = fields.CharField(max_length=512, null=True)
    description = fields.TextField(null=True)
    company = fields.CharField(max_length=255, null=True)
    year = fields.IntField(null=True)
    topic = fields.CharField(max_length=255, null=True)
    summary = fields.TextField(null=True)
    document_type = fields.CharField(max_length=50, null=True)
    authors = fields.JSONField(null=True)
    key_findings = fields.JSONField(null=True)
    keywords = fields.JSONField(null=True)
    technology_areas = fields.JSONField(null=True)
    extracted_at = fields.DatetimeField(null=True)
    extraction_version = fields.CharField(max_length=20, null=True)

    # Search index
    index_file_id = fields.CharField(max_length=255, null=True)
    index_status = fields.CharField(max_length=20, null=True)

    # Admin workflow
    approved = fields.BooleanField(default=False)
    approved_by = fields.CharField(max_length=255, null=True)
    approved_at = fields.DatetimeField(null=True)

    class Meta:
        table = "documents"
        table_description = "Documents Table"
        indexes = (("status",), ("approved", "status"), ("index_status",))
