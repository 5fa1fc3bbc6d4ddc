import logging
from dataclasses import dataclass
from uuid import UUID

from docpipe.clients.base import BlobStore
from docpipe.core import hashing
from docpipe.core.config import TaskBackend
from docpipe.core.errors import DuplicateContentError
from docpipe.core.text import title_from_filename
from docpipe.core.work_queue import WorkQueue
from docpipe.models import Document
from docpipe.models.document import DocumentSource
from docpipe.pipeline.orchestrator import PipelineOrchestrator
from docpipe.schemas.documents import DocumentCreate
from docpipe.services.fingerprint_service import FingerprintService

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Result of registering a document for processing."""

    document_id: UUID
    handle: str  # Work queue handle of the first pipeline run


class IngestionService:
    """
    Entry point for new documents.

    Rejects duplicate content, creates the pending Document record and hands
    it to the work queue for the pipeline to pick up.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        work_queue: WorkQueue,
        blob_store: BlobStore | None = None,
        fingerprints: FingerprintService | None = None,
        task_backend: str = TaskBackend.LOCAL,
    ):
        self.orchestrator = orchestrator
        self.work_queue = work_queue
        self.blob_store = blob_store
        self.fingerprints = fingerprints or FingerprintService()
        self.task_backend = task_backend

    async def register(self, payload: DocumentCreate) -> IngestResult:
        """
        Create a Document for an already stored file and enqueue it.

        Args:
            payload: Document fields; ``content_hash`` is checked for duplicates

        Returns:
            IngestResult with the new document id and its work handle (the
            Dramatiq message id when runs execute on workers)

        Raises:
            DuplicateContentError: If the content hash is already registered
            QueueSaturated: If the work queue cannot admit the run
        """
        if not payload.storage_id and not payload.source_url:
            raise ValueError("Either storage_id or source_url is required.")

        fields = payload.model_dump(exclude={"content_hash"})
        fields["title"] = (payload.title or "").strip() or title_from_filename(payload.filename)
        document = await self.fingerprints.create(fields, payload.content_hash)

        try:
            handle = self._dispatch(document.id)
        except Exception:
            # Drop the record so the same file can be uploaded again
            await Document.filter(id=document.id).delete()
            raise

        logger.info(f"Enqueued processing run {handle} for document {document.id}")
        return IngestResult(document_id=document.id, handle=handle)

    def _dispatch(self, document_id: UUID) -> str:
        if self.task_backend == TaskBackend.DRAMATIQ:
            # Import here to avoid circular dependency
            from docpipe.jobs.pipeline_job import process_document

            message = process_document.send(str(document_id))
            return message.message_id

        return self.work_queue.enqueue(self.orchestrator.run, document_id)

    async def ingest_bytes(
        self,
        data: bytes,
        filename: str,
        title: str | None = None,
        source: str = DocumentSource.UPLOAD,
        content_type: str = "application/pdf",
    ) -> IngestResult:
        """
        Store raw file bytes in the blob store and register them.

        The duplicate check runs before the upload so a duplicate never
        costs a blob. If registration still fails after the upload, for
        example because a concurrent upload of the same bytes won the race,
        the blob is deleted again.

        Raises:
            DuplicateContentError: If identical bytes were ingested before
        """
        if self.blob_store is None:
            raise RuntimeError("A blob store is required to ingest raw bytes.")
        if not data:
            raise ValueError("File is empty.")

        content_hash = hashing.fingerprint(data)
        check = await self.fingerprints.check_duplicate(content_hash)
        if check.is_duplicate:
            raise DuplicateContentError(check.existing.id, check.existing.title)

        upload_url = await self.blob_store.generate_upload_url()
        storage_id = await self.blob_store.upload(upload_url, data, content_type)

        payload = DocumentCreate(
            title=title,
            filename=filename,
            content_hash=content_hash,
            storage_id=storage_id,
            source=source,
        )
        try:
            return await self.register(payload)
        except Exception:
            await self._discard_blob(storage_id)
            raise

    async def _discard_blob(self, storage_id: str) -> None:
        try:
            await self.blob_store.delete(storage_id)
        except Exception as e:
            logger.warning(f"Failed to delete orphaned blob {storage_id}: {e}")
