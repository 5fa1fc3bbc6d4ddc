"""
Pipeline Orchestrator.

Runs the stages for one document in fixed order
(Extraction -> Metadata -> Embedding -> Indexing) while keeping the Document
record and its ProcessingJob in step:

    document: pending/completed/failed -> processing -> completed | failed
    job:      extracting -> embedding -> storing -> completed | failed

Extraction, embedding and indexing failures are fatal for the run. Metadata
failures are logged and recorded on the job but the run carries on with the
document's structural defaults.

Running the orchestrator again for a document is always allowed; cached
text and embeddings are reused unless ``force`` is set.
Runs of the same document are serialized: a second run waits for the first to
finish, then sees its index file and replaces it.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from uuid import UUID

from docpipe.clients.base import BlobStore, EmbeddingClient, ExtractionClient, IndexClient, MetadataClient
from docpipe.core.config import Settings
from docpipe.core.errors import StageFailure
from docpipe.core.text import title_from_filename
from docpipe.models.document import DocumentStatus
from docpipe.models.processing_job import JobStage
from docpipe.schemas.jobs import JobMetadata
from docpipe.services.document_service import DocumentService
from docpipe.services.job_tracker import JobTracker
from docpipe.services.settings_service import PipelineConfig, load_pipeline_config

from .index_poller import IndexStatusPoller
from .stages import EmbeddingStage, ExtractionStage, IndexingStage, MetadataStage, RunContext

logger = logging.getLogger(__name__)

SKIPPED_PROCESSING_DISABLED = "processing_disabled"


@dataclass
class PipelineResult:
    """Outcome of one orchestrator run."""

    document_id: UUID
    job_id: UUID
    status: str
    error: str | None = None
    failed_stage: str | None = None
    index_status: str | None = None
    skipped_reason: str | None = None
    metadata_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class PipelineOrchestrator:
    def __init__(
        self,
        extraction: ExtractionStage,
        metadata: MetadataStage,
        embedding: EmbeddingStage,
        indexing: IndexingStage,
        documents: DocumentService,
        jobs: JobTracker,
        config_loader: Callable[[], Awaitable[PipelineConfig]] = load_pipeline_config,
    ):
        self.extraction = extraction
        self.metadata = metadata
        self.embedding = embedding
        self.indexing = indexing
        self.documents = documents
        self.jobs = jobs
        self.config_loader = config_loader
        self._locks: dict[UUID, asyncio.Lock] = {}
        self._lock_holders: dict[UUID, int] = {}

    @classmethod
    def from_clients(
        cls,
        blob_store: BlobStore,
        extraction_client: ExtractionClient,
        metadata_client: MetadataClient,
        embedding_client: EmbeddingClient,
        index_client: IndexClient,
        settings: Settings | None = None,
        poller: IndexStatusPoller | None = None,
        config_loader: Callable[[], Awaitable[PipelineConfig]] = load_pipeline_config,
    ) -> "PipelineOrchestrator":
        """Wire the stages from their external clients and settings."""
        settings = settings or Settings()
        documents = DocumentService(index_client=index_client, extraction_version=settings.EXTRACTION_VERSION)
        poller = poller or IndexStatusPoller(
            index_client,
            interval=settings.INDEX_POLL_INTERVAL_SECONDS,
            max_wait=settings.INDEX_POLL_MAX_WAIT_SECONDS,
        )
        return cls(
            extraction=ExtractionStage(blob_store, extraction_client, documents, settings.MIN_EXTRACTED_CHARS),
            metadata=MetadataStage(metadata_client, documents, settings.EXTRACTION_VERSION),
            embedding=EmbeddingStage(
                embedding_client,
                max_sentences=settings.CHUNK_MAX_SENTENCES,
                overlap=settings.CHUNK_OVERLAP_SENTENCES,
            ),
            indexing=IndexingStage(index_client, poller, documents),
            documents=documents,
            jobs=JobTracker(),
            config_loader=config_loader,
        )

    async def run(self, document_id: UUID, force: bool = False, config: PipelineConfig | None = None) -> PipelineResult:
        """
        Process a document end to end.

        Stage failures are recorded on the Document and the job and returned
        in the result; they are not raised.

        Args:
            document_id: Document to process
            force: Bypass cached text, metadata and embeddings
            config: Toggles for this run; read from the settings table when omitted

        Raises:
            DocumentNotFoundError: If the document does not exist
        """
        async with self._exclusive(document_id):
            return await self._run(document_id, force, config)

    async def _run(self, document_id: UUID, force: bool, config: PipelineConfig | None) -> PipelineResult:
        document = await self.documents.get(document_id)
        config = config or await self.config_loader()

        await self.documents.set_status(document_id, DocumentStatus.PROCESSING)
        document.status = DocumentStatus.PROCESSING
        job_id = await self.jobs.create_job(document_id, JobStage.EXTRACTING)
        ctx = RunContext(
            document=document,
            config=config,
            job_id=job_id,
            force_extraction=force,
            force_metadata=force,
            force_embedding=force,
            job_metadata=JobMetadata(force=force or None),
        )
        logger.info(f"Processing document {document_id} (job {job_id}, force={force})")

        try:
            await self.extraction.execute(ctx)
            await self._run_metadata(ctx)

            if not config.processing_enabled:
                logger.info(f"Processing disabled, completing document {document_id} without indexing")
                ctx.note(skipped_reason=SKIPPED_PROCESSING_DISABLED)
                return await self._complete(ctx)

            await self.jobs.update_job(job_id, JobStage.EMBEDDING, metadata=ctx.job_metadata)
            await self.embedding.execute(ctx)

            await self.jobs.update_job(job_id, JobStage.STORING, metadata=ctx.job_metadata)
            await self.indexing.execute(ctx)
        except StageFailure as failure:
            return await self._fail(ctx, failure)
        except Exception as e:
            await self._abandon(ctx, f"{type(e).__name__}: {e}")
            raise

        return await self._complete(ctx)

    async def reprocess_metadata(self, document_id: UUID, config: PipelineConfig | None = None) -> PipelineResult:
        """
        Re-extract metadata only, reusing cached text when present.

        The document's processing status is left alone; failures are recorded
        on the job and returned in the result.
        """
        async with self._exclusive(document_id):
            return await self._reprocess_metadata(document_id, config)

    async def _reprocess_metadata(self, document_id: UUID, config: PipelineConfig | None) -> PipelineResult:
        document = await self.documents.get(document_id)
        config = config or await self.config_loader()
        job_id = await self.jobs.create_job(document_id, JobStage.EXTRACTING)
        ctx = RunContext(document=document, config=config, job_id=job_id, force_metadata=True)

        try:
            await self.extraction.execute(ctx)
            await self.metadata.execute(ctx)
        except StageFailure as failure:
            logger.error(f"Metadata reprocessing failed for document {document_id}: {failure}")
            await self.jobs.update_job(job_id, JobStage.FAILED, error=failure.message, metadata=ctx.job_metadata)
            return PipelineResult(
                document_id=document_id,
                job_id=job_id,
                status=document.status,
                error=failure.message,
                failed_stage=failure.stage,
            )

        await self.jobs.update_job(job_id, JobStage.COMPLETED, metadata=ctx.job_metadata)
        return PipelineResult(document_id=document_id, job_id=job_id, status=document.status)

    @asynccontextmanager
    async def _exclusive(self, document_id: UUID) -> AsyncIterator[None]:
        """Hold the per-document lock; the lock is dropped once nobody waits on it."""
        lock = self._locks.setdefault(document_id, asyncio.Lock())
        self._lock_holders[document_id] = self._lock_holders.get(document_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[document_id] -= 1
            if not self._lock_holders[document_id]:
                del self._lock_holders[document_id]
                del self._locks[document_id]

    async def _run_metadata(self, ctx: RunContext) -> None:
        if not ctx.config.metadata_extraction_enabled:
            ctx.note(metadata_skipped=True)
            return
        try:
            await self.metadata.execute(ctx)
        except StageFailure as failure:
            # Non-fatal: keep going with whatever title the document already has
            logger.warning(f"Metadata extraction failed for document {ctx.document_id}: {failure}")
            ctx.note(metadata_error=failure.message)
            if not ctx.document.title:
                title = title_from_filename(ctx.document.filename)
                await self.documents.patch(ctx.document_id, title=title)
                ctx.document.title = title

    async def _complete(self, ctx: RunContext) -> PipelineResult:
        # Job first, so a completed document always has a completed job
        await self.jobs.update_job(ctx.job_id, JobStage.COMPLETED, metadata=ctx.job_metadata)
        await self.documents.set_status(ctx.document_id, DocumentStatus.COMPLETED)
        logger.info(f"Successfully completed processing document {ctx.document_id}")
        return PipelineResult(
            document_id=ctx.document_id,
            job_id=ctx.job_id,
            status=DocumentStatus.COMPLETED,
            index_status=ctx.job_metadata.index_status,
            skipped_reason=ctx.job_metadata.skipped_reason,
            metadata_error=ctx.job_metadata.metadata_error,
        )

    async def _fail(self, ctx: RunContext, failure: StageFailure) -> PipelineResult:
        logger.error(f"Stage {failure.stage} failed for document {ctx.document_id}: {failure.message}")
        await self.jobs.update_job(ctx.job_id, JobStage.FAILED, error=failure.message, metadata=ctx.job_metadata)
        await self.documents.set_status(ctx.document_id, DocumentStatus.FAILED, error=failure.message)
        return PipelineResult(
            document_id=ctx.document_id,
            job_id=ctx.job_id,
            status=DocumentStatus.FAILED,
            error=failure.message,
            failed_stage=failure.stage,
            index_status=ctx.job_metadata.index_status,
            metadata_error=ctx.job_metadata.metadata_error,
        )

    async def _abandon(self, ctx: RunContext, error: str) -> None:
        """Record an unexpected error before it propagates to the caller."""
        logger.error(f"Error processing document {ctx.document_id}: {error}", exc_info=True)
        try:
            await self.jobs.update_job(ctx.job_id, JobStage.FAILED, error=error, metadata=ctx.job_metadata)
            await self.documents.set_status(ctx.document_id, DocumentStatus.FAILED, error=error)
        except Exception as save_error:
            logger.error(f"Failed to record failure for document {ctx.document_id}: {save_error}")
