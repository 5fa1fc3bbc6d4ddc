"""
Stage executors.

Each stage performs one step of the pipeline against one external service and
signals failure by raising ``StageFailure`` carrying the service's message
verbatim. Stages read and update the shared ``RunContext``; whether a failure
is fatal is decided by the orchestrator, not here.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from tortoise.transactions import in_transaction

from docpipe.clients.base import BlobStore, EmbeddingClient, ExtractionClient, IndexClient, MetadataClient
from docpipe.core import chunker, hashing
from docpipe.core.errors import StageFailure
from docpipe.core.text import title_from_filename
from docpipe.models import Chunk, Document
from docpipe.models.document import IndexStatus
from docpipe.schemas.jobs import JobMetadata
from docpipe.schemas.metadata import MetadataHints
from docpipe.services.document_service import DocumentService
from docpipe.services.settings_service import PipelineConfig

from .index_poller import IndexStatusPoller

logger = logging.getLogger(__name__)


class Stage:
    EXTRACTION = "extraction"
    METADATA = "metadata"
    EMBEDDING = "embedding"
    INDEXING = "indexing"


@dataclass
class RunContext:
    """State carried through one pipeline run."""

    document: Document
    config: PipelineConfig
    job_id: UUID
    force_extraction: bool = False
    force_metadata: bool = False
    force_embedding: bool = False
    text: str | None = None
    job_metadata: JobMetadata = field(default_factory=JobMetadata)

    @property
    def document_id(self) -> UUID:
        return self.document.id

    def note(self, **updates) -> None:
        self.job_metadata = self.job_metadata.merge(**updates)


def _failure(stage: str, exc: Exception) -> StageFailure:
    return StageFailure(stage, str(exc) or type(exc).__name__)


class ExtractionStage:
    """Fetch the raw file and extract its text, reusing cached text when allowed."""

    def __init__(
        self,
        blob_store: BlobStore,
        client: ExtractionClient,
        documents: DocumentService,
        min_chars: int = 1,
    ):
        self.blob_store = blob_store
        self.client = client
        self.documents = documents
        self.min_chars = min_chars

    async def execute(self, ctx: RunContext) -> None:
        document = ctx.document
        cached = document.extracted_text
        if cached and cached.strip() and not ctx.force_extraction:
            logger.info(f"Reusing cached text for document {document.id} ({len(cached)} chars)")
            ctx.text = cached
            ctx.note(text_cached=True, page_count=document.page_count)
            return

        try:
            url = await self._resolve_url(document)
            data = await self.blob_store.download(url)
            result = await self.client.extract_text(data)
        except StageFailure:
            raise
        except Exception as e:
            raise _failure(Stage.EXTRACTION, e) from e

        if not result.text or len(result.text.strip()) < self.min_chars:
            raise StageFailure(Stage.EXTRACTION, "No text content extracted from document")

        await self.documents.patch(document.id, extracted_text=result.text, page_count=result.page_count)
        document.extracted_text = result.text
        document.page_count = result.page_count
        ctx.text = result.text
        ctx.note(text_cached=False, page_count=result.page_count)
        logger.info(f"Extracted {len(result.text)} chars for document {document.id}")

    async def _resolve_url(self, document: Document) -> str:
        if document.storage_id:
            url = await self.blob_store.get_url(document.storage_id)
            if url:
                return url
        if document.source_url:
            return document.source_url
        raise StageFailure(Stage.EXTRACTION, "Could not resolve file URL")


class MetadataStage:
    """Ask the metadata LLM for structured fields and patch them onto the document."""

    def __init__(self, client: MetadataClient, documents: DocumentService, extraction_version: str):
        self.client = client
        self.documents = documents
        self.extraction_version = extraction_version

    async def execute(self, ctx: RunContext) -> None:
        document = ctx.document
        if document.summary and not ctx.force_metadata:
            logger.info(f"Document {document.id} already has metadata, skipping extraction")
            ctx.note(metadata_skipped=True)
            return

        try:
            keywords, areas = await self.documents.get_extraction_context()
            hints = MetadataHints(
                filename=document.filename,
                existing_keywords=keywords,
                existing_technology_areas=areas,
            )
            metadata = await self.client.extract_metadata(ctx.text or "", hints)
        except Exception as e:
            raise _failure(Stage.METADATA, e) from e

        updates = metadata.model_dump(exclude={"title"}, exclude_none=True)
        updates["title"] = metadata.title or document.title or title_from_filename(document.filename)
        updates["extracted_at"] = datetime.now(timezone.utc)
        updates["extraction_version"] = self.extraction_version
        await self.documents.patch(document.id, **updates)
        for name, value in updates.items():
            setattr(document, name, value)
        ctx.note(metadata_skipped=False)


class EmbeddingStage:
    """Chunk the text and embed each chunk; unchanged, fully embedded chunks are reused."""

    def __init__(self, client: EmbeddingClient, max_sentences: int = 6, overlap: int = 1):
        self.client = client
        self.max_sentences = max_sentences
        self.overlap = overlap

    async def execute(self, ctx: RunContext) -> None:
        document_id = ctx.document_id
        texts = chunker.make_chunks(ctx.text or "", max_sent=self.max_sentences, overlap=self.overlap)
        if not texts:
            raise StageFailure(Stage.EMBEDDING, "No chunks were generated from the document text.")
        hashes = [hashing.sha256(t) for t in texts]

        if not ctx.force_embedding:
            existing = await Chunk.filter(document_id=document_id).order_by("position")
            if [c.chunk_sha256 for c in existing] == hashes and all(c.embedding for c in existing):
                logger.info(f"Reusing {len(existing)} embedded chunks for document {document_id}")
                ctx.note(chunk_count=len(existing), embeddings_cached=True)
                return

        try:
            vectors = await self.client.embed(texts)
        except Exception as e:
            raise _failure(Stage.EMBEDDING, e) from e
        if len(vectors) != len(texts):
            raise StageFailure(Stage.EMBEDDING, "Mismatch between number of chunks and generated embeddings.")

        chunks = [
            Chunk(document_id=document_id, position=i, text=text, chunk_sha256=chunk_hash, embedding=list(vector))
            for i, (text, chunk_hash, vector) in enumerate(zip(texts, hashes, vectors))
        ]
        async with in_transaction() as connection:
            await Chunk.filter(document_id=document_id).using_db(connection).delete()
            await Chunk.bulk_create(chunks, using_db=connection)

        logger.info(f"Persisted {len(chunks)} embedded chunks for document {document_id}")
        ctx.note(chunk_count=len(chunks), embeddings_cached=False)


def build_index_metadata(document: Document) -> dict:
    """Filterable metadata stored alongside the file in the index."""
    metadata: dict = {
        "document_id": str(document.id),
        "title": document.title or "",
        "filename": document.filename or "",
    }
    optional = {
        "company": document.company,
        "year": str(document.year) if document.year else None,
        "document_type": document.document_type,
        "source": document.source,
        "author": document.author,
        "keywords": document.keywords or None,
        "technology_areas": document.technology_areas or None,
    }
    metadata.update({k: v for k, v in optional.items() if v})
    return metadata


def build_index_content(document: Document, text: str) -> str:
    """Document text prefixed with its summary and key findings."""
    parts = []
    if document.summary:
        parts.append(f"SUMMARY:\n{document.summary}\n\n")
    if document.key_findings:
        findings = "\n".join(f"{i}. {finding}" for i, finding in enumerate(document.key_findings, start=1))
        parts.append(f"KEY FINDINGS:\n{findings}\n\n")
    parts.append("DOCUMENT CONTENT:\n" + text)
    return "".join(parts)


class IndexingStage:
    """
    Upload the enriched text to the index and wait for it to become available.

    Any previous index file of the document is deleted first so re-runs
    replace rather than duplicate it.
    """

    def __init__(self, client: IndexClient, poller: IndexStatusPoller, documents: DocumentService):
        self.client = client
        self.poller = poller
        self.documents = documents

    async def execute(self, ctx: RunContext) -> None:
        document = await self.documents.get(ctx.document_id)
        ctx.document = document

        if document.index_file_id:
            try:
                await self.client.delete(document.index_file_id)
            except Exception as e:
                logger.warning(f"Failed to delete existing index file {document.index_file_id}: {e}")
            await self.documents.patch(document.id, index_file_id=None, index_status=None)

        await self.documents.patch(document.id, index_status=IndexStatus.PROCESSING)
        try:
            uploaded = await self.client.upload(
                build_index_content(document, ctx.text or ""), build_index_metadata(document)
            )
        except Exception as e:
            await self.documents.patch(document.id, index_status=IndexStatus.FAILED)
            raise _failure(Stage.INDEXING, e) from e

        await self.documents.patch(document.id, index_file_id=uploaded.id, index_status=IndexStatus.PROCESSING)
        ctx.note(index_file_id=uploaded.id, index_status=IndexStatus.PROCESSING)

        if uploaded.status == IndexStatus.AVAILABLE:
            outcome_status, outcome_error = IndexStatus.AVAILABLE, None
        else:
            outcome = await self.poller.wait_until_settled(uploaded.id)
            outcome_status, outcome_error = outcome.status, outcome.error_message

        await self.documents.patch(document.id, index_status=outcome_status)
        document.index_file_id = uploaded.id
        document.index_status = outcome_status
        ctx.note(index_status=outcome_status)

        if outcome_status == IndexStatus.FAILED:
            raise StageFailure(Stage.INDEXING, outcome_error or "Index backend reported failure")
