"""
Wiring of the concrete backends into the pipeline.

Builders are cached so every request and worker in a process shares one set
of clients. The API resolves them through FastAPI ``Depends``; tests swap them
with ``app.dependency_overrides``.
"""

from functools import lru_cache

from docpipe.clients.blob_store import HttpBlobStore
from docpipe.clients.embedder import SentenceTransformerEmbedder
from docpipe.clients.extractor import PyMuPDFExtractor
from docpipe.clients.index_client import PineconeAssistantIndex
from docpipe.clients.metadata_llm import DspyMetadataExtractor
from docpipe.core.config import Settings
from docpipe.core.queue import get_work_queue
from docpipe.pipeline.orchestrator import PipelineOrchestrator
from docpipe.pipeline.reconciler import IndexReconciler
from docpipe.services.document_service import DocumentService
from docpipe.services.ingestion_service import IngestionService
from docpipe.services.reprocessing_service import ReprocessingService


@lru_cache
def get_settings() -> Settings:
    return Settings()


@lru_cache
def get_blob_store() -> HttpBlobStore:
    return HttpBlobStore()


@lru_cache
def get_index_client() -> PineconeAssistantIndex:
    return PineconeAssistantIndex()


@lru_cache
def build_orchestrator() -> PipelineOrchestrator:
    settings = get_settings()
    return PipelineOrchestrator.from_clients(
        blob_store=get_blob_store(),
        extraction_client=PyMuPDFExtractor(),
        metadata_client=DspyMetadataExtractor(
            model=settings.METADATA_LLM_MODEL, max_chars=settings.METADATA_MAX_INPUT_CHARS
        ),
        embedding_client=SentenceTransformerEmbedder(batch_size=settings.EMBEDDING_BATCH_SIZE),
        index_client=get_index_client(),
        settings=settings,
    )


def get_document_service() -> DocumentService:
    return build_orchestrator().documents


def get_ingestion_service() -> IngestionService:
    return IngestionService(
        build_orchestrator(),
        get_work_queue(),
        blob_store=get_blob_store(),
        task_backend=get_settings().TASK_BACKEND,
    )


def get_reprocessing_service() -> ReprocessingService:
    return _reprocessing_service()


@lru_cache
def _reprocessing_service() -> ReprocessingService:
    return ReprocessingService(build_orchestrator(), get_work_queue(), task_backend=get_settings().TASK_BACKEND)


def build_reconciler() -> IndexReconciler:
    return IndexReconciler(
        get_index_client(),
        build_orchestrator().documents,
        stale_after=get_settings().INDEX_STALE_AFTER_SECONDS,
    )
