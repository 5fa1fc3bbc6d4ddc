"""
Dramatiq actors for out-of-process pipeline runs.

Used when ``TASK_BACKEND`` is ``dramatiq``: the ingestion and reprocessing
services send messages here instead of using the in-process work queue.

Workers on any number of hosts share one Redis-backed concurrency limiter, so
no more than ``MAX_PARALLELISM`` pipeline runs execute across the whole
deployment at once, and a per-document lock keeps two workers off the same
document. A worker that cannot get a slot raises, and Dramatiq retries the
message with backoff. When the last retry fails the document and its
reprocessing request are marked failed.
"""

import logging
from uuid import UUID

import dramatiq
from dramatiq.middleware import CurrentMessage
from tortoise import Tortoise

from docpipe.core.config import TORTOISE_ORM
from docpipe.core.errors import DocumentNotFoundError
from docpipe.core.queue import pipeline_slot
from docpipe.dependencies import build_orchestrator, build_reconciler, get_settings
from docpipe.models import Document
from docpipe.models.document import DocumentStatus, IndexStatus
from docpipe.models.reprocessing_request import RequestKind
from docpipe.pipeline.orchestrator import PipelineResult
from docpipe.services.reprocessing_service import finish_request, mark_request_running

logger = logging.getLogger(__name__)

MAX_RETRIES = 5


def _is_last_attempt() -> bool:
    message = CurrentMessage.get_current_message()
    current_retry = message.options.get("retries", 0) if message else 0
    return current_retry >= MAX_RETRIES


async def _give_up(document_id: UUID, request_handle: str | None, error: str) -> None:
    """Record a run that will not be retried again."""
    try:
        # A document that already finished keeps its status; only stuck runs are failed
        updated = await Document.filter(
            id=document_id, status__in=(DocumentStatus.PENDING, DocumentStatus.PROCESSING)
        ).update(status=DocumentStatus.FAILED, processing_error=error)
        if updated:
            logger.error(f"Document {document_id} marked as FAILED after {MAX_RETRIES} retries")
        if request_handle:
            await finish_request(request_handle, error)
    except Exception as save_error:
        logger.error(f"Failed to record failure for document {document_id}: {save_error}")


def _schedule_reconcile(document_id: str) -> None:
    delay_ms = int(get_settings().INDEX_RECONCILE_DELAY_SECONDS * 1000)
    try:
        reconcile_index.send_with_options(delay=delay_ms)
    except Exception as e:
        logger.warning(f"Could not schedule index reconciliation for document {document_id}: {e}")
        return
    logger.info(f"Index file of document {document_id} still processing, reconciling in {delay_ms} ms")


async def _process_document_job(
    document_id: str,
    force: bool = False,
    metadata_only: bool = False,
    request_handle: str | None = None,
) -> None:
    """
    Core logic of the pipeline actors.

    Separated from the actors to make testing easier. Stage failures are
    recorded by the orchestrator and do not raise; anything else is re-raised
    so Dramatiq can retry.

    Args:
        document_id: The UUID of the document to process (as string)
        force: Ignore cached artifacts
        metadata_only: Re-extract metadata instead of running the full pipeline
        request_handle: Handle of the reprocessing request to finalize, if any
    """
    # Initialize Tortoise ORM connection for this worker
    await Tortoise.init(config=TORTOISE_ORM)

    doc_uuid = UUID(document_id)

    try:
        async with pipeline_slot(document_id):
            if request_handle:
                await mark_request_running(request_handle)

            orchestrator = build_orchestrator()
            if metadata_only:
                result: PipelineResult = await orchestrator.reprocess_metadata(doc_uuid)
            else:
                result = await orchestrator.run(doc_uuid, force=force)

        if request_handle:
            await finish_request(request_handle, result.error)

        if result.index_status == IndexStatus.PROCESSING:
            _schedule_reconcile(document_id)

        if result.succeeded:
            logger.info(f"Pipeline run for document {document_id} finished with status {result.status}")
        else:
            logger.warning(f"Pipeline run for document {document_id} failed at {result.failed_stage}: {result.error}")

    except DocumentNotFoundError:
        # Deleted while queued; retrying cannot help
        logger.info(f"Document {document_id} no longer exists. Skipping processing.")

    except Exception as e:
        logger.error(f"Error processing document {document_id}: {e}", exc_info=True)
        if _is_last_attempt():
            await _give_up(doc_uuid, request_handle, f"{type(e).__name__}: {e}")

        # Re-raise to let Dramatiq handle the retry
        raise

    finally:
        # Close Tortoise connections
        await Tortoise.close_connections()


@dramatiq.actor(max_retries=MAX_RETRIES)
async def process_document(document_id: str, force: bool = False) -> None:
    """
    Run the full pipeline for a document.

    Args:
        document_id: The UUID of the document to process (as string)
        force: Ignore cached text, metadata and embeddings
    """
    await _process_document_job(document_id, force=force)


@dramatiq.actor(max_retries=MAX_RETRIES)
async def reprocess_document(
    document_id: str, force: bool = False, kind: str = RequestKind.FULL, request_handle: str | None = None
) -> None:
    """Run an operator-requested reprocessing and finalize its request."""
    await _process_document_job(
        document_id,
        force=force,
        metadata_only=kind == RequestKind.METADATA,
        request_handle=request_handle,
    )


async def _reconcile_index_job() -> None:
    """Re-check documents whose index file was still Processing when the poller gave up."""
    await Tortoise.init(config=TORTOISE_ORM)
    try:
        report = await build_reconciler().reconcile()
        logger.info(
            f"Index reconciliation checked {report.checked} documents, {len(report.failed)} marked failed"
        )
    finally:
        await Tortoise.close_connections()


@dramatiq.actor(max_retries=0)
async def reconcile_index() -> None:
    await _reconcile_index_job()
