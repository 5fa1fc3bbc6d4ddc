"""
Operator-triggered reprocessing.

Each request is tracked in ``reprocessing_requests`` keyed by its work queue
handle. Runs execute on the in-process work queue or, with the Dramatiq
backend, on a worker. Either way the request's final status is written by
``finish_request``, which only moves requests that are still pending or
running, so a request is completed or failed exactly once.
"""

import logging
import uuid
from datetime import datetime, timezone
from uuid import UUID

from docpipe.core.config import TaskBackend
from docpipe.core.errors import QueueSaturated, UnknownHandleError
from docpipe.core.work_queue import WorkQueue, WorkResult, WorkStatus
from docpipe.models import ProcessingJob, ReprocessingRequest
from docpipe.models.reprocessing_request import RequestKind, RequestStatus
from docpipe.pipeline.orchestrator import PipelineOrchestrator, PipelineResult
from docpipe.services.document_service import DocumentService, ReprocessFilter
from docpipe.services.job_tracker import JobTracker

logger = logging.getLogger(__name__)

_WORK_STATUS_BY_REQUEST_STATUS = {
    RequestStatus.PENDING: WorkStatus.PENDING,
    RequestStatus.RUNNING: WorkStatus.RUNNING,
    RequestStatus.COMPLETED: WorkStatus.SUCCEEDED,
    RequestStatus.FAILED: WorkStatus.FAILED,
}


async def mark_request_running(handle: str) -> None:
    await ReprocessingRequest.filter(handle=handle, status=RequestStatus.PENDING).update(status=RequestStatus.RUNNING)


async def finish_request(handle: str, error: str | None) -> bool:
    """
    Record the final status of a reprocessing request.

    Returns:
        False if the request was already finalized
    """
    status = RequestStatus.FAILED if error else RequestStatus.COMPLETED
    updated = await ReprocessingRequest.filter(handle=handle, status__in=RequestStatus.ACTIVE).update(
        status=status,
        error=error,
        completed_at=datetime.now(timezone.utc),
    )
    if updated:
        logger.info(f"Reprocessing {handle} {status}")
    else:
        logger.debug(f"Reprocessing {handle} already finalized")
    return bool(updated)


class ReprocessingService:
    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        work_queue: WorkQueue,
        documents: DocumentService | None = None,
        jobs: JobTracker | None = None,
        task_backend: str = TaskBackend.LOCAL,
    ):
        self.orchestrator = orchestrator
        self.work_queue = work_queue
        self.documents = documents or orchestrator.documents
        self.jobs = jobs or orchestrator.jobs
        self.task_backend = task_backend

    async def enqueue(self, document_id: UUID, force: bool = False, kind: str = RequestKind.FULL) -> str:
        """
        Queue a reprocessing run for one document.

        Returns:
            The work queue handle

        Raises:
            DocumentNotFoundError: If the document does not exist
            QueueSaturated: If the work queue cannot admit the run
        """
        if kind not in (RequestKind.FULL, RequestKind.METADATA):
            raise ValueError(f"Unknown reprocessing kind: {kind}")
        document = await self.documents.get(document_id)

        # The request row must exist before the run can complete
        handle = uuid.uuid4().hex
        await ReprocessingRequest.create(
            document_id=document_id,
            document_title=document.title,
            handle=handle,
            kind=kind,
            force=force,
        )
        try:
            self._dispatch(handle, document_id, force, kind)
        except Exception:
            await ReprocessingRequest.filter(handle=handle).delete()
            raise

        logger.info(f"Enqueued {kind} reprocessing {handle} for document {document_id}")
        return handle

    async def enqueue_batch(
        self, document_ids: list[UUID], force: bool = False, kind: str = RequestKind.FULL
    ) -> list[str]:
        """
        Queue reprocessing for many documents.

        Stops at the first saturation; handles already issued stay queued.
        """
        handles = []
        for document_id in document_ids:
            try:
                handles.append(await self.enqueue(document_id, force=force, kind=kind))
            except QueueSaturated:
                logger.warning(f"Work queue saturated after {len(handles)} of {len(document_ids)} documents")
                if not handles:
                    raise
                break
        return handles

    async def enqueue_filtered(
        self, filter_: str = ReprocessFilter.ALL, force: bool = False, kind: str = RequestKind.FULL
    ) -> list[str]:
        documents = await self.documents.select_for_reprocessing(filter_)
        return await self.enqueue_batch([d.id for d in documents], force=force, kind=kind)

    async def status(self, handle: str) -> tuple[WorkStatus, str | None]:
        """
        Status and error of a run.

        Read from the work queue while it still tracks the handle, otherwise
        from the persisted reprocessing request.

        Raises:
            UnknownHandleError: If neither knows the handle
        """
        try:
            status = self.work_queue.status(handle)
        except UnknownHandleError:
            request = await self.get_request(handle)
            if request is None:
                raise
            return _WORK_STATUS_BY_REQUEST_STATUS[request.status], request.error

        result = self.work_queue.result(handle)
        return status, result.error if result else None

    async def get_request(self, handle: str) -> ReprocessingRequest | None:
        return await ReprocessingRequest.get_or_none(handle=handle)

    async def get_active_requests(self) -> list[ReprocessingRequest]:
        return await ReprocessingRequest.filter(status__in=RequestStatus.ACTIVE).order_by("enqueued_at")

    async def get_recent_requests(self, limit: int = 50) -> list[ReprocessingRequest]:
        return await ReprocessingRequest.all().order_by("-enqueued_at").limit(limit)

    async def get_active_jobs(self) -> list[ProcessingJob]:
        return await self.jobs.get_active_jobs()

    async def get_failed_jobs(self) -> list[ProcessingJob]:
        return await self.jobs.get_failed_jobs()

    async def reprocessing_stats(self) -> dict[str, int]:
        return await self.documents.reprocessing_stats()

    def _dispatch(self, handle: str, document_id: UUID, force: bool, kind: str) -> None:
        if self.task_backend == TaskBackend.DRAMATIQ:
            # Import here to avoid circular dependency
            from docpipe.jobs.pipeline_job import reprocess_document

            reprocess_document.send(str(document_id), force=force, kind=kind, request_handle=handle)
            return

        self.work_queue.enqueue(
            self._execute,
            handle,
            document_id,
            force=force,
            kind=kind,
            on_complete=self._on_complete,
            handle=handle,
        )

    async def _execute(self, handle: str, document_id: UUID, force: bool, kind: str) -> PipelineResult:
        await mark_request_running(handle)
        if kind == RequestKind.METADATA:
            return await self.orchestrator.reprocess_metadata(document_id)
        return await self.orchestrator.run(document_id, force=force)

    async def _on_complete(self, result: WorkResult) -> None:
        if result.status is WorkStatus.SUCCEEDED:
            pipeline_result: PipelineResult = result.value
            error = pipeline_result.error if pipeline_result else None
        else:
            error = result.error or result.status.value

        await finish_request(result.handle, error)
