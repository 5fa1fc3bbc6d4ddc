"""
Job Tracker: append-only history of pipeline attempts.

One ProcessingJob per attempt. Once a job is completed or failed it is never
touched again; a retry creates a new job.
"""

import logging
from datetime import datetime, timezone
from uuid import UUID

from docpipe.core.errors import TerminalJobError
from docpipe.models import ProcessingJob
from docpipe.models.processing_job import JobStage
from docpipe.schemas.jobs import JobMetadata

logger = logging.getLogger(__name__)

_STAGES = (*JobStage.ORDER, JobStage.FAILED)


class JobTracker:
    async def create_job(self, document_id: UUID, stage: str = JobStage.EXTRACTING) -> UUID:
        if stage not in _STAGES:
            raise ValueError(f"Unknown job stage: {stage}")
        job = await ProcessingJob.create(document_id=document_id, stage=stage)
        logger.info(f"Created job {job.id} for document {document_id} at stage {stage}")
        return job.id

    async def update_job(
        self,
        job_id: UUID,
        stage: str,
        error: str | None = None,
        metadata: JobMetadata | None = None,
    ) -> None:
        """
        Move a job to ``stage``.

        Completing or failing a job stamps ``completed_at``. The update only
        applies while the job is non-terminal, so a late or duplicate update
        can never rewrite a finished attempt.

        Raises:
            TerminalJobError: If the job is already completed or failed
        """
        if stage not in _STAGES:
            raise ValueError(f"Unknown job stage: {stage}")

        updates: dict = {"stage": stage}
        if stage in JobStage.TERMINAL:
            updates["completed_at"] = datetime.now(timezone.utc)
        if error:
            updates["error"] = error
        if metadata is not None:
            updates["metadata"] = metadata.to_db()

        updated = await ProcessingJob.filter(id=job_id).exclude(stage__in=JobStage.TERMINAL).update(**updates)
        if not updated:
            raise TerminalJobError(f"Job {job_id} does not exist or is already terminal")
        logger.debug(f"Job {job_id} -> {stage}")

    async def get_job(self, job_id: UUID) -> ProcessingJob | None:
        return await ProcessingJob.get_or_none(id=job_id)

    async def get_active_jobs(self) -> list[ProcessingJob]:
        """Jobs that are neither completed nor failed."""
        return await ProcessingJob.exclude(stage__in=JobStage.TERMINAL).order_by("started_at")

    async def get_failed_jobs(self) -> list[ProcessingJob]:
        return await ProcessingJob.filter(stage=JobStage.FAILED).order_by("-completed_at")

    async def get_jobs_for_document(self, document_id: UUID) -> list[ProcessingJob]:
        return await ProcessingJob.filter(document_id=document_id).order_by("started_at")

    async def get_latest_job(self, document_id: UUID) -> ProcessingJob | None:
        return await ProcessingJob.filter(document_id=document_id).order_by("-started_at").first()
