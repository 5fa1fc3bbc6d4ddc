"""
Index Reconciler.

Documents whose index file was still ``Processing`` when the poller gave up
are re-checked here. A backend ``Failed`` marks the document failed with the
backend's message; ``Available`` just records the new index status.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID

from docpipe.clients.base import IndexClient
from docpipe.models import Document
from docpipe.models.document import DocumentStatus, IndexStatus
from docpipe.services.document_service import DocumentService

logger = logging.getLogger(__name__)

STALE_ERROR = "Index file did not become available in time"


@dataclass
class ReconcileReport:
    checked: int = 0
    available: list[UUID] = field(default_factory=list)
    failed: list[UUID] = field(default_factory=list)
    still_processing: list[UUID] = field(default_factory=list)


class IndexReconciler:
    """
    Args:
        index_client: Backend to re-describe files against
        documents: Document store used for patches
        stale_after: Seconds after which a file still Processing is treated as
            failed. None leaves such documents alone.
    """

    def __init__(self, index_client: IndexClient, documents: DocumentService, stale_after: float | None = None):
        self.index_client = index_client
        self.documents = documents
        self.stale_after = stale_after

    async def reconcile(self) -> ReconcileReport:
        report = ReconcileReport()
        pending = await Document.filter(index_status=IndexStatus.PROCESSING, index_file_id__not_isnull=True)

        for document in pending:
            report.checked += 1
            try:
                info = await self.index_client.describe(document.index_file_id)
            except Exception as e:
                logger.warning(f"Could not describe index file {document.index_file_id}: {e}")
                report.still_processing.append(document.id)
                continue

            if info.status == IndexStatus.AVAILABLE:
                await self.documents.patch(document.id, index_status=IndexStatus.AVAILABLE)
                report.available.append(document.id)
            elif info.status == IndexStatus.FAILED or info.error_message:
                await self._mark_failed(document, info.error_message or "Index backend reported failure")
                report.failed.append(document.id)
            elif self._is_stale(document):
                await self._mark_failed(document, STALE_ERROR)
                report.failed.append(document.id)
            else:
                report.still_processing.append(document.id)

        if report.checked:
            logger.info(
                f"Reconciled {report.checked} index files: {len(report.available)} available, "
                f"{len(report.failed)} failed, {len(report.still_processing)} still processing"
            )
        return report

    def _is_stale(self, document: Document) -> bool:
        if self.stale_after is None:
            return False
        updated_at = document.updated_at
        if updated_at.tzinfo is None:
            updated_at = updated_at.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) - updated_at > timedelta(seconds=self.stale_after)

    async def _mark_failed(self, document: Document, error: str) -> None:
        logger.error(f"Index file {document.index_file_id} for document {document.id} failed: {error}")
        await self.documents.patch(
            document.id,
            index_status=IndexStatus.FAILED,
            status=DocumentStatus.FAILED,
            processing_error=error,
        )
