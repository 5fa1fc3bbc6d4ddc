"""
Document Record Store.

Every write is a partial ``UPDATE ... WHERE id = ?`` on the columns being
changed, never a full-row save, so concurrent writers (orchestrator, admin
reprocessing, completion hooks) cannot clobber each other's fields.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from uuid import UUID

from tortoise.transactions import in_transaction

from docpipe.clients.base import IndexClient
from docpipe.core.config import Settings
from docpipe.core.errors import DocumentNotFoundError
from docpipe.models import Chunk, Document, ProcessingJob, ReprocessingRequest
from docpipe.models.document import DocumentStatus

logger = logging.getLogger(__name__)


def _as_list(value) -> list[str]:
    # Some backends hand JSON columns back undecoded from values_list
    if isinstance(value, str):
        value = json.loads(value)
    return value or []


class ReprocessFilter:
    ALL = "all"
    MISSING_METADATA = "missing_metadata"
    OLD_EXTRACTION = "old_extraction"
    FAILED = "failed"


class DocumentService:
    def __init__(self, index_client: IndexClient | None = None, extraction_version: str | None = None):
        self.index_client = index_client
        self.extraction_version = extraction_version or Settings().EXTRACTION_VERSION

    async def get(self, document_id: UUID) -> Document:
        document = await Document.get_or_none(id=document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def patch(self, document_id: UUID, **fields) -> None:
        """
        Atomically update only the given columns.

        Raises:
            DocumentNotFoundError: If no row was updated
        """
        fields["updated_at"] = datetime.now(timezone.utc)
        updated = await Document.filter(id=document_id).update(**fields)
        if not updated:
            raise DocumentNotFoundError(document_id)

    async def set_status(self, document_id: UUID, status: str, error: str | None = None) -> None:
        if status not in DocumentStatus.ALL:
            raise ValueError(f"Unknown document status: {status}")
        await self.patch(document_id, status=status, processing_error=error)

    async def approve(self, document_id: UUID, approved_by: str) -> None:
        await self.patch(document_id, approved=True, approved_by=approved_by, approved_at=datetime.now(timezone.utc))
        logger.info(f"Document {document_id} approved by {approved_by}")

    async def reject(self, document_id: UUID) -> None:
        await self.patch(document_id, approved=False, approved_by=None, approved_at=None)

    async def delete(self, document_id: UUID) -> None:
        """
        Delete a document and everything hanging off it.

        The index file is removed best-effort; a backend error is logged and
        does not keep the record alive.
        """
        document = await self.get(document_id)

        if document.index_file_id and self.index_client is not None:
            try:
                await self.index_client.delete(document.index_file_id)
            except Exception as e:
                logger.warning(f"Failed to delete index file {document.index_file_id}: {e}")

        # Flat worklist of dependents, children before the parent row
        worklist = [
            Chunk.filter(document_id=document_id),
            ProcessingJob.filter(document_id=document_id),
            ReprocessingRequest.filter(document_id=document_id),
            Document.filter(id=document_id),
        ]
        async with in_transaction() as connection:
            for queryset in worklist:
                await queryset.using_db(connection).delete()
        logger.info(f"Deleted document {document_id}")

    async def get_extraction_context(self) -> tuple[list[str], list[str]]:
        """
        Keywords and technology areas already used across the corpus.

        The two lookups are independent and run concurrently.
        """
        keyword_lists, area_lists = await asyncio.gather(
            Document.filter(keywords__not_isnull=True).values_list("keywords", flat=True),
            Document.filter(technology_areas__not_isnull=True).values_list("technology_areas", flat=True),
        )
        keywords = sorted({k for items in keyword_lists for k in _as_list(items)})
        areas = sorted({a for items in area_lists for a in _as_list(items)})
        return keywords, areas

    async def select_for_reprocessing(self, filter_: str = ReprocessFilter.ALL) -> list[Document]:
        query = Document.all()
        if filter_ == ReprocessFilter.FAILED:
            query = query.filter(status=DocumentStatus.FAILED)
        elif filter_ in (ReprocessFilter.MISSING_METADATA, ReprocessFilter.OLD_EXTRACTION):
            documents = await query
            if filter_ == ReprocessFilter.MISSING_METADATA:
                return [d for d in documents if not d.summary or not d.document_type]
            return [d for d in documents if d.extraction_version != self.extraction_version]
        elif filter_ != ReprocessFilter.ALL:
            raise ValueError(f"Unknown reprocessing filter: {filter_}")
        return await query

    async def reprocessing_stats(self) -> dict[str, int]:
        documents = await Document.all().only("id", "status", "summary", "document_type", "extraction_version")
        return {
            "total": len(documents),
            "with_metadata": sum(1 for d in documents if d.summary),
            "with_new_fields": sum(1 for d in documents if d.document_type),
            "failed": sum(1 for d in documents if d.status == DocumentStatus.FAILED),
            "missing_metadata": sum(1 for d in documents if not d.summary or not d.document_type),
            "old_extraction": sum(1 for d in documents if d.extraction_version != self.extraction_version),
        }
