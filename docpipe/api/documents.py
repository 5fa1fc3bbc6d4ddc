from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response

from docpipe.core.errors import DocumentNotFoundError, DuplicateContentError, QueueSaturated
from docpipe.dependencies import get_document_service, get_ingestion_service, get_reprocessing_service
from docpipe.schemas.documents import (
    ApproveRequest,
    DocumentCreate,
    DocumentResponse,
    DuplicateCheckRequest,
    DuplicateCheckResponse,
    ExistingDocument,
    IngestResponse,
)
from docpipe.schemas.jobs import BatchReprocessRequest, BatchReprocessResponse, ReprocessRequest, ReprocessResponse
from docpipe.services.document_service import DocumentService
from docpipe.services.fingerprint_service import FingerprintService
from docpipe.services.ingestion_service import IngestionService
from docpipe.services.reprocessing_service import ReprocessingService

router = APIRouter()
fingerprint_service = FingerprintService()


@router.post("/documents/check-duplicate", response_model=DuplicateCheckResponse)
async def check_duplicate(payload: DuplicateCheckRequest) -> DuplicateCheckResponse:
    """Tell whether a file with this content hash was already uploaded. Has no side effects."""
    check = await fingerprint_service.check_duplicate(payload.content_hash)
    if not check.is_duplicate:
        return DuplicateCheckResponse(is_duplicate=False)

    existing = check.existing
    return DuplicateCheckResponse(
        is_duplicate=True,
        existing=ExistingDocument(
            id=existing.id, title=existing.title, filename=existing.filename, created_at=existing.created_at
        ),
    )


@router.post("/documents", status_code=201, response_model=IngestResponse)
async def create_document(
    payload: DocumentCreate,
    ingestion_service: IngestionService = Depends(get_ingestion_service),
) -> IngestResponse:
    """
    Registers an uploaded document and enqueues it for processing.

    Returns the document ID and work handle immediately with a 201 Created
    status; extraction, metadata, embedding and indexing happen in the
    background. A file whose content hash is already registered is rejected
    with 409 Conflict.
    """
    try:
        result = await ingestion_service.register(payload)
        return IngestResponse(
            document_id=result.document_id,
            handle=result.handle,
            message="Document accepted for processing",
        )
    except DuplicateContentError as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "existing_id": str(e.existing_id), "existing_title": e.existing_title},
        ) from e
    except QueueSaturated as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except Exception as e:
        # For unexpected errors, return a generic 500 response
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred: {e}") from e


@router.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: UUID,
    document_service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    try:
        document = await document_service.get(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return DocumentResponse.model_validate(document)


@router.delete("/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: UUID,
    document_service: DocumentService = Depends(get_document_service),
) -> Response:
    """Deletes a document with its jobs, chunks, reprocessing requests and index file."""
    try:
        await document_service.delete(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return Response(status_code=204)


@router.post("/documents/{document_id}/approve", response_model=DocumentResponse)
async def approve_document(
    document_id: UUID,
    payload: ApproveRequest,
    document_service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    try:
        await document_service.approve(document_id, payload.approved_by)
        document = await document_service.get(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return DocumentResponse.model_validate(document)


@router.post("/documents/{document_id}/reject", response_model=DocumentResponse)
async def reject_document(
    document_id: UUID,
    document_service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    try:
        await document_service.reject(document_id)
        document = await document_service.get(document_id)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return DocumentResponse.model_validate(document)


@router.post("/documents/reprocess", status_code=202, response_model=BatchReprocessResponse)
async def reprocess_documents(
    payload: BatchReprocessRequest,
    reprocessing_service: ReprocessingService = Depends(get_reprocessing_service),
) -> BatchReprocessResponse:
    """Enqueues reprocessing for several documents; stops early if the work queue fills up."""
    try:
        handles = await reprocessing_service.enqueue_batch(payload.document_ids, force=payload.force, kind=payload.kind)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except QueueSaturated as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return BatchReprocessResponse(enqueued_count=len(handles), handles=handles)


@router.post("/documents/{document_id}/reprocess", status_code=202, response_model=ReprocessResponse)
async def reprocess_document(
    document_id: UUID,
    payload: ReprocessRequest | None = None,
    reprocessing_service: ReprocessingService = Depends(get_reprocessing_service),
) -> ReprocessResponse:
    """Enqueues a new pipeline run (or a metadata-only run) for an existing document."""
    payload = payload or ReprocessRequest()
    try:
        handle = await reprocessing_service.enqueue(document_id, force=payload.force, kind=payload.kind)
    except DocumentNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except QueueSaturated as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    return ReprocessResponse(document_id=document_id, handle=handle)
