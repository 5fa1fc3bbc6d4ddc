from fastapi import APIRouter, Depends, HTTPException

from docpipe.clients.blob_store import HttpBlobStore
from docpipe.core.errors import UnknownHandleError
from docpipe.dependencies import build_reconciler, get_blob_store, get_reprocessing_service
from docpipe.pipeline.reconciler import IndexReconciler
from docpipe.schemas.documents import UploadUrlResponse
from docpipe.schemas.jobs import ProcessingJobResponse, ReprocessingRequestResponse, WorkStatusResponse
from docpipe.services.reprocessing_service import ReprocessingService

router = APIRouter()


@router.get("/work/{handle}", response_model=WorkStatusResponse)
async def get_work_status(
    handle: str,
    reprocessing_service: ReprocessingService = Depends(get_reprocessing_service),
) -> WorkStatusResponse:
    """Status of a work item issued by this process."""
    try:
        status, error = await reprocessing_service.status(handle)
    except UnknownHandleError as e:
        raise HTTPException(status_code=404, detail=f"Unknown work handle {handle}") from e

    return WorkStatusResponse(handle=handle, status=status.value, error=error)


@router.get("/jobs/active", response_model=list[ProcessingJobResponse])
async def get_active_jobs(
    reprocessing_service: ReprocessingService = Depends(get_reprocessing_service),
) -> list[ProcessingJobResponse]:
    jobs = await reprocessing_service.get_active_jobs()
    return [ProcessingJobResponse.model_validate(job) for job in jobs]


@router.get("/jobs/failed", response_model=list[ProcessingJobResponse])
async def get_failed_jobs(
    reprocessing_service: ReprocessingService = Depends(get_reprocessing_service),
) -> list[ProcessingJobResponse]:
    jobs = await reprocessing_service.get_failed_jobs()
    return [ProcessingJobResponse.model_validate(job) for job in jobs]


@router.get("/reprocessing/active", response_model=list[ReprocessingRequestResponse])
async def get_active_reprocessing(
    reprocessing_service: ReprocessingService = Depends(get_reprocessing_service),
) -> list[ReprocessingRequestResponse]:
    requests = await reprocessing_service.get_active_requests()
    return [ReprocessingRequestResponse.model_validate(request) for request in requests]


@router.get("/reprocessing/stats")
async def get_reprocessing_stats(
    reprocessing_service: ReprocessingService = Depends(get_reprocessing_service),
) -> dict[str, int]:
    return await reprocessing_service.reprocessing_stats()


@router.post("/uploads/url", response_model=UploadUrlResponse)
async def create_upload_url(blob_store: HttpBlobStore = Depends(get_blob_store)) -> UploadUrlResponse:
    """Short-lived URL the client uploads the raw file to before registering it."""
    try:
        url = await blob_store.generate_upload_url()
    except Exception as e:
        raise HTTPException(status_code=502, detail=f"Blob store unavailable: {e}") from e
    return UploadUrlResponse(url=url)


@router.post("/index/reconcile")
async def reconcile_index(reconciler: IndexReconciler = Depends(build_reconciler)) -> dict:
    """Re-check documents whose index file is still Processing."""
    report = await reconciler.reconcile()
    return {
        "checked": report.checked,
        "available": [str(i) for i in report.available],
        "failed": [str(i) for i in report.failed],
        "still_processing": [str(i) for i in report.still_processing],
    }
