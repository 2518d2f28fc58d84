"""API endpoints for document transforms and transform jobs."""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from invoice_transform.core.auth_middleware import get_current_user_id
from invoice_transform.core.errors import DataAccessError, TransformValidationError
from invoice_transform.core.logging import get_logger
from invoice_transform.core.merge_reconciler import merge_config_from_selections
from invoice_transform.core.schemas_transform import (
    CancelJobResponse,
    MergeRequest,
    MergeSourceSelection,
    TransformConfig,
    TransformJob,
    TransformJobListResponse,
    TransformResult,
)
from invoice_transform.core.transform_engine import (
    cancel_transform_job,
    execute_transform,
    get_transform_job,
    list_transform_jobs,
)
from invoice_transform.db.store import RecordStore, get_store

logger = get_logger(__name__)

router = APIRouter(prefix="/transform")

# HTTP status for each failed-transform error code
ERROR_STATUS_CODES = {
    "not_found": 404,
    "cancelled": 409,
    "execution_failed": 422,
}


def _respond(result: TransformResult):
    if result.success:
        return result
    return JSONResponse(
        content=result.model_dump(mode="json"),
        status_code=ERROR_STATUS_CODES.get(result.error_code, 422),
    )


def _run(store: RecordStore, config: TransformConfig, user_id: str):
    try:
        return _respond(execute_transform(store, config, user_id))

    except TransformValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except DataAccessError as e:
        logger.error(f"Transform store failure: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Document data is unavailable") from e


@router.post("", response_model=TransformResult)
def transform(
    config: TransformConfig,
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """
    Execute a clone, status_change or merge.

    Raises:
        HTTPException 400: If the request is invalid (no job is created)
        HTTPException 503: If the job record cannot be written
    """
    return _run(store, config, user_id)


@router.post("/merge", response_model=TransformResult)
def merge(
    request: MergeRequest,
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """Execute a merge from per-source selection slots; every slot must be selected."""
    selections = [
        MergeSourceSelection(
            client_name=slot.client_name,
            document_type=slot.document_type,
            selected_document_id=slot.selected_document_id,
        )
        for slot in request.selections
    ]

    try:
        config = merge_config_from_selections(
            selections,
            request.source_document_type,
            request.target_document_type,
            request.client_override,
        )
    except TransformValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    return _run(store, config, user_id)


@router.get("/jobs", response_model=TransformJobListResponse)
def list_jobs(
    limit: int = Query(20, description="Maximum number of jobs to return", ge=1, le=100),
    offset: int = Query(0, description="Number of jobs to skip", ge=0),
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """List the user's transform jobs, newest first."""
    try:
        jobs = list_transform_jobs(store, user_id, limit=limit, offset=offset)

    except DataAccessError as e:
        logger.error(f"Failed to list transform jobs: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Failed to retrieve jobs") from e

    return TransformJobListResponse(jobs=jobs, limit=limit, offset=offset, count=len(jobs))


@router.get("/{job_id}", response_model=TransformJob)
def get_job_status(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """
    Get a transform job by ID.

    Raises:
        HTTPException 404: If the job is missing or owned by another user
        HTTPException 503: If the store cannot be read
    """
    try:
        job = get_transform_job(store, job_id, user_id)

    except DataAccessError as e:
        logger.error(f"Failed to get transform job {job_id}: {e}", extra={"job_id": job_id})
        raise HTTPException(status_code=503, detail="Failed to retrieve job status") from e

    if not job:
        raise HTTPException(status_code=404, detail="Job not found")

    return job


@router.delete("/{job_id}", response_model=CancelJobResponse)
def cancel_job(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """
    Cancel a queued or running job.

    Raises:
        HTTPException 404: If the job is missing or owned by another user
        HTTPException 409: If the job already finished
    """
    try:
        job = get_transform_job(store, job_id, user_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

        if job.is_terminal or not cancel_transform_job(store, job_id, user_id):
            current = get_transform_job(store, job_id, user_id) or job
            raise HTTPException(
                status_code=409,
                detail=f"Job is already {current.status.value} and cannot be cancelled",
            )

        return CancelJobResponse(
            success=True,
            job=get_transform_job(store, job_id, user_id),
            message="Job cancelled",
        )

    except HTTPException:
        raise
    except DataAccessError as e:
        logger.error(f"Failed to cancel transform job {job_id}: {e}", extra={"job_id": job_id})
        raise HTTPException(status_code=503, detail="Failed to cancel job") from e
