"""Transform job lifecycle database operations.

Every transition is a compare-and-set on the current status, so a job can
only move forward: queued -> running -> completed | failed, or
queued | running -> cancelled. A transition that loses a race returns None.
"""

from datetime import datetime, timezone
from typing import Any

from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_transform import (
    JOB_TRANSITIONS,
    TransformJob,
    TransformJobStatus,
)
from invoice_transform.db.store import TRANSFORM_JOBS_TABLE, RecordStore

logger = get_logger(__name__)


def _utc_now_iso() -> str:
    """Get current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def _transition(
    store: RecordStore,
    job_id: str,
    user_id: str,
    target: TransformJobStatus,
    values: dict[str, Any] | None = None,
) -> TransformJob | None:
    allowed_from = [status.value for status in JOB_TRANSITIONS[target]]
    row = store.update(
        TRANSFORM_JOBS_TABLE,
        job_id,
        {"status": target.value, "updated_at": _utc_now_iso(), **(values or {})},
        user_id=user_id,
        expected={"status": allowed_from},
    )

    if row is None:
        logger.info(
            f"Job {job_id} not moved to {target.value}: not in {allowed_from}",
            extra={"job_id": str(job_id)},
        )
        return None

    return TransformJob.model_validate(row)


def create_job(store: RecordStore, user_id: str, config: dict[str, Any]) -> TransformJob:
    """
    Create a new queued transform job.

    Args:
        store: Record store
        user_id: Requesting user; owns the job
        config: Validated transform configuration (JSON-ready)

    Returns:
        The created job

    Raises:
        DataAccessError: If the insert fails
    """
    try:
        now = _utc_now_iso()
        row = store.insert(
            TRANSFORM_JOBS_TABLE,
            {
                "user_id": str(user_id),
                "status": TransformJobStatus.QUEUED.value,
                "config": config,
                "output": {},
                "created_at": now,
                "updated_at": now,
            },
        )

        job = TransformJob.model_validate(row)
        logger.info(
            f"Created transform job {job.id} ({config.get('operation')})",
            extra={"job_id": job.id, "user_id": str(user_id)},
        )
        return job

    except Exception as e:
        logger.error(f"Failed to create transform job: {e}", extra={"user_id": str(user_id)})
        raise


def start_job(store: RecordStore, job_id: str, user_id: str) -> TransformJob | None:
    """Mark a queued job as running."""
    job = _transition(
        store, job_id, user_id, TransformJobStatus.RUNNING, {"started_at": _utc_now_iso()}
    )
    if job:
        logger.info(f"Started transform job {job_id}", extra={"job_id": str(job_id)})
    return job


def complete_job(
    store: RecordStore,
    job_id: str,
    user_id: str,
    result_document_id: str,
    output: dict[str, Any],
) -> TransformJob | None:
    """Mark a running job as completed with its generated document."""
    job = _transition(
        store,
        job_id,
        user_id,
        TransformJobStatus.COMPLETED,
        {
            "result_document_id": result_document_id,
            "output": output,
            "completed_at": _utc_now_iso(),
        },
    )
    if job:
        logger.info(
            f"Completed transform job {job_id} -> document {result_document_id}",
            extra={"job_id": str(job_id)},
        )
    return job


def fail_job(
    store: RecordStore, job_id: str, user_id: str, error_message: str
) -> TransformJob | None:
    """
    Mark a queued or running job as failed with an error message.

    Raises:
        DataAccessError: If the store cannot be written
    """
    try:
        job = _transition(
            store,
            job_id,
            user_id,
            TransformJobStatus.FAILED,
            {"error": error_message, "completed_at": _utc_now_iso()},
        )
        if job:
            logger.info(
                f"Failed transform job {job_id}: {error_message}", extra={"job_id": str(job_id)}
            )
        return job

    except Exception as e:
        logger.error(f"Failed to update job as failed: {e}", extra={"job_id": str(job_id)})
        raise


def cancel_job(store: RecordStore, job_id: str, user_id: str) -> TransformJob | None:
    """Cancel a queued or running job. Returns None if it was already terminal."""
    job = _transition(
        store,
        job_id,
        user_id,
        TransformJobStatus.CANCELLED,
        {"completed_at": _utc_now_iso()},
    )
    if job:
        logger.info(f"Cancelled transform job {job_id}", extra={"job_id": str(job_id)})
    return job


def get_job(store: RecordStore, job_id: str, user_id: str) -> TransformJob | None:
    """
    Get a job by ID, scoped to its owner.

    Raises:
        DataAccessError: If the store cannot be read
    """
    row = store.get(TRANSFORM_JOBS_TABLE, job_id, user_id=user_id)

    if not row or str(row.get("user_id")) != str(user_id):
        logger.warning(f"Transform job {job_id} not found", extra={"job_id": str(job_id)})
        return None

    return TransformJob.model_validate(row)


def list_jobs(
    store: RecordStore,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> list[TransformJob]:
    """
    List a user's jobs ordered by created_at desc.

    Raises:
        DataAccessError: If the store cannot be read
    """
    rows = store.select(
        TRANSFORM_JOBS_TABLE,
        user_id=user_id,
        order_by="created_at",
        descending=True,
        limit=limit,
        offset=offset,
    )
    return [TransformJob.model_validate(row) for row in rows]
