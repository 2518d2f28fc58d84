"""
Transform engine: derive a new document from existing ones.

Operations:
- clone: copy a document as a new draft, optionally converting between
  invoice and estimate
- status_change: copy a document with a new status (and the matching
  sent/paid/signed timestamp)
- merge: combine the line items of two or more documents into one

Each call runs as one job: validate -> create job (queued) -> load and
authorize sources -> running -> derive -> persist -> completed. Any failure
after the job exists marks it failed and removes a document that was
already written. Cancellation is cooperative and checked between steps.
"""

import logging
from datetime import datetime, timezone
from typing import Any

from invoice_transform.core.document_totals import compute_totals, normalize_line_item
from invoice_transform.core.errors import (
    NotFoundError,
    TransformCancelled,
    TransformExecutionError,
    TransformValidationError,
)
from invoice_transform.core.logging import get_logger, log_with_context
from invoice_transform.core.merge_reconciler import combine_line_items
from invoice_transform.core.schemas_documents import (
    LINE_ITEM_DOCUMENT_TYPES,
    SERVER_MANAGED_COLUMNS,
    DocumentStatus,
    DocumentType,
    KnownDocument,
    is_known_document,
)
from invoice_transform.core.schemas_transform import (
    TransformConfig,
    TransformJob,
    TransformJobStatus,
    TransformOperation,
    TransformResult,
)
from invoice_transform.db import clients as clients_db
from invoice_transform.db import documents as documents_db
from invoice_transform.db import transform_jobs as jobs_db
from invoice_transform.db.store import RecordStore

logger = get_logger(__name__)

# Status -> timestamp column stamped when a document moves into it
STATUS_TIMESTAMPS = {
    DocumentStatus.SENT: "sent_at",
    DocumentStatus.PAID: "paid_at",
    DocumentStatus.SIGNED: "signed_at",
}


# ============================================================================
# Validation
# ============================================================================


def validate_transform_config(config: TransformConfig) -> None:
    """
    Check a transform request before any job is created.

    Raises:
        TransformValidationError: If the request is structurally invalid
    """
    if config.source_document_type is None:
        raise TransformValidationError("source_document_type is required")

    source_type = config.source_document_type
    target_type = config.target_document_type

    if config.operation in (TransformOperation.CLONE, TransformOperation.STATUS_CHANGE):
        if not config.source_document_id:
            raise TransformValidationError(
                f"{config.operation.value} requires exactly one source_document_id"
            )
        if config.source_document_ids:
            raise TransformValidationError(
                f"{config.operation.value} takes source_document_id, not source_document_ids"
            )

    if config.operation == TransformOperation.CLONE:
        if target_type is not None and target_type != source_type:
            if source_type not in LINE_ITEM_DOCUMENT_TYPES or target_type not in LINE_ITEM_DOCUMENT_TYPES:
                raise TransformValidationError(
                    f"Cannot convert {source_type.value} to {target_type.value}; "
                    "only invoices and estimates convert"
                )

    elif config.operation == TransformOperation.STATUS_CHANGE:
        if config.target_status is None:
            raise TransformValidationError("status_change requires target_status")
        if target_type is not None and target_type != source_type:
            raise TransformValidationError("status_change cannot change the document type")

    elif config.operation == TransformOperation.MERGE:
        ids = config.source_document_ids or []
        if config.source_document_id:
            raise TransformValidationError("merge takes source_document_ids, not source_document_id")
        if len(ids) < 2:
            raise TransformValidationError("merge requires at least two source_document_ids")
        if len(set(ids)) != len(ids):
            raise TransformValidationError("merge source_document_ids must be distinct")
        if source_type not in LINE_ITEM_DOCUMENT_TYPES:
            raise TransformValidationError(f"Cannot merge {source_type.value} documents")
        if target_type is not None and target_type not in LINE_ITEM_DOCUMENT_TYPES:
            raise TransformValidationError(f"Cannot merge into a {target_type.value}")


# ============================================================================
# Execution
# ============================================================================


def _source_ids(config: TransformConfig) -> list[str]:
    if config.operation == TransformOperation.MERGE:
        return list(config.source_document_ids or [])
    return [config.source_document_id]


def _load_sources(
    store: RecordStore,
    config: TransformConfig,
    user_id: str,
) -> list[KnownDocument]:
    sources: list[KnownDocument] = []

    for document_id in _source_ids(config):
        document = documents_db.get_document(
            store, document_id, user_id, config.source_document_type
        )

        # Foreign and missing documents are reported identically
        if document is None or document.user_id != str(user_id):
            if document is not None:
                logger.warning(
                    f"Rejected source document {document_id}: owner mismatch",
                    extra={"user_id": str(user_id)},
                )
            raise NotFoundError(f"Document {document_id} not found")

        if not is_known_document(document):
            raise TransformExecutionError(
                f"Document {document_id} is not a recognized document ({document.reason})"
            )

        if document.document_type != config.source_document_type.value:
            raise NotFoundError(f"Document {document_id} not found")

        sources.append(document)

    if config.client_override:
        if clients_db.get_client(store, config.client_override, user_id) is None:
            raise NotFoundError(f"Client {config.client_override} not found")

    return sources


def _ensure_not_cancelled(store: RecordStore, job_id: str, user_id: str) -> None:
    job = jobs_db.get_job(store, job_id, user_id)
    if job is None or job.status == TransformJobStatus.CANCELLED:
        raise TransformCancelled(f"Transform job {job_id} was cancelled")


def _target_type(config: TransformConfig) -> DocumentType:
    if config.operation == TransformOperation.STATUS_CHANGE:
        return config.source_document_type
    return config.target_document_type or config.source_document_type


def _base_row(source: KnownDocument) -> dict[str, Any]:
    row = source.model_dump(mode="json")
    for column in SERVER_MANAGED_COLUMNS:
        row.pop(column, None)
    row.pop("reason", None)
    return row


def _derive_document(
    store: RecordStore,
    config: TransformConfig,
    sources: list[KnownDocument],
    user_id: str,
    job: TransformJob,
    now: datetime,
) -> dict[str, Any]:
    """Build the new document row. Only reads from the store."""
    target_type = _target_type(config)
    first = sources[0]
    row = _base_row(first)

    if config.operation == TransformOperation.MERGE:
        line_items = combine_line_items(sources)
        row["title"] = (
            f"{target_type.value.capitalize()} - Merged from {len(sources)} documents"
        )
        row["status"] = DocumentStatus.DRAFT.value
        row["sent_at"] = row["paid_at"] = row["signed_at"] = None
    else:
        line_items = [normalize_line_item(item, i) for i, item in enumerate(first.line_items)]

        if config.operation == TransformOperation.CLONE:
            row["status"] = DocumentStatus.DRAFT.value
            row["sent_at"] = row["paid_at"] = row["signed_at"] = None
            if target_type.value != first.document_type:
                row["title"] = (
                    f"{target_type.value.capitalize()} - Converted from {first.document_type}"
                )
        else:
            target_status = DocumentStatus(config.target_status)
            row["status"] = target_status.value
            for status, column in STATUS_TIMESTAMPS.items():
                row[column] = now.isoformat() if status == target_status else None

    row["document_type"] = target_type.value
    row["user_id"] = str(user_id)
    row["client_id"] = config.client_override or first.client_id
    row["document_number"] = documents_db.next_document_number(
        store, user_id, target_type, now.year
    )
    row["line_items"] = [item.model_dump(mode="json") for item in line_items]

    if line_items or target_type in LINE_ITEM_DOCUMENT_TYPES:
        subtotal, tax_amount, total = compute_totals(line_items, first.tax_rate)
        row["subtotal"] = subtotal
        row["tax_amount"] = tax_amount
        row["total"] = total

    row["transform_job_id"] = job.id
    row["source_document_ids"] = [source.id for source in sources]
    return row


def _job_output(document: KnownDocument) -> dict[str, Any]:
    return {
        "document_number": document.document_number,
        "document_type": document.document_type,
        "amount": document.total,
        "line_item_count": len(document.line_items),
    }


def _abort(
    store: RecordStore,
    job: TransformJob,
    user_id: str,
    inserted: KnownDocument | None,
    error_message: str,
    fail: bool,
) -> TransformJob | None:
    """Record a failed or cancelled job and remove any document already written."""
    current = job
    try:
        if inserted is not None:
            documents_db.delete_document(
                store, inserted.id, user_id, DocumentType(inserted.document_type)
            )
            logger.info(
                f"Removed document {inserted.id} written by aborted job {job.id}",
                extra={"job_id": job.id},
            )
    finally:
        if fail:
            current = jobs_db.fail_job(store, job.id, user_id, error_message)

    return jobs_db.get_job(store, job.id, user_id) or current


def execute_transform(
    store: RecordStore,
    config: TransformConfig,
    user_id: str,
    now: datetime | None = None,
) -> TransformResult:
    """
    Run one transform end to end.

    Args:
        store: Record store
        config: Transform request
        user_id: Requesting user; owns the job and must own every source
        now: Clock override for timestamps and numbering

    Returns:
        TransformResult. ``success`` is False with ``error_code`` set to
        ``not_found``, ``cancelled`` or ``execution_failed`` when the job did
        not complete; the job record reflects the same outcome.

    Raises:
        TransformValidationError: If the config is invalid (no job created)
        DataAccessError: If the job record itself cannot be written
    """
    validate_transform_config(config)
    now = now or datetime.now(timezone.utc)

    job = jobs_db.create_job(store, user_id, config.model_dump(mode="json", exclude_none=True))
    inserted: KnownDocument | None = None

    try:
        sources = _load_sources(store, config, user_id)

        _ensure_not_cancelled(store, job.id, user_id)
        running = jobs_db.start_job(store, job.id, user_id)
        if running is None:
            raise TransformCancelled(f"Transform job {job.id} was cancelled before it started")
        job = running

        row = _derive_document(store, config, sources, user_id, job, now)

        _ensure_not_cancelled(store, job.id, user_id)
        try:
            inserted = documents_db.insert_document(store, row)
        except Exception as e:
            raise TransformExecutionError(f"Failed to persist generated document: {e}") from e

        completed = jobs_db.complete_job(
            store, job.id, user_id, inserted.id, _job_output(inserted)
        )
        if completed is None:
            raise TransformCancelled(f"Transform job {job.id} was cancelled during persistence")

        return TransformResult(success=True, job=completed, generated_document=inserted)

    except TransformCancelled as e:
        logger.info(str(e), extra={"job_id": job.id})
        final = _abort(store, job, user_id, inserted, str(e), fail=False)
        return TransformResult(success=False, job=final, error=str(e), error_code="cancelled")

    except NotFoundError as e:
        final = _abort(store, job, user_id, inserted, str(e), fail=True)
        return TransformResult(success=False, job=final, error=str(e), error_code="not_found")

    except Exception as e:
        error_msg = f"Transform failed: {e}"
        log_with_context(
            logger,
            logging.ERROR,
            error_msg,
            job_id=job.id,
            user_id=str(user_id),
            operation=config.operation.value,
        )
        final = _abort(store, job, user_id, inserted, error_msg, fail=True)
        return TransformResult(
            success=False, job=final, error=error_msg, error_code="execution_failed"
        )


# ============================================================================
# Job queries
# ============================================================================


def get_transform_job(store: RecordStore, job_id: str, user_id: str) -> TransformJob | None:
    """Tenant-scoped job lookup. A foreign job reads as missing."""
    return jobs_db.get_job(store, job_id, user_id)


def cancel_transform_job(store: RecordStore, job_id: str, user_id: str) -> bool:
    """
    Cancel a queued or running job.

    Returns:
        True if the job moved to cancelled; False if it is missing, foreign,
        or already terminal (its stored state is left untouched)
    """
    if jobs_db.get_job(store, job_id, user_id) is None:
        return False
    return jobs_db.cancel_job(store, job_id, user_id) is not None


def list_transform_jobs(
    store: RecordStore,
    user_id: str,
    limit: int = 50,
    offset: int = 0,
) -> list[TransformJob]:
    """The user's jobs, newest first."""
    return jobs_db.list_jobs(store, user_id, limit=limit, offset=offset)
