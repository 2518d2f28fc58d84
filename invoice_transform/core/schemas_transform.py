"""Pydantic schemas for transform requests, jobs and results."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from invoice_transform.core.schemas_clients import ClientMatch
from invoice_transform.core.schemas_documents import (
    Contract,
    DocumentStatus,
    DocumentType,
    Estimate,
    Invoice,
)


class TransformOperation(str, Enum):
    CLONE = "clone"
    MERGE = "merge"
    STATUS_CHANGE = "status_change"


class TransformJobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_JOB_STATUSES = frozenset({
    TransformJobStatus.COMPLETED,
    TransformJobStatus.FAILED,
    TransformJobStatus.CANCELLED,
})

# Statuses a job must currently be in to move to the key status
JOB_TRANSITIONS: dict[TransformJobStatus, tuple[TransformJobStatus, ...]] = {
    TransformJobStatus.RUNNING: (TransformJobStatus.QUEUED,),
    TransformJobStatus.COMPLETED: (TransformJobStatus.RUNNING,),
    TransformJobStatus.FAILED: (TransformJobStatus.QUEUED, TransformJobStatus.RUNNING),
    TransformJobStatus.CANCELLED: (TransformJobStatus.QUEUED, TransformJobStatus.RUNNING),
}


class TransformConfig(BaseModel):
    """A caller-built transform request.

    Field presence rules are checked by the engine before any job exists.
    """

    operation: TransformOperation
    source_document_id: str | None = None
    source_document_ids: list[str] | None = None
    source_document_type: DocumentType | None = None
    target_document_type: DocumentType | None = None
    target_status: DocumentStatus | None = None
    client_override: str | None = None


class TransformJob(BaseModel):
    """Persisted audit/status record for one transform."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    status: TransformJobStatus
    config: dict[str, Any] = {}
    result_document_id: str | None = None
    error: str | None = None
    output: dict[str, Any] = {}
    created_at: datetime | None = None
    updated_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


class TransformResult(BaseModel):
    """What a transform returns to its caller."""

    success: bool
    job: TransformJob | None = None
    generated_document: Invoice | Estimate | Contract | None = None
    error: str | None = None
    error_code: str | None = None


class MergeSourceSelection(BaseModel):
    """One slot of a merge: a spoken client name and the document picked for it."""

    client_name: str
    document_type: DocumentType | None = None
    candidates: list[Invoice | Estimate | Contract] = []
    selected_document_id: str | None = None
    suggestions: list[ClientMatch] = []


class MergeSlotRequest(BaseModel):
    client_name: str = ""
    document_type: DocumentType | None = None
    selected_document_id: str | None = None


class MergeRequest(BaseModel):
    """Request body for executing a merge from selection slots."""

    selections: list[MergeSlotRequest] = Field(..., min_length=1)
    source_document_type: DocumentType = DocumentType.INVOICE
    target_document_type: DocumentType | None = None
    client_override: str | None = None


class CancelJobResponse(BaseModel):
    success: bool
    job: TransformJob | None = None
    message: str = ""


class TransformJobListResponse(BaseModel):
    jobs: list[TransformJob]
    limit: int
    offset: int
    count: int
