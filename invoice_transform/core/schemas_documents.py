"""Pydantic schemas for invoices, estimates and contracts.

Rows read from the store are validated into a tagged union keyed on
``document_type``. Rows with an unknown type, or that fail validation, become
an explicit ``UnrecognizedDocument`` instead of being trusted as-is.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_clients import Client, ClientMatch

logger = get_logger(__name__)


class DocumentType(str, Enum):
    INVOICE = "invoice"
    ESTIMATE = "estimate"
    CONTRACT = "contract"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"
    SIGNED = "signed"
    CANCELLED = "cancelled"


# Types whose rows carry priced line items (stored in the invoices table)
LINE_ITEM_DOCUMENT_TYPES = frozenset({DocumentType.INVOICE, DocumentType.ESTIMATE})

# Columns assigned by the database on insert
SERVER_MANAGED_COLUMNS = frozenset({"id", "created_at", "updated_at"})


class LineItem(BaseModel):
    """A priced line on a document.

    Numeric fields are optional because historical rows are not always
    complete; totals are recomputed before anything is persisted.
    """

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    description: str = ""
    quantity: float | None = None
    unit: str | None = None
    rate: float | None = None
    total: float | None = None


class DocumentBase(BaseModel):
    """Columns shared by every document type."""

    model_config = ConfigDict(extra="allow")

    id: str
    user_id: str
    client_id: str | None = None
    document_number: str | None = None
    title: str | None = None
    status: str = DocumentStatus.DRAFT.value
    line_items: list[LineItem] = []
    subtotal: float | None = None
    tax_rate: float | None = None
    tax_amount: float | None = None
    total: float | None = None
    notes: str | None = None
    due_date: str | None = None
    created_at: datetime | None = None
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    signed_at: datetime | None = None
    transform_job_id: str | None = None
    source_document_ids: list[str] = []


class Invoice(DocumentBase):
    document_type: Literal["invoice"] = "invoice"


class Estimate(DocumentBase):
    document_type: Literal["estimate"] = "estimate"


class Contract(DocumentBase):
    document_type: Literal["contract"] = "contract"
    content: str | None = None


class UnrecognizedDocument(BaseModel):
    """A stored row whose shape is not one of the known document types."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    user_id: str | None = None
    document_type: str | None = None
    reason: str | None = None


KnownDocument = Union[Invoice, Estimate, Contract]


def _document_kind(value: Any) -> str:
    if isinstance(value, dict):
        kind = value.get("document_type")
    else:
        kind = getattr(value, "document_type", None)

    if isinstance(kind, Enum):
        kind = kind.value

    if kind in {t.value for t in DocumentType}:
        return kind
    return "unrecognized"


Document = Annotated[
    Union[
        Annotated[Invoice, Tag("invoice")],
        Annotated[Estimate, Tag("estimate")],
        Annotated[Contract, Tag("contract")],
        Annotated[UnrecognizedDocument, Tag("unrecognized")],
    ],
    Discriminator(_document_kind),
]

_document_adapter: TypeAdapter = TypeAdapter(Document)


def parse_document(row: dict[str, Any]) -> KnownDocument | UnrecognizedDocument:
    """Validate a stored row into its document variant."""
    try:
        document = _document_adapter.validate_python(row)
    except PydanticValidationError as e:
        logger.warning(
            f"Document {row.get('id')} failed validation as {row.get('document_type')!r}: "
            f"{e.error_count()} error(s)"
        )
        return UnrecognizedDocument(
            id=str(row["id"]) if row.get("id") is not None else None,
            user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
            document_type=str(row.get("document_type")) if row.get("document_type") else None,
            reason="invalid_shape",
        )

    if isinstance(document, UnrecognizedDocument) and document.reason is None:
        document.reason = "unknown_type"
    return document


def is_known_document(document: Any) -> bool:
    return isinstance(document, (Invoice, Estimate, Contract))


# ============================================================================
# Source lookup and document search
# ============================================================================


class DocumentSelector(str, Enum):
    """Temporal selector spoken alongside a client name."""
    LAST = "last"
    LATEST = "latest"
    RECENT = "recent"


class LookupStatus(str, Enum):
    FOUND = "found"
    NO_DOCUMENT = "no_document"
    CLIENT_NOT_FOUND = "client_not_found"


class SourceDocumentLookup(BaseModel):
    """Outcome of locating a source document from a spoken client name.

    ``no_document`` (client known, nothing matching) and ``client_not_found``
    are distinct outcomes; neither is an error.
    """

    status: LookupStatus
    document: KnownDocument | None = None
    client: Client | None = None
    confidence: float = 0.0
    needs_confirmation: bool = False
    suggestions: list[ClientMatch] = []
    searched_client: str = ""
    searched_document_type: DocumentType | None = None


class DocumentSearchResult(BaseModel):
    """Candidate documents for a spoken client name."""

    documents: list[KnownDocument] = []
    needs_selection: bool = False
    unique_clients: int = 0
    searched_for: str | None = None
    suggestions: list[ClientMatch] = []


class SearchDocumentsRequest(BaseModel):
    """Request body for a document search."""
    client_name: str | None = None
    document_type: DocumentType | None = None
    limit: int | None = Field(default=None, ge=1, le=50)
