"""Merge reconciliation.

A merge combines documents picked independently per selection slot (each
slot is its own spoken client name), so sources may belong to different
clients. Line items are concatenated in slot order, then item order.
"""

import uuid

from invoice_transform.core.document_locator import search_documents
from invoice_transform.core.document_totals import normalize_line_item
from invoice_transform.core.errors import TransformValidationError
from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_documents import DocumentType, KnownDocument, LineItem
from invoice_transform.core.schemas_transform import (
    MergeSourceSelection,
    TransformConfig,
    TransformOperation,
)
from invoice_transform.db.store import RecordStore

logger = get_logger(__name__)


def combine_line_items(sources: list[KnownDocument]) -> list[LineItem]:
    """
    Concatenate line items from every source.

    Each item gets a fresh id so items from different sources never collide,
    and its total is recomputed when the stored one is missing or non-finite.
    """
    combined: list[LineItem] = []
    for source in sources:
        for item in source.line_items:
            normalized = normalize_line_item(item, len(combined))
            combined.append(normalized.model_copy(update={"id": str(uuid.uuid4())}))
    return combined


def all_merge_sources_selected(selections: list[MergeSourceSelection]) -> bool:
    """True when there is at least one slot and every slot has a document."""
    return bool(selections) and all(slot.selected_document_id for slot in selections)


def build_merge_selection(
    store: RecordStore,
    user_id: str,
    client_name: str,
    document_type: DocumentType | None = DocumentType.INVOICE,
    limit: int | None = None,
) -> MergeSourceSelection:
    """
    Resolve one merge slot from a spoken client name.

    A single candidate is selected automatically; otherwise the caller must
    pick one with ``select_merge_source``.

    Raises:
        DataAccessError: If the store cannot be read
    """
    result = search_documents(store, user_id, client_name, document_type, limit)

    selected = result.documents[0].id if len(result.documents) == 1 else None
    return MergeSourceSelection(
        client_name=client_name,
        document_type=document_type,
        candidates=result.documents,
        selected_document_id=selected,
        suggestions=result.suggestions,
    )


def select_merge_source(
    selections: list[MergeSourceSelection],
    index: int,
    document_id: str,
) -> list[MergeSourceSelection]:
    """
    Pick ``document_id`` for slot ``index``. Returns a new slot list.

    Raises:
        TransformValidationError: If the slot does not exist or the document
            is not one of its candidates
    """
    if not 0 <= index < len(selections):
        raise TransformValidationError(f"Merge slot {index} does not exist")

    slot = selections[index]
    if slot.candidates and document_id not in {doc.id for doc in slot.candidates}:
        raise TransformValidationError(
            f"Document {document_id} is not a candidate for {slot.client_name!r}"
        )

    updated = list(selections)
    updated[index] = slot.model_copy(update={"selected_document_id": document_id})
    return updated


def merge_config_from_selections(
    selections: list[MergeSourceSelection],
    source_document_type: DocumentType = DocumentType.INVOICE,
    target_document_type: DocumentType | None = None,
    client_override: str | None = None,
) -> TransformConfig:
    """
    Build the merge TransformConfig for fully selected slots.

    Raises:
        TransformValidationError: If any slot has no selected document
    """
    if not selections:
        raise TransformValidationError("A merge needs at least one source selection")

    if not all_merge_sources_selected(selections):
        unresolved = [slot.client_name for slot in selections if not slot.selected_document_id]
        raise TransformValidationError(
            f"Every merge source must be selected first (unresolved: {unresolved})"
        )

    return TransformConfig(
        operation=TransformOperation.MERGE,
        source_document_ids=[slot.selected_document_id for slot in selections],
        source_document_type=source_document_type,
        target_document_type=target_document_type,
        client_override=client_override,
    )
