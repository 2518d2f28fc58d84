"""Database operations for invoices, estimates and contracts.

Invoices and estimates share the ``invoices`` table (told apart by
``document_type``); contracts live in their own ``contracts`` table.
"""

import re
from typing import Any

from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_documents import (
    DocumentType,
    KnownDocument,
    UnrecognizedDocument,
    is_known_document,
    parse_document,
)
from invoice_transform.db.store import CONTRACTS_TABLE, INVOICES_TABLE, RecordStore

logger = get_logger(__name__)

DOCUMENT_NUMBER_PREFIXES = {
    DocumentType.INVOICE: "INV",
    DocumentType.ESTIMATE: "EST",
    DocumentType.CONTRACT: "CON",
}


def table_for(document_type: DocumentType | str) -> str:
    """Name of the table holding documents of this type."""
    if DocumentType(document_type) == DocumentType.CONTRACT:
        return CONTRACTS_TABLE
    return INVOICES_TABLE


def _parse_row(row: dict[str, Any], table: str) -> KnownDocument | UnrecognizedDocument:
    if table == CONTRACTS_TABLE and not row.get("document_type"):
        row = {**row, "document_type": DocumentType.CONTRACT.value}
    return parse_document(row)


def sort_key(document: KnownDocument) -> float:
    return document.created_at.timestamp() if document.created_at else float("-inf")


def list_client_documents(
    store: RecordStore,
    user_id: str,
    client_id: str,
    document_type: DocumentType | None = None,
) -> list[KnownDocument]:
    """
    List a client's documents, newest first.

    Args:
        store: Record store
        user_id: Owning user
        client_id: Client whose documents to list
        document_type: Optional type filter; None searches every table

    Returns:
        Known documents only; unrecognized rows are logged and skipped

    Raises:
        DataAccessError: If the store cannot be read
    """
    if document_type is None:
        queries = [
            (INVOICES_TABLE, {"client_id": client_id}),
            (CONTRACTS_TABLE, {"client_id": client_id}),
        ]
    elif DocumentType(document_type) == DocumentType.CONTRACT:
        queries = [(CONTRACTS_TABLE, {"client_id": client_id})]
    else:
        queries = [
            (INVOICES_TABLE, {"client_id": client_id, "document_type": DocumentType(document_type).value})
        ]

    documents: list[KnownDocument] = []
    for table, filters in queries:
        rows = store.select(
            table,
            user_id=user_id,
            filters=filters,
            order_by="created_at",
            descending=True,
        )
        for row in rows:
            document = _parse_row(row, table)
            if not is_known_document(document):
                logger.warning(
                    f"Skipping unrecognized document {row.get('id')} in {table}: {document.reason}"
                )
                continue
            if document.user_id != str(user_id):
                continue
            documents.append(document)

    documents.sort(key=sort_key, reverse=True)
    return documents


def get_document(
    store: RecordStore,
    document_id: str,
    user_id: str,
    document_type: DocumentType,
) -> KnownDocument | UnrecognizedDocument | None:
    """Get a single document by ID from the table that holds its type."""
    table = table_for(document_type)
    row = store.get(table, document_id, user_id=user_id)

    if not row:
        return None

    return _parse_row(row, table)


def insert_document(store: RecordStore, row: dict[str, Any]) -> KnownDocument:
    """
    Insert a new document row.

    Raises:
        DataAccessError: If the insert fails
        ValueError: If the stored row does not read back as a known document
    """
    table = table_for(row["document_type"])
    if table == CONTRACTS_TABLE:
        row = {k: v for k, v in row.items() if k != "document_type"}

    inserted = store.insert(table, row)
    document = _parse_row(inserted, table)

    if not is_known_document(document):
        raise ValueError(f"Inserted document {inserted.get('id')} did not validate")

    logger.info(f"Inserted {document.document_type} {document.id} into {table}")
    return document


def delete_document(
    store: RecordStore,
    document_id: str,
    user_id: str,
    document_type: DocumentType,
) -> bool:
    """Delete a document. Returns True if a row was removed."""
    return store.delete(table_for(document_type), document_id, user_id=user_id)


def next_document_number(
    store: RecordStore,
    user_id: str,
    document_type: DocumentType,
    year: int,
) -> str:
    """
    Next sequential number for a user, type and year, e.g. ``INV-2026-0042``.

    Raises:
        DataAccessError: If the store cannot be read
    """
    document_type = DocumentType(document_type)
    prefix = DOCUMENT_NUMBER_PREFIXES[document_type]
    pattern = re.compile(rf"^{prefix}-{year}-(\d+)$")

    table = table_for(document_type)
    filters = None if table == CONTRACTS_TABLE else {"document_type": document_type.value}
    rows = store.select(table, user_id=user_id, filters=filters)

    next_number = 1
    for row in rows:
        match = pattern.match(row.get("document_number") or "")
        if match:
            next_number = max(next_number, int(match.group(1)) + 1)

    return f"{prefix}-{year}-{next_number:04d}"
