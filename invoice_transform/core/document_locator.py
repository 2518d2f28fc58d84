"""Source document lookup from a spoken client name.

Two entry points:
- ``find_source_document``: resolve one client, then pick the newest document
  for a selector ("last", "latest", "recent").
- ``search_documents``: collect candidate documents across every client whose
  name is close enough, for the user to pick from (merge slots, clone sources).
"""

from datetime import datetime, timedelta, timezone

from invoice_transform.core.client_resolver import rank_clients, resolve_client, suggest_clients
from invoice_transform.core.config import get_settings
from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_documents import (
    DocumentSearchResult,
    DocumentSelector,
    DocumentType,
    KnownDocument,
    LookupStatus,
    SourceDocumentLookup,
)
from invoice_transform.core.similarity import NameMatcher, normalize_name
from invoice_transform.db import clients as clients_db
from invoice_transform.db import documents as documents_db
from invoice_transform.db.store import RecordStore

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _within_recent_window(
    documents: list[KnownDocument],
    window_days: int,
    now: datetime,
) -> list[KnownDocument]:
    cutoff = _as_utc(now) - timedelta(days=window_days)
    return [
        doc for doc in documents
        if doc.created_at is not None and _as_utc(doc.created_at) >= cutoff
    ]


def find_source_document(
    store: RecordStore,
    user_id: str,
    client_name: str,
    document_type: DocumentType | None = None,
    selector: DocumentSelector | None = None,
    now: datetime | None = None,
) -> SourceDocumentLookup:
    """
    Find the document a spoken request refers to.

    Args:
        store: Record store
        user_id: Requesting user
        client_name: Client name as transcribed
        document_type: Optional type filter
        selector: Temporal selector; every selector picks the newest match,
            ``recent`` additionally honours RECENT_WINDOW_DAYS when set
        now: Reference time for the recent window (defaults to utcnow)

    Returns:
        SourceDocumentLookup with status ``found``, ``no_document`` (client
        resolved but nothing matches) or ``client_not_found`` (with
        suggestions so the caller can offer corrections)

    Raises:
        DataAccessError: If the store cannot be read
    """
    resolution = resolve_client(store, user_id, client_name)

    if resolution.client is None:
        suggestions = suggest_clients(store, user_id, client_name)
        candidates = list(suggestions.suggestions)
        if suggestions.exact_match is not None:
            candidates.insert(0, suggestions.exact_match)

        logger.info(
            f"Client not found for {client_name!r}; {len(candidates)} suggestion(s)",
            extra={"user_id": str(user_id)},
        )
        return SourceDocumentLookup(
            status=LookupStatus.CLIENT_NOT_FOUND,
            confidence=resolution.confidence,
            suggestions=candidates,
            searched_client=client_name,
            searched_document_type=document_type,
        )

    client = resolution.client
    documents = documents_db.list_client_documents(store, user_id, client.id, document_type)

    window_days = get_settings().RECENT_WINDOW_DAYS
    if selector == DocumentSelector.RECENT and window_days is not None:
        documents = _within_recent_window(
            documents, window_days, now or datetime.now(timezone.utc)
        )

    suggestions = []
    if resolution.needs_confirmation:
        suggestions = suggest_clients(store, user_id, client_name).suggestions

    if not documents:
        logger.info(
            f"No {document_type.value if document_type else 'document'} for client {client.id}",
            extra={"user_id": str(user_id)},
        )
        return SourceDocumentLookup(
            status=LookupStatus.NO_DOCUMENT,
            client=client,
            confidence=resolution.confidence,
            needs_confirmation=resolution.needs_confirmation,
            suggestions=suggestions,
            searched_client=client_name,
            searched_document_type=document_type,
        )

    return SourceDocumentLookup(
        status=LookupStatus.FOUND,
        document=documents[0],
        client=client,
        confidence=resolution.confidence,
        needs_confirmation=resolution.needs_confirmation,
        suggestions=suggestions,
        searched_client=client_name,
        searched_document_type=document_type,
    )


def search_documents(
    store: RecordStore,
    user_id: str,
    client_name: str | None,
    document_type: DocumentType | None = None,
    limit: int | None = None,
) -> DocumentSearchResult:
    """
    Candidate documents for every client whose name is a close match.

    An empty ``client_name`` searches all of the user's clients.
    """
    settings = get_settings()
    if limit is None:
        limit = settings.DOCUMENT_SEARCH_LIMIT

    clients = clients_db.list_clients(store, user_id)
    if not clients:
        return DocumentSearchResult(searched_for=client_name)

    if normalize_name(client_name):
        matcher = NameMatcher(min_score=settings.DOCUMENT_SEARCH_MIN_SIMILARITY)
        matching = [sc.item for sc in matcher.find_similar_in_corpus(client_name, clients)]
        suggestions = rank_clients(clients, client_name).suggestions
    else:
        matching = clients
        suggestions = []

    documents: list[KnownDocument] = []
    for client in matching:
        documents.extend(
            documents_db.list_client_documents(store, user_id, client.id, document_type)
        )

    documents.sort(key=documents_db.sort_key, reverse=True)
    documents = documents[: max(limit, 0)]

    logger.debug(
        f"Document search for {client_name!r}: {len(matching)} client(s), "
        f"{len(documents)} document(s)"
    )

    return DocumentSearchResult(
        documents=documents,
        needs_selection=len(documents) > 1,
        unique_clients=len({doc.client_id for doc in documents}),
        searched_for=client_name,
        suggestions=suggestions,
    )
