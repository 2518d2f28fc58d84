"""API endpoints for locating source documents."""

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from invoice_transform.core.auth_middleware import get_current_user_id
from invoice_transform.core.document_locator import find_source_document, search_documents
from invoice_transform.core.errors import DataAccessError
from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_documents import (
    DocumentSearchResult,
    DocumentSelector,
    DocumentType,
    LookupStatus,
    SearchDocumentsRequest,
    SourceDocumentLookup,
)
from invoice_transform.db.store import RecordStore, get_store

logger = get_logger(__name__)

router = APIRouter(prefix="/documents")


@router.get("/source", response_model=SourceDocumentLookup)
def find_source(
    client_name: str = Query(..., min_length=1, description="Client name as transcribed"),
    document_type: DocumentType | None = Query(None, description="Optional type filter"),
    selector: DocumentSelector | None = Query(None, description="last, latest or recent"),
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """
    Find the document a spoken request refers to.

    Returns 200 with status ``found`` or ``no_document`` when the client is
    known, and 404 with status ``client_not_found`` plus suggestions when it
    is not.

    Raises:
        HTTPException 503: If the store cannot be read
    """
    try:
        lookup = find_source_document(store, user_id, client_name, document_type, selector)

    except DataAccessError as e:
        logger.error(f"Source document lookup failed: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Document data is unavailable") from e

    if lookup.status == LookupStatus.CLIENT_NOT_FOUND:
        return JSONResponse(content=lookup.model_dump(mode="json"), status_code=404)

    return lookup


@router.post("/search", response_model=DocumentSearchResult)
def search(
    request: SearchDocumentsRequest,
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """Candidate documents across every client whose name is a close match."""
    try:
        return search_documents(
            store, user_id, request.client_name, request.document_type, request.limit
        )

    except DataAccessError as e:
        logger.error(f"Document search failed: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Document data is unavailable") from e
