"""API endpoints for client name resolution."""

from fastapi import APIRouter, Depends, HTTPException

from invoice_transform.core.auth_middleware import get_current_user_id
from invoice_transform.core.client_resolver import resolve_client, suggest_clients
from invoice_transform.core.errors import DataAccessError
from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_clients import (
    ClientResolution,
    ClientSuggestions,
    ResolveClientRequest,
    SuggestClientsRequest,
)
from invoice_transform.db.store import RecordStore, get_store

logger = get_logger(__name__)

router = APIRouter(prefix="/clients")


@router.post("/resolve", response_model=ClientResolution)
def resolve(
    request: ResolveClientRequest,
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """
    Resolve a spoken client name to the best-matching client.

    Raises:
        HTTPException 503: If the client list cannot be read
    """
    try:
        return resolve_client(store, user_id, request.name)

    except DataAccessError as e:
        logger.error(f"Client resolution failed: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Client data is unavailable") from e


@router.post("/suggest", response_model=ClientSuggestions)
def suggest(
    request: SuggestClientsRequest,
    user_id: str = Depends(get_current_user_id),
    store: RecordStore = Depends(get_store),
):
    """Ranked client suggestions for correcting a misheard name."""
    try:
        return suggest_clients(store, user_id, request.name, request.limit)

    except DataAccessError as e:
        logger.error(f"Client suggestions failed: {e}", extra={"user_id": user_id})
        raise HTTPException(status_code=503, detail="Client data is unavailable") from e
