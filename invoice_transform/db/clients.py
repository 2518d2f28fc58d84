"""Database operations for clients table."""

from invoice_transform.core.logging import get_logger
from invoice_transform.core.schemas_clients import Client
from invoice_transform.db.store import CLIENTS_TABLE, RecordStore

logger = get_logger(__name__)


def list_clients(store: RecordStore, user_id: str) -> list[Client]:
    """
    List every client owned by a user, newest first.

    Rows that do not belong to ``user_id`` are dropped even if the store
    returned them.

    Raises:
        DataAccessError: If the store cannot be read
    """
    rows = store.select(
        CLIENTS_TABLE,
        user_id=user_id,
        order_by="created_at",
        descending=True,
    )

    clients = []
    for row in rows:
        if str(row.get("user_id")) != str(user_id):
            logger.warning(f"Dropping client {row.get('id')} outside the requesting tenant")
            continue
        clients.append(Client.model_validate(row))

    return clients


def get_client(store: RecordStore, client_id: str, user_id: str) -> Client | None:
    """Get a single client by ID, scoped to its owner."""
    row = store.get(CLIENTS_TABLE, client_id, user_id=user_id)

    if not row or str(row.get("user_id")) != str(user_id):
        return None

    return Client.model_validate(row)
