"""Tenant-scoped record store.

Core operations receive a ``RecordStore`` explicitly instead of reaching for
a module-level client, so they can run against Supabase in production and an
in-memory fake in tests.

Every read and write is scoped by ``user_id``. ``update`` accepts an
``expected`` guard (column -> value, or list of allowed values) that turns the
write into a compare-and-set; it returns ``None`` when no row matched.
"""

from typing import Any, Protocol

from supabase import Client

from invoice_transform.core.errors import DataAccessError
from invoice_transform.core.logging import get_logger
from invoice_transform.db.supabase_client import get_supabase

logger = get_logger(__name__)

CLIENTS_TABLE = "clients"
INVOICES_TABLE = "invoices"
CONTRACTS_TABLE = "contracts"
TRANSFORM_JOBS_TABLE = "transform_jobs"


class RecordStore(Protocol):
    """Select / get / insert / update / delete over tenant-owned rows."""

    def select(
        self,
        table: str,
        *,
        user_id: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]: ...

    def get(self, table: str, record_id: str, *, user_id: str) -> dict[str, Any] | None: ...

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]: ...

    def update(
        self,
        table: str,
        record_id: str,
        values: dict[str, Any],
        *,
        user_id: str,
        expected: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None: ...

    def delete(self, table: str, record_id: str, *, user_id: str) -> bool: ...


def _apply_filters(query, filters: dict[str, Any] | None):
    for column, value in (filters or {}).items():
        if isinstance(value, (list, tuple, set, frozenset)):
            query = query.in_(column, list(value))
        else:
            query = query.eq(column, value)
    return query


class SupabaseStore:
    """RecordStore backed by a Supabase (PostgREST) client."""

    def __init__(self, client: Client):
        self.client = client

    def _execute(self, query, table: str, operation: str):
        try:
            return query.execute()
        except Exception as e:
            logger.error(f"Store {operation} on {table} failed: {e}")
            raise DataAccessError(
                f"Failed to {operation} {table}: {e}", table=table, operation=operation
            ) from e

    def select(
        self,
        table: str,
        *,
        user_id: str,
        filters: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        query = self.client.table(table).select("*").eq("user_id", str(user_id))
        query = _apply_filters(query, filters)

        if order_by:
            query = query.order(order_by, desc=descending)

        if limit is not None:
            query = query.range(offset, offset + limit - 1)

        response = self._execute(query, table, "select")
        return response.data or []

    def get(self, table: str, record_id: str, *, user_id: str) -> dict[str, Any] | None:
        query = (
            self.client.table(table)
            .select("*")
            .eq("id", str(record_id))
            .eq("user_id", str(user_id))
            .limit(1)
        )

        response = self._execute(query, table, "get")
        return response.data[0] if response.data else None

    def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        response = self._execute(self.client.table(table).insert(row), table, "insert")

        if not response.data:
            raise DataAccessError(f"No data returned from insert into {table}", table, "insert")

        return response.data[0]

    def update(
        self,
        table: str,
        record_id: str,
        values: dict[str, Any],
        *,
        user_id: str,
        expected: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        query = (
            self.client.table(table)
            .update(values)
            .eq("id", str(record_id))
            .eq("user_id", str(user_id))
        )
        query = _apply_filters(query, expected)

        response = self._execute(query, table, "update")
        return response.data[0] if response.data else None

    def delete(self, table: str, record_id: str, *, user_id: str) -> bool:
        query = (
            self.client.table(table)
            .delete()
            .eq("id", str(record_id))
            .eq("user_id", str(user_id))
        )

        response = self._execute(query, table, "delete")
        return len(response.data or []) > 0


def get_store() -> RecordStore:
    """FastAPI dependency: a store over the cached Supabase client."""
    return SupabaseStore(get_supabase())
