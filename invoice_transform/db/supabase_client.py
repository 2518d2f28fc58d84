"""Supabase client initialization."""

from functools import lru_cache

from supabase import Client, create_client

from invoice_transform.core.config import get_settings
from invoice_transform.core.errors import DataAccessError


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """
    Get Supabase client instance (cached).

    Core operations never call this directly; the client is wrapped in a
    SupabaseStore and passed in explicitly.

    Returns:
        Supabase client configured with service role key

    Raises:
        DataAccessError: If client initialization fails
    """
    try:
        settings = get_settings()
        client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)
        return client
    except Exception as e:
        raise DataAccessError(f"Failed to initialize Supabase client: {e}") from e
