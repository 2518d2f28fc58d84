"""Pytest configuration and fixtures."""

import os

import pytest

from tests.fakes.fake_store import FakeStore
from tests.fixtures_transform import (
    CONTRACT,
    ESTIMATE,
    FOREIGN_INVOICE,
    INVOICE_A,
    INVOICE_B,
    SAMPLE_CLIENTS,
)

# Settings are read at import time by the logging setup
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("TRANSFORM_ENGINE_ENV", "test")


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["TRANSFORM_ENGINE_ENV"] = "test"


@pytest.fixture
def settings_env(monkeypatch):
    """Set environment overrides and refresh the cached settings."""
    from invoice_transform.core.config import get_settings

    def _apply(**values):
        for key, value in values.items():
            monkeypatch.setenv(key, str(value))
        get_settings.cache_clear()

    yield _apply
    get_settings.cache_clear()


@pytest.fixture
def store():
    """Empty in-memory store."""
    return FakeStore()


@pytest.fixture
def seeded_store():
    """In-memory store holding the sample clients and documents."""
    fake = FakeStore()
    fake.seed("clients", *SAMPLE_CLIENTS)
    fake.seed("invoices", INVOICE_A, INVOICE_B, ESTIMATE, FOREIGN_INVOICE)
    fake.seed("contracts", CONTRACT)
    return fake


@pytest.fixture
def api_store(seeded_store):
    """Route the HTTP layer's store dependency to the seeded fake."""
    from invoice_transform.db.store import get_store
    from invoice_transform.main import app

    app.dependency_overrides[get_store] = lambda: seeded_store
    yield seeded_store
    app.dependency_overrides.clear()
