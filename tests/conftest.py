"""Shared fixtures and environment for the test suite."""

import os

# Settings are loaded at import time and validated, so the required secrets
# must exist before any ``src`` module is imported.
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("APP_URL", "http://localhost:3000")

from collections.abc import Iterator  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402

from src.core.circuit_breaker import get_all_circuit_breakers  # noqa: E402
from src.db.supabase import SupabaseClient  # noqa: E402


@pytest.fixture(autouse=True)
def reset_shared_state() -> Iterator[None]:
    """Close every circuit breaker and drop the cached Supabase client."""
    for breaker in get_all_circuit_breakers().values():
        breaker.record_success()
    SupabaseClient.reset_client()
    yield
    SupabaseClient.reset_client()


def _query_result(data: Any) -> MagicMock:
    """Build a PostgREST-style response carrying ``data``."""
    result = MagicMock()
    result.data = data
    return result


@pytest.fixture
def mock_db() -> Iterator[MagicMock]:
    """Patch the Supabase client with a chainable query-builder mock.

    Every builder method returns the same table mock, so a test only needs
    to set ``mock_db.table.return_value.execute.return_value`` (or a
    ``side_effect`` list for sequential queries).
    """
    client = MagicMock()
    table = MagicMock()
    for method in ("select", "eq", "gt", "in_", "order", "limit", "update", "insert", "upsert"):
        getattr(table, method).return_value = table
    client.table.return_value = table
    client.rpc.return_value.execute.return_value = _query_result([])
    SupabaseClient._client = client
    yield client
    SupabaseClient.reset_client()
