"""Supabase client module for database operations."""

import logging
from collections.abc import Callable
from typing import Any

from src.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from src.core.config import settings
from src.core.exceptions import DatabaseError
from supabase import Client, create_client

logger = logging.getLogger(__name__)

_supabase_circuit_breaker = CircuitBreaker("supabase")


class SupabaseClient:
    """Singleton Supabase client for backend operations."""

    _client: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create the Supabase client singleton.

        Returns:
            Initialized Supabase client.

        Raises:
            DatabaseError: If client initialization fails.
        """
        if cls._client is None:
            try:
                cls._client = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                logger.exception("Failed to initialize Supabase client")
                raise DatabaseError(f"Failed to initialize database connection: {e}") from e
        return cls._client

    @classmethod
    def reset_client(cls) -> None:
        """Reset the client singleton (useful for testing)."""
        cls._client = None

    @classmethod
    async def run(cls, operation: str, query: Callable[[Client], Any]) -> Any:
        """Execute a query builder chain off the event loop.

        ``query`` receives the client and must end in ``.execute()``. The
        call goes through the Supabase circuit breaker; any failure other
        than an open circuit is wrapped in ``DatabaseError``.

        Args:
            operation: Short description used in logs and error messages.
            query: Callable building and executing the PostgREST request.

        Returns:
            The PostgREST response object.

        Raises:
            CircuitBreakerOpen: If Supabase is currently failing fast.
            DatabaseError: If the query fails.
        """
        client = cls.get_client()
        try:
            return await _supabase_circuit_breaker.call_in_thread(query, client)
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.warning("Supabase %s failed: %s", operation, e)
            raise DatabaseError(f"Failed to {operation}: {e}") from e

