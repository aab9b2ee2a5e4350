"""Circuit breaker guarding calls to Supabase, the LLM and the completion endpoint."""

import asyncio
import enum
import logging
import threading
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_registry: dict[str, "CircuitBreaker"] = {}


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """Raised when a call is attempted on an open circuit."""

    def __init__(self, service_name: str) -> None:
        self.service_name = service_name
        super().__init__(f"Circuit breaker is open for {service_name}")


def get_all_circuit_breakers() -> dict[str, "CircuitBreaker"]:
    """Return every breaker created in this process, keyed by service name."""
    return dict(_registry)


class CircuitBreaker:
    """Consecutive-failure circuit breaker.

    Opens after ``failure_threshold`` consecutive failures, lets a single
    probe through once ``recovery_timeout`` seconds have elapsed (half-open),
    and closes again on the first success.

    Args:
        service_name: Identifier for the protected service (used in logs).
        failure_threshold: Number of consecutive failures before opening.
        recovery_timeout: Seconds to wait before half-opening.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
    ) -> None:
        self.service_name = service_name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout

        self._failure_count = 0
        self._last_failure_time = 0.0
        self._state = CircuitState.CLOSED
        self._lock = threading.Lock()
        _registry[service_name] = self

    @property
    def state(self) -> CircuitState:
        """Current circuit state, accounting for recovery timeout."""
        with self._lock:
            if self._state == CircuitState.OPEN and self._last_failure_time > 0:
                elapsed = time.monotonic() - self._last_failure_time
                if elapsed >= self.recovery_timeout:
                    self._state = CircuitState.HALF_OPEN
                    logger.warning(
                        "Circuit breaker HALF_OPEN for %s (testing recovery)",
                        self.service_name,
                    )
            return self._state

    @property
    def failure_count(self) -> int:
        """Consecutive failures recorded since the last success."""
        return self._failure_count

    def check(self) -> None:
        """Raise ``CircuitBreakerOpen`` if calls are currently refused."""
        if self.state == CircuitState.OPEN:
            raise CircuitBreakerOpen(self.service_name)

    def record_success(self) -> None:
        """Reset the failure count and close the circuit."""
        with self._lock:
            if self._state != CircuitState.CLOSED:
                logger.warning("Circuit breaker CLOSED for %s (recovered)", self.service_name)
            self._failure_count = 0
            self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Count a failure, opening the circuit once the threshold is hit."""
        with self._lock:
            self._failure_count += 1
            self._last_failure_time = time.monotonic()
            if self._failure_count >= self.failure_threshold or self._state == CircuitState.HALF_OPEN:
                if self._state != CircuitState.OPEN:
                    logger.warning(
                        "Circuit breaker OPEN for %s after %d consecutive failures",
                        self.service_name,
                        self._failure_count,
                    )
                self._state = CircuitState.OPEN

    async def call(self, func: Callable[..., Awaitable[T]], *args: object, **kwargs: object) -> T:
        """Await ``func`` through the breaker.

        Raises:
            CircuitBreakerOpen: If the circuit is open.
            Exception: Whatever ``func`` raised, after recording the failure.
        """
        self.check()
        try:
            result = await func(*args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    async def call_in_thread(self, func: Callable[..., T], *args: object, **kwargs: object) -> T:
        """Run a blocking ``func`` in a worker thread through the breaker.

        Used for the synchronous supabase query builder so concurrent
        fan-out does not block the event loop.
        """
        self.check()
        try:
            result = await asyncio.to_thread(func, *args, **kwargs)
        except Exception:
            self.record_failure()
            raise
        self.record_success()
        return result
