"""Client for the generic generate-response endpoint (last drafting tier)."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from src.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from src.core.config import settings
from src.core.exceptions import DraftGenerationError

logger = logging.getLogger(__name__)

_fallback_circuit_breaker = CircuitBreaker("generate_response", failure_threshold=3)

DEFAULT_TONE = "professional"


@dataclass
class GeneratedReply:
    """Reply fields returned by the generic endpoint."""

    subject: str | None
    body: str
    confidence: float | None


class GenericDraftGenerator:
    """Calls the generic completion endpoint with a message's raw content."""

    def __init__(self, url: str | None = None, timeout: float | None = None) -> None:
        self._url = url or settings.generate_response_url
        self._timeout = timeout or settings.FALLBACK_GENERATION_TIMEOUT_SECONDS

    async def generate(
        self,
        original_email: str,
        sender_email: str,
        email_id: str,
        tone: str = DEFAULT_TONE,
        include_context: bool = True,
    ) -> GeneratedReply:
        """Request a reply draft.

        Args:
            original_email: Raw or plain content of the inbound message.
            sender_email: Address the message came from.
            email_id: Id of the inbound message.
            tone: Requested tone.
            include_context: Whether the endpoint may pull conversation context.

        Returns:
            The generated reply.

        Raises:
            DraftGenerationError: If the endpoint is unreachable, open-circuited,
                or answers with a non-success status.
        """
        payload: dict[str, Any] = {
            "originalEmail": original_email,
            "senderEmail": sender_email,
            "tone": tone,
            "customInstructions": "",
            "emailId": email_id,
            "settings": {"includeContext": include_context},
            "includeDrafting": True,
        }

        try:
            response = await _fallback_circuit_breaker.call(self._post, payload)
        except CircuitBreakerOpen as e:
            raise DraftGenerationError(details={"cause": str(e)}) from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Generic draft endpoint returned %d for email %s",
                e.response.status_code,
                email_id,
            )
            raise DraftGenerationError(
                details={"status_code": e.response.status_code}
            ) from e
        except httpx.HTTPError as e:
            logger.warning("Generic draft endpoint unreachable for email %s: %s", email_id, e)
            raise DraftGenerationError(details={"cause": str(e)}) from e

        data = response.json()
        confidence = data.get("confidence")
        return GeneratedReply(
            subject=data.get("subject") or None,
            body=data.get("response") or data.get("body") or "",
            confidence=float(confidence)
            if isinstance(confidence, (int, float)) and not isinstance(confidence, bool)
            else None,
        )

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self._url, json=payload)
            response.raise_for_status()
            return response


_generator: GenericDraftGenerator | None = None


def get_generic_draft_generator() -> GenericDraftGenerator:
    """Get the singleton GenericDraftGenerator instance."""
    global _generator
    if _generator is None:
        _generator = GenericDraftGenerator()
    return _generator
