"""LLM client module for draft generation.

Routes completions through LiteLLM so the drafting model can be swapped by
configuration. Calls are guarded by the LLM circuit breaker and report token
usage so generated drafts can carry a cost estimate.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

import litellm
from litellm import acompletion

from src.core.circuit_breaker import CircuitBreaker
from src.core.config import settings

litellm.set_verbose = False  # type: ignore[assignment]

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 800

_llm_circuit_breaker = CircuitBreaker("llm", failure_threshold=5, recovery_timeout=60.0)


@dataclass
class LLMCompletion:
    """Text and usage returned by a single completion call."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        """Prompt plus completion tokens."""
        return self.input_tokens + self.output_tokens

    @property
    def cost_usd(self) -> float:
        """Estimated cost from the configured per-million-token rates."""
        return (
            self.input_tokens * settings.LLM_INPUT_TOKEN_COST_PER_M
            + self.output_tokens * settings.LLM_OUTPUT_TOKEN_COST_PER_M
        ) / 1_000_000


def _prepend_system_message(
    system_prompt: str | None,
    messages: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    """Convert a separate system prompt into a leading ``system`` message."""
    if not system_prompt:
        return list(messages)
    return [{"role": "system", "content": system_prompt}, *messages]


class LLMClient:
    """Async LiteLLM client."""

    def __init__(self, model: str | None = None) -> None:
        """Initialize LLM client.

        Args:
            model: LiteLLM model string; defaults to ``settings.LLM_MODEL``.
        """
        self._api_key = settings.ANTHROPIC_API_KEY.get_secret_value()
        self._model = model or settings.LLM_MODEL

    @property
    def model(self) -> str:
        """Model string used for completions."""
        return self._model

    async def complete(
        self,
        messages: list[dict[str, str]],
        system_prompt: str | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = 0.7,
        user_id: str | None = None,
    ) -> LLMCompletion:
        """Generate a completion.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            system_prompt: Optional system prompt.
            max_tokens: Maximum tokens in response.
            temperature: Sampling temperature (0-1).
            user_id: Optional user ID, forwarded as trace metadata.

        Returns:
            LLMCompletion with the response text and token usage.

        Raises:
            CircuitBreakerOpen: If the LLM circuit is open.
            Exception: Any provider error raised by LiteLLM.
        """
        litellm_messages = _prepend_system_message(system_prompt, messages)
        metadata = {"trace_user_id": user_id} if user_id else {}

        logger.debug(
            "Calling LLM via LiteLLM",
            extra={
                "model": self._model,
                "message_count": len(messages),
                "has_system": system_prompt is not None,
            },
        )

        start = time.time()
        response = await _llm_circuit_breaker.call(
            acompletion,
            model=self._model,
            messages=litellm_messages,
            max_tokens=max_tokens,
            temperature=temperature,
            api_key=self._api_key,
            metadata=metadata,
        )
        latency_ms = int((time.time() - start) * 1000)

        text_content = str(response.choices[0].message.content or "")
        usage = getattr(response, "usage", None)
        completion = LLMCompletion(
            text=text_content,
            model=str(getattr(response, "model", None) or self._model),
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )

        logger.debug(
            "LLM response received",
            extra={
                "response_length": len(text_content),
                "latency_ms": latency_ms,
                "total_tokens": completion.total_tokens,
            },
        )
        return completion
