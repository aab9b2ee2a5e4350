"""Draft retrieval with three-tier fallback.

Serves a reply draft for an inbound message from the first tier that
produces one:

1. cache: a ``ready``, unexpired row in ``email_drafts_cache``
2. realtime: the learning strategy generates (and caches) a draft
3. fallback: the generic generate-response endpoint drafts from raw content

A cache hit is marked ``used`` and credits its matched patterns. Only a
failure of the last tier reaches the caller.
"""

import logging
import time
from datetime import UTC, datetime
from typing import Protocol

from src.core.config import settings
from src.core.exceptions import DraftGenerationError, MissingParameterError, NotFoundError
from src.models.email_draft import (
    DraftMetadata,
    DraftPayload,
    DraftRecord,
    DraftRetrievalResult,
    DraftSource,
    LearningDraftResult,
)
from src.services.draft_cache import DraftCacheStore, get_draft_cache_store
from src.services.email_learning_service import get_email_learning_service
from src.services.email_messages import get_source_message
from src.services.fallback_generation import GenericDraftGenerator, get_generic_draft_generator
from src.services.pattern_usage import PatternUsageTracker, get_pattern_usage_tracker

logger = logging.getLogger(__name__)

REALTIME_MODEL = "learning-based"
FALLBACK_MODEL = "fallback-api"
DEFAULT_TONE = "professional"


class DraftGenerationStrategy(Protocol):
    """Anything that can generate and cache a draft for a message."""

    async def generate_background_draft(
        self,
        message_id: str,
        user_id: str,
        organization_id: str | None = None,
    ) -> LearningDraftResult: ...


class DraftRetrievalService:
    """Chains the cache, learning, and generic drafting tiers."""

    def __init__(
        self,
        strategy: DraftGenerationStrategy | None = None,
        generator: GenericDraftGenerator | None = None,
        store: DraftCacheStore | None = None,
        tracker: PatternUsageTracker | None = None,
    ) -> None:
        self._strategy = strategy or get_email_learning_service()
        self._generator = generator or get_generic_draft_generator()
        self._store = store or get_draft_cache_store()
        self._tracker = tracker or get_pattern_usage_tracker()

    async def get_draft(self, message_id: str | None, user_id: str) -> DraftRetrievalResult:
        """Return a draft reply for ``message_id``.

        Args:
            message_id: Inbound message to reply to.
            user_id: Authenticated user; every tier is scoped to them.

        Returns:
            The draft with the tier that produced it.

        Raises:
            MissingParameterError: If ``message_id`` is empty.
            NotFoundError: If no tier produced a draft and the message does
                not exist for this user.
            DatabaseError: If the message could not be loaded for the last tier.
            CircuitBreakerOpen: If Supabase is failing fast at the last tier.
            DraftGenerationError: If the generic endpoint fails.
        """
        if not message_id or not message_id.strip():
            raise MissingParameterError("Email ID is required", parameter="emailId")

        cached = await self._store.find_ready_draft(message_id, user_id)
        if cached is not None:
            return await self._serve_cached(cached, user_id)

        started = time.monotonic()

        realtime = await self._try_realtime(message_id, user_id, started)
        if realtime is not None:
            return realtime

        return await self._generate_fallback(message_id, user_id, started)

    async def _serve_cached(self, draft: DraftRecord, user_id: str) -> DraftRetrievalResult:
        await self._store.mark_used(draft.id)
        if draft.matched_patterns:
            await self._tracker.emit_all(draft.matched_patterns, was_successful=True)

        logger.info(
            "Serving cached draft",
            extra={"draft_id": draft.id, "message_id": draft.message_id, "user_id": user_id},
        )
        return DraftRetrievalResult(
            source=DraftSource.CACHE,
            draft=DraftPayload(
                id=draft.id,
                subject=draft.subject,
                body=draft.body,
                confidence=draft.confidence_score,
                tone=draft.tone,
                generation_model=draft.generation_model,
                matched_patterns=draft.matched_patterns,
                pattern_match_score=draft.pattern_match_score,
                was_fallback=draft.fallback_generation,
                generated_at=draft.generated_at,
            ),
            metadata=DraftMetadata(
                generation_cost_usd=draft.generation_cost_usd,
                generation_tokens=draft.generation_tokens,
                cache_hit=True,
                retrieval_time_ms=0,
            ),
        )

    async def _try_realtime(
        self, message_id: str, user_id: str, started: float
    ) -> DraftRetrievalResult | None:
        try:
            result = await self._strategy.generate_background_draft(message_id, user_id, None)
        except Exception as e:
            logger.warning(
                "Realtime draft generation failed, using fallback: %s",
                e,
                extra={"message_id": message_id, "user_id": user_id},
            )
            return None

        if not result.success or result.draft is None:
            logger.info(
                "Realtime draft unavailable: %s",
                result.error,
                extra={"message_id": message_id, "user_id": user_id},
            )
            return None

        draft = result.draft
        return DraftRetrievalResult(
            source=DraftSource.REALTIME,
            draft=DraftPayload(
                id=draft.id,
                subject=draft.subject,
                body=draft.body,
                confidence=draft.confidence,
                tone=DEFAULT_TONE,
                generation_model=REALTIME_MODEL,
                matched_patterns=draft.matched_patterns,
                pattern_match_score=0.0,
                was_fallback=not draft.matched_patterns,
                generated_at=datetime.now(UTC),
            ),
            metadata=DraftMetadata(
                cache_hit=False,
                retrieval_time_ms=_elapsed_ms(started),
            ),
        )

    async def _generate_fallback(
        self, message_id: str, user_id: str, started: float
    ) -> DraftRetrievalResult:
        message = await get_source_message(message_id, user_id)
        if message is None:
            raise NotFoundError("Email")

        try:
            reply = await self._generator.generate(
                original_email=message.content,
                sender_email=message.sender,
                email_id=message_id,
                tone=DEFAULT_TONE,
            )
        except DraftGenerationError:
            logger.error(
                "All draft tiers failed",
                extra={"message_id": message_id, "user_id": user_id},
            )
            raise

        confidence = (
            reply.confidence
            if reply.confidence is not None
            else settings.FALLBACK_DRAFT_CONFIDENCE
        )
        return DraftRetrievalResult(
            source=DraftSource.FALLBACK,
            draft=DraftPayload(
                id=f"fallback-{int(time.time() * 1000)}",
                subject=reply.subject or message.reply_subject,
                body=reply.body,
                confidence=confidence,
                tone=DEFAULT_TONE,
                generation_model=FALLBACK_MODEL,
                matched_patterns=[],
                pattern_match_score=0.0,
                was_fallback=True,
                generated_at=datetime.now(UTC),
            ),
            metadata=DraftMetadata(
                cache_hit=False,
                retrieval_time_ms=_elapsed_ms(started),
            ),
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


_service: DraftRetrievalService | None = None


def get_draft_retrieval_service() -> DraftRetrievalService:
    """Get the singleton DraftRetrievalService instance."""
    global _service
    if _service is None:
        _service = DraftRetrievalService()
    return _service
