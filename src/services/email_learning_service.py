"""Learning-based draft generation.

Drafts a reply to an inbound message from the user's learned response
patterns. Candidate patterns come from the ``find_best_pattern_match`` RPC
and are rescored locally:

- keyword hits (40%): share of the pattern's trigger keywords found in the message
- pattern confidence (30%)
- historical success rate (20%)
- recency (10%): decays linearly to zero over 30 days since last use

When the best match clears the user's ``minimum_pattern_confidence`` the
pattern template steers generation; otherwise a generic reply is drafted.
The result is written to the draft cache as ``ready``.
"""

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

from cachetools import TTLCache

from src.core.config import settings
from src.core.llm import LLMClient, LLMCompletion
from src.db.supabase import SupabaseClient
from src.models.email_draft import LearnedDraft, LearningDraftResult, PatternMatch
from src.services.draft_cache import DraftCacheStore, get_draft_cache_store
from src.services.email_messages import SourceMessage, get_source_message
from src.services.pattern_usage import PatternUsageTracker, get_pattern_usage_tracker

logger = logging.getLogger(__name__)

LEARNING_CONFIG_TABLE = "user_email_learning_config"
PATTERNS_TABLE = "email_patterns"
FIND_PATTERN_MATCH_RPC = "find_best_pattern_match"

LEARNING_CONFIG_DEFAULTS: dict[str, Any] = {
    "max_emails_to_analyze": 5000,
    "learning_email_types": ["sent", "received"],
    "date_range_days": 365,
    "excluded_senders": [],
    "excluded_domains": [],
    "learning_sensitivity": "balanced",
    "minimum_pattern_confidence": 0.6,
    "pattern_merge_threshold": 0.8,
    "auto_draft_enabled": True,
    "auto_draft_confidence_threshold": 0.7,
}

MIN_MATCH_SCORE = 0.3
MAX_PATTERN_MATCHES = 3
RECENCY_WINDOW_DAYS = 30
MAX_PROMPT_CONTENT_CHARS = 1000
PATTERN_CONFIDENCE_BOOST = 0.1
PATTERN_CONFIDENCE_CAP = 0.95
GENERIC_CONFIDENCE = 0.6

PATTERN_SYSTEM_PROMPT = (
    "You are an expert email assistant. "
    "Generate professional email responses based on learned patterns."
)
GENERIC_SYSTEM_PROMPT = (
    "You are a professional email assistant. Generate appropriate email responses."
)

RESPONSE_FORMAT = """Return the response in this format:
SUBJECT: [response subject]
BODY: [response body]"""


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def calculate_match_score(
    email_content: str, pattern: dict[str, Any], now: datetime | None = None
) -> float:
    """Score how well a stored pattern fits an inbound message.

    Args:
        email_content: Body of the inbound message.
        pattern: ``email_patterns`` row.
        now: Reference time for the recency term.

    Returns:
        Weighted score in [0, 1].
    """
    now = now or datetime.now(UTC)
    content = email_content.lower()

    keywords: list[str] = pattern.get("trigger_keywords") or []
    keyword_score = (
        sum(1 for keyword in keywords if keyword.lower() in content) / len(keywords)
        if keywords
        else 0.0
    )
    confidence_score = float(pattern.get("confidence_score") or 0.0)
    success_score = float(pattern.get("success_rate") or 0.0)

    last_used = _parse_timestamp(pattern.get("last_used_at"))
    if last_used is None:
        recency_score = 0.0
    else:
        days_since_used = (now - last_used).total_seconds() / 86400
        recency_score = max(0.0, 1 - days_since_used / RECENCY_WINDOW_DAYS)

    return (
        keyword_score * 0.4
        + confidence_score * 0.3
        + success_score * 0.2
        + min(recency_score, 1.0) * 0.1
    )


def parse_draft_response(content: str, original_subject: str) -> tuple[str, str]:
    """Split a ``SUBJECT:`` / ``BODY:`` formatted completion.

    Falls back to a ``Re:`` subject and the whole completion as body when
    the model ignores the format.

    Returns:
        (subject, body)
    """
    subject = ""
    body_lines: list[str] = []
    in_body = False

    for line in content.split("\n"):
        if line.startswith("SUBJECT:") and not in_body:
            subject = line[len("SUBJECT:"):].strip()
        elif line.startswith("BODY:") and not in_body:
            body_lines.append(line[len("BODY:"):].strip())
            in_body = True
        elif in_body:
            body_lines.append(line)

    if not subject:
        subject = original_subject if original_subject.startswith("Re:") else f"Re: {original_subject}"
    body = "\n".join(body_lines).strip() or content

    return subject.strip(), body.strip()


def _pattern_prompt(message: SourceMessage, pattern: PatternMatch) -> str:
    return f"""Based on the learned communication pattern, generate a professional email response.

INCOMING EMAIL:
Subject: {message.subject}
From: {message.sender}
Content: {message.content[:MAX_PROMPT_CONTENT_CHARS]}

LEARNED PATTERN:
Type: {pattern.pattern_type or ""}
Context: {pattern.context_category or ""}
Template: {pattern.response_template or ""}
Keywords: {", ".join(pattern.trigger_keywords)}

Generate a response that follows the learned pattern while being contextually appropriate.

{RESPONSE_FORMAT}

Keep the response professional, helpful, and consistent with the learned pattern style."""


def _generic_prompt(message: SourceMessage) -> str:
    return f"""Generate a professional email response to the following email:

INCOMING EMAIL:
Subject: {message.subject}
From: {message.sender}
Content: {message.content[:MAX_PROMPT_CONTENT_CHARS]}

Generate an appropriate, professional response that:
1. Acknowledges the sender's message
2. Addresses their main points or questions
3. Maintains a helpful and courteous tone
4. Is concise but complete

{RESPONSE_FORMAT}"""


class EmailLearningService:
    """Pattern-aware draft generation strategy."""

    def __init__(
        self,
        llm: LLMClient | None = None,
        store: DraftCacheStore | None = None,
        tracker: PatternUsageTracker | None = None,
    ) -> None:
        self._llm = llm or LLMClient()
        self._store = store or get_draft_cache_store()
        self._tracker = tracker or get_pattern_usage_tracker()
        self._config_cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=1000, ttl=300)

    async def generate_background_draft(
        self,
        message_id: str,
        user_id: str,
        organization_id: str | None = None,
    ) -> LearningDraftResult:
        """Generate and cache a reply draft for an inbound message.

        Never raises; failures are reported through ``success=False``.

        Args:
            message_id: Inbound message to reply to.
            user_id: Owner of the message.
            organization_id: Optional tenant for the cached row.

        Returns:
            LearningDraftResult with the draft on success.
        """
        try:
            message = await get_source_message(message_id, user_id)
            if message is None:
                return LearningDraftResult(success=False, error="Email not found")

            existing = await self._store.find_ready_draft(message_id, user_id)
            if existing is not None:
                logger.info("Using existing draft for message %s", message_id)
                return LearningDraftResult(
                    success=True,
                    draft=LearnedDraft(
                        id=existing.id,
                        subject=existing.subject,
                        body=existing.body,
                        confidence=existing.confidence_score,
                        matched_patterns=existing.matched_patterns,
                    ),
                )

            config = await self.get_learning_config(user_id)
            if not config.get("auto_draft_enabled", True):
                logger.info("Auto-draft disabled for user %s", user_id)
                return LearningDraftResult(
                    success=False, error="Auto-draft generation is disabled"
                )

            matches = await self.find_matching_patterns(message, user_id)
            minimum = float(config.get("minimum_pattern_confidence", 0.6))

            if matches and matches[0].match_score >= minimum:
                best = matches[0]
                completion = await self._llm.complete(
                    messages=[{"role": "user", "content": _pattern_prompt(message, best)}],
                    system_prompt=PATTERN_SYSTEM_PROMPT,
                    temperature=0.3,
                    user_id=user_id,
                )
                confidence = min(PATTERN_CONFIDENCE_CAP, best.match_score + PATTERN_CONFIDENCE_BOOST)
                matched_ids = [m.pattern_id for m in matches]
            else:
                logger.info("No suitable patterns for message %s, drafting generically", message_id)
                completion = await self._llm.complete(
                    messages=[{"role": "user", "content": _generic_prompt(message)}],
                    system_prompt=GENERIC_SYSTEM_PROMPT,
                    temperature=0.4,
                    user_id=user_id,
                )
                confidence = GENERIC_CONFIDENCE
                matched_ids = []

            return await self._store_draft(
                message, user_id, organization_id, completion, confidence, matches, matched_ids
            )

        except Exception as e:
            logger.error(
                "Error generating background draft for message %s: %s",
                message_id,
                e,
                exc_info=True,
            )
            return LearningDraftResult(success=False, error=str(e))

    async def _store_draft(
        self,
        message: SourceMessage,
        user_id: str,
        organization_id: str | None,
        completion: LLMCompletion,
        confidence: float,
        matches: list[PatternMatch],
        matched_ids: list[str],
    ) -> LearningDraftResult:
        if not completion.text.strip():
            return LearningDraftResult(success=False, error="No draft content generated")

        subject, body = parse_draft_response(completion.text, message.subject)
        saved = await self._store.save_generated_draft(
            message.id,
            user_id,
            subject,
            body,
            confidence,
            organization_id=organization_id,
            generation_model=completion.model,
            matched_patterns=matched_ids,
            pattern_match_score=matches[0].match_score if matches else 0.0,
            fallback_generation=not matched_ids,
            cost_usd=completion.cost_usd,
            tokens_used=completion.total_tokens,
        )

        if matched_ids:
            await self._tracker.emit_all(matched_ids, was_successful=True)

        logger.info(
            "Background draft generated",
            extra={
                "message_id": message.id,
                "user_id": user_id,
                "draft_id": saved.id,
                "pattern_count": len(matched_ids),
            },
        )
        return LearningDraftResult(
            success=True,
            draft=LearnedDraft(
                id=saved.id,
                subject=saved.subject,
                body=saved.body,
                confidence=saved.confidence_score,
                matched_patterns=matched_ids,
            ),
        )

    async def get_learning_config(self, user_id: str) -> dict[str, Any]:
        """Return the user's learning config, creating the default row if absent.

        Cached in-process for five minutes.
        """
        cached = self._config_cache.get(user_id)
        if cached is not None:
            return cached

        config: dict[str, Any]
        try:
            result = await SupabaseClient.run(
                "load learning config",
                lambda db: db.table(LEARNING_CONFIG_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .limit(1)
                .execute(),
            )
            rows = result.data or []
        except Exception as e:
            logger.warning("Could not load learning config for %s: %s", user_id, e)
            rows = []

        if rows:
            config = {**LEARNING_CONFIG_DEFAULTS, **rows[0]}
        else:
            config = {"user_id": user_id, **LEARNING_CONFIG_DEFAULTS}
            try:
                await SupabaseClient.run(
                    "create learning config",
                    lambda db: db.table(LEARNING_CONFIG_TABLE).insert(config).execute(),
                )
            except Exception:
                logger.warning("Could not create default learning config, using in-memory defaults")

        self._config_cache[user_id] = config
        return config

    async def find_matching_patterns(
        self, message: SourceMessage, user_id: str
    ) -> list[PatternMatch]:
        """Return up to three patterns scoring above 0.3, best first."""
        params = {
            "p_user_id": user_id,
            "p_email_content": message.content,
            "p_sender_email": message.sender,
        }
        try:
            result = await SupabaseClient.run(
                "find pattern matches",
                lambda db: db.rpc(FIND_PATTERN_MATCH_RPC, params).execute(),
            )
            candidates: list[dict[str, Any]] = result.data or []
            if not candidates:
                return []

            pattern_ids = [c["pattern_id"] for c in candidates]
            full = await SupabaseClient.run(
                "load patterns",
                lambda db: db.table(PATTERNS_TABLE).select("*").in_("id", pattern_ids).execute(),
            )
        except Exception as e:
            logger.error("Error finding pattern matches: %s", e)
            return []

        rows_by_id = {row["id"]: row for row in (full.data or [])}
        now = datetime.now(UTC)
        matches: list[PatternMatch] = []
        for candidate in candidates:
            row = rows_by_id.get(candidate["pattern_id"])
            if row is None:
                matches.append(
                    PatternMatch(
                        pattern_id=candidate["pattern_id"],
                        match_score=float(candidate.get("match_score") or 0.0),
                        pattern_type=candidate.get("pattern_type"),
                        response_template=candidate.get("response_template"),
                    )
                )
                continue
            matches.append(
                PatternMatch(
                    pattern_id=row["id"],
                    match_score=calculate_match_score(message.content, row, now),
                    pattern_type=row.get("pattern_type"),
                    context_category=row.get("context_category"),
                    response_template=row.get("response_template"),
                    trigger_keywords=row.get("trigger_keywords") or [],
                )
            )

        matches = [m for m in matches if m.match_score > MIN_MATCH_SCORE]
        matches.sort(key=lambda m: m.match_score, reverse=True)
        return matches[:MAX_PATTERN_MATCHES]

    async def process_emails_batch(
        self,
        message_ids: list[str],
        user_id: str,
        organization_id: str | None = None,
    ) -> dict[str, Any]:
        """Pre-generate drafts for several messages, a few at a time.

        Returns:
            Dict with ``successful`` and ``failed`` counts and per-message ``errors``.
        """
        results: dict[str, Any] = {"successful": 0, "failed": 0, "errors": []}
        batch_size = max(1, settings.DRAFT_BATCH_SIZE)

        for start in range(0, len(message_ids), batch_size):
            batch = message_ids[start:start + batch_size]
            outcomes = await asyncio.gather(
                *(
                    self.generate_background_draft(message_id, user_id, organization_id)
                    for message_id in batch
                )
            )
            for message_id, outcome in zip(batch, outcomes, strict=True):
                if outcome.success:
                    results["successful"] += 1
                else:
                    results["failed"] += 1
                    results["errors"].append({"message_id": message_id, "error": outcome.error})

        logger.info(
            "Batch draft generation complete for user %s: %d ok, %d failed",
            user_id,
            results["successful"],
            results["failed"],
        )
        return results


_service: EmailLearningService | None = None


def get_email_learning_service() -> EmailLearningService:
    """Get the singleton EmailLearningService instance."""
    global _service
    if _service is None:
        _service = EmailLearningService()
    return _service
