"""Records what users did with served drafts.

Feedback moves a draft to its terminal status and turns the decision into
pattern learning signals:

- ``edited`` with final text: the edit is scored against the original body
  and every matched pattern gets a usage signal plus a feedback log entry
- ``approved`` / ``rejected``: every matched pattern gets a usage signal
- ``regenerated``: status only

All learning writes are best-effort; the user's action is acknowledged even
when they fail.
"""

import asyncio
import logging

from src.core.exceptions import InvalidParameterError, MissingParameterError
from src.models.email_draft import (
    FEEDBACK_STATUS,
    DraftRecord,
    DraftSaveRequest,
    FeedbackAck,
    FeedbackType,
    PatternFeedbackEntry,
)
from src.services.draft_cache import DraftCacheStore, get_draft_cache_store
from src.services.edit_similarity import (
    calculate_edit_similarity,
    classify_edit,
    is_successful_edit,
)
from src.services.pattern_usage import PatternUsageTracker, get_pattern_usage_tracker

logger = logging.getLogger(__name__)

_EDIT_COLUMNS = "subject, body, matched_patterns, confidence_score"


def _parse_feedback_type(value: str | None) -> FeedbackType:
    if not value:
        raise MissingParameterError("userFeedback is required", parameter="userFeedback")
    try:
        return FeedbackType(value)
    except ValueError:
        raise InvalidParameterError(
            f"Unsupported feedback type: {value}",
            parameter="userFeedback",
            allowed=[t.value for t in FeedbackType],
        ) from None


class DraftFeedbackService:
    """Applies user feedback to cached drafts and saves user-written drafts."""

    def __init__(
        self,
        store: DraftCacheStore | None = None,
        tracker: PatternUsageTracker | None = None,
    ) -> None:
        self._store = store or get_draft_cache_store()
        self._tracker = tracker or get_pattern_usage_tracker()

    async def record_feedback(
        self,
        user_id: str,
        draft_id: str | None = None,
        message_id: str | None = None,
        feedback_type: str | None = None,
        final_subject: str | None = None,
        final_body: str | None = None,
        notes: str | None = None,
    ) -> FeedbackAck:
        """Record the user's decision about a draft.

        Args:
            user_id: Authenticated user.
            draft_id: Draft the feedback is about.
            message_id: Source message; used to find the draft when
                ``draft_id`` is absent.
            feedback_type: One of approved, edited, rejected, regenerated.
            final_subject: Subject the user finally sent (edited only).
            final_body: Body the user finally sent (edited only).
            notes: Free-text user notes, logged only.

        Returns:
            Acknowledgement with the applied status and, for scored edits,
            the similarity and its band.

        Raises:
            MissingParameterError: If neither id, or no feedback type, is given.
            InvalidParameterError: If the feedback type is not recognised.
        """
        if not draft_id and not message_id:
            raise MissingParameterError(
                "Either draftId or emailId is required for feedback updates",
                parameter="draftId",
            )
        feedback = _parse_feedback_type(feedback_type)
        status = FEEDBACK_STATUS[feedback]

        if not draft_id:
            draft_id = await self._store.find_latest_draft_id(message_id, user_id)
            if draft_id is None:
                logger.info(
                    "No draft found for feedback on message %s",
                    message_id,
                    extra={"user_id": user_id, "feedback_type": feedback.value},
                )
                return FeedbackAck(draft_id=None, status=None)

        logger.info(
            "Updating draft feedback: %s",
            feedback.value,
            extra={"draft_id": draft_id, "user_id": user_id, "has_notes": bool(notes)},
        )
        await self._store.apply_feedback(draft_id, user_id, status, feedback.value)

        ack = FeedbackAck(draft_id=draft_id, status=status)

        if feedback is FeedbackType.EDITED and final_subject and final_body:
            await self._score_edit(ack, user_id, final_subject, final_body)
        elif feedback in (FeedbackType.APPROVED, FeedbackType.REJECTED):
            ack.patterns_updated = await self._signal_decision(
                draft_id, user_id, feedback is FeedbackType.APPROVED
            )

        return ack

    async def _score_edit(
        self, ack: FeedbackAck, user_id: str, final_subject: str, final_body: str
    ) -> None:
        original = await self._store.get_draft_fields(ack.draft_id, user_id, _EDIT_COLUMNS)
        if original is None:
            return

        original_body = original.get("body") or ""
        similarity = calculate_edit_similarity(original_body, final_body)
        was_successful = is_successful_edit(similarity)
        outcome = classify_edit(similarity)
        ack.edit_similarity = similarity
        ack.outcome = outcome

        pattern_ids: list[str] = original.get("matched_patterns") or []
        entries = [
            PatternFeedbackEntry(
                pattern_id=pattern_id,
                draft_id=ack.draft_id,
                user_id=user_id,
                original_content=original_body,
                final_content=final_body,
                edit_similarity=similarity,
                subject_changed=original.get("subject") != final_subject,
                body_changed=original_body != final_body,
                feedback_type=FeedbackType.EDITED.value,
                confidence_score=original.get("confidence_score"),
            )
            for pattern_id in pattern_ids
        ]
        if entries:
            results = await asyncio.gather(
                *(self._tracker.record_edit(entry, was_successful) for entry in entries),
                return_exceptions=True,
            )
            ack.patterns_updated = sum(1 for r in results if r is True)

        logger.info(
            "Edit feedback recorded: %.2f similarity, %d patterns",
            similarity,
            len(entries),
            extra={"draft_id": ack.draft_id, "outcome": outcome.value},
        )

    async def _signal_decision(self, draft_id: str, user_id: str, approved: bool) -> int:
        original = await self._store.get_draft_fields(draft_id, user_id, "matched_patterns")
        if not original:
            return 0
        pattern_ids: list[str] = original.get("matched_patterns") or []
        return await self._tracker.emit_all(pattern_ids, was_successful=approved)

    async def save_user_draft(self, user_id: str, request: DraftSaveRequest) -> DraftRecord:
        """Persist a draft the user wrote from scratch.

        Raises:
            DatabaseError: If the draft could not be stored.
        """
        return await self._store.insert_user_draft(user_id, request)


_service: DraftFeedbackService | None = None


def get_draft_feedback_service() -> DraftFeedbackService:
    """Get the singleton DraftFeedbackService instance."""
    global _service
    if _service is None:
        _service = DraftFeedbackService()
    return _service
