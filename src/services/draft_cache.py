"""Access layer for the ``email_drafts_cache`` table."""

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import ValidationError

from src.core.config import settings
from src.core.exceptions import DatabaseError
from src.db.supabase import SupabaseClient
from src.models.email_draft import DraftRecord, DraftSaveRequest, DraftStatus

logger = logging.getLogger(__name__)

DRAFTS_TABLE = "email_drafts_cache"


def _now() -> datetime:
    return datetime.now(UTC)


class DraftCacheStore:
    """Reads and writes cached draft rows.

    Lookups used on the serving path degrade to "nothing found" when the
    store fails; bookkeeping writes are best-effort and report success as
    a bool. Only creating a new row raises.
    """

    async def find_ready_draft(self, message_id: str, user_id: str) -> DraftRecord | None:
        """Return the newest servable draft for a message.

        A draft is servable while its status is ``ready`` and it has not
        expired.

        Args:
            message_id: Source message the draft replies to.
            user_id: Owner of the draft.

        Returns:
            The draft, or None on a miss or lookup failure.
        """
        now = _now().isoformat()
        try:
            result = await SupabaseClient.run(
                "look up cached draft",
                lambda db: db.table(DRAFTS_TABLE)
                .select("*")
                .eq("message_id", message_id)
                .eq("user_id", user_id)
                .eq("status", DraftStatus.READY.value)
                .gt("expires_at", now)
                .order("generated_at", desc=True)
                .limit(1)
                .execute(),
            )
        except Exception as e:
            logger.warning(
                "Draft cache lookup failed, treating as miss: %s",
                e,
                extra={"message_id": message_id, "user_id": user_id},
            )
            return None

        if not result.data:
            return None
        try:
            return DraftRecord.model_validate(result.data[0])
        except ValidationError as e:
            logger.warning(
                "Unreadable cached draft, treating as miss: %s",
                e,
                extra={"message_id": message_id, "user_id": user_id},
            )
            return None

    async def find_latest_draft_id(self, message_id: str, user_id: str) -> str | None:
        """Return the id of the newest draft for a message, whatever its status."""
        try:
            result = await SupabaseClient.run(
                "resolve draft for message",
                lambda db: db.table(DRAFTS_TABLE)
                .select("id")
                .eq("message_id", message_id)
                .eq("user_id", user_id)
                .order("generated_at", desc=True)
                .limit(1)
                .execute(),
            )
        except Exception as e:
            logger.warning("Could not resolve draft for message %s: %s", message_id, e)
            return None
        return result.data[0]["id"] if result.data else None

    async def get_draft_fields(
        self, draft_id: str, user_id: str, columns: str
    ) -> dict[str, Any] | None:
        """Fetch selected columns of one draft owned by ``user_id``."""
        try:
            result = await SupabaseClient.run(
                "load draft",
                lambda db: db.table(DRAFTS_TABLE)
                .select(columns)
                .eq("id", draft_id)
                .eq("user_id", user_id)
                .limit(1)
                .execute(),
            )
        except Exception as e:
            logger.warning("Could not load draft %s: %s", draft_id, e)
            return None
        return result.data[0] if result.data else None

    async def mark_used(self, draft_id: str) -> bool:
        """Flag a served cache hit as used."""
        update = {"status": DraftStatus.USED.value, "used_at": _now().isoformat()}
        try:
            await SupabaseClient.run(
                "mark draft used",
                lambda db: db.table(DRAFTS_TABLE).update(update).eq("id", draft_id).execute(),
            )
        except Exception as e:
            logger.error("Failed to mark draft %s as used: %s", draft_id, e)
            return False
        return True

    async def apply_feedback(
        self, draft_id: str, user_id: str, status: DraftStatus, feedback_type: str
    ) -> bool:
        """Store the user's decision and the resulting terminal status."""
        update = {"status": status.value, "user_feedback": feedback_type}
        try:
            await SupabaseClient.run(
                "update draft feedback",
                lambda db: db.table(DRAFTS_TABLE)
                .update(update)
                .eq("id", draft_id)
                .eq("user_id", user_id)
                .execute(),
            )
        except Exception as e:
            logger.error("Error updating draft feedback for %s: %s", draft_id, e)
            return False
        return True

    async def save_generated_draft(
        self,
        message_id: str,
        user_id: str,
        subject: str,
        body: str,
        confidence: float,
        *,
        organization_id: str | None = None,
        generation_model: str = "ai-learned",
        matched_patterns: list[str] | None = None,
        pattern_match_score: float = 0.0,
        fallback_generation: bool = False,
        cost_usd: float = 0.0,
        tokens_used: int = 0,
    ) -> DraftRecord:
        """Upsert a freshly generated draft as ``ready``.

        One row is kept per (message, user); regenerating replaces it.

        Raises:
            DatabaseError: If the row could not be written.
        """
        now = _now()
        row = {
            "user_id": user_id,
            "message_id": message_id,
            "organization_id": organization_id,
            "subject": subject,
            "body": body,
            "confidence_score": confidence,
            "generation_model": generation_model,
            "matched_patterns": matched_patterns or [],
            "pattern_match_score": pattern_match_score,
            "fallback_generation": fallback_generation,
            "generation_cost_usd": cost_usd,
            "generation_tokens": tokens_used,
            "status": DraftStatus.READY.value,
            "generated_at": now.isoformat(),
            "expires_at": (now + timedelta(days=settings.DRAFT_CACHE_TTL_DAYS)).isoformat(),
        }
        result = await SupabaseClient.run(
            "save draft to cache",
            lambda db: db.table(DRAFTS_TABLE)
            .upsert(row, on_conflict="message_id,user_id")
            .execute(),
        )
        if not result.data:
            raise DatabaseError("Failed to save draft to cache")
        return DraftRecord.model_validate(result.data[0])

    async def insert_user_draft(self, user_id: str, request: DraftSaveRequest) -> DraftRecord:
        """Persist a draft the user composed themselves.

        Raises:
            DatabaseError: If the row could not be written.
        """
        now = _now()
        row = {
            "id": f"user-draft-{int(time.time() * 1000)}",
            "user_id": user_id,
            "message_id": None,
            "subject": request.subject,
            "body": request.body,
            "confidence_score": 1.0,
            "generation_model": "user-created",
            "status": DraftStatus.DRAFT.value,
            "generated_at": now.isoformat(),
            "expires_at": (now + timedelta(days=settings.USER_DRAFT_TTL_DAYS)).isoformat(),
            "metadata": {
                "to_addresses": [str(a) for a in request.to],
                "cc_addresses": [str(a) for a in request.cc],
                "bcc_addresses": [str(a) for a in request.bcc],
                "priority": request.priority,
                "account_id": request.account_id,
            },
        }
        result = await SupabaseClient.run(
            "save draft",
            lambda db: db.table(DRAFTS_TABLE).insert(row).execute(),
        )
        if not result.data:
            raise DatabaseError("Failed to save draft")
        logger.info("User draft saved", extra={"user_id": user_id, "draft_id": row["id"]})
        return DraftRecord.model_validate(result.data[0])


_store: DraftCacheStore | None = None


def get_draft_cache_store() -> DraftCacheStore:
    """Get the singleton DraftCacheStore instance."""
    global _store
    if _store is None:
        _store = DraftCacheStore()
    return _store
