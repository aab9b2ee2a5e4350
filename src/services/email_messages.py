"""Lookup of inbound messages that drafts reply to."""

from dataclasses import dataclass
from typing import Any

from src.db.supabase import SupabaseClient

EMAILS_TABLE = "emails"
_COLUMNS = "id, subject, raw_content, plain_content, sender, from_address"


@dataclass
class SourceMessage:
    """The parts of an inbound message needed to draft a reply."""

    id: str
    subject: str
    content: str
    sender: str

    @property
    def reply_subject(self) -> str:
        """Subject line for a reply, without stacking ``Re:`` prefixes."""
        if self.subject.lower().startswith("re:"):
            return self.subject
        return f"Re: {self.subject}"

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SourceMessage":
        return cls(
            id=str(row["id"]),
            subject=row.get("subject") or "",
            content=row.get("raw_content") or row.get("plain_content") or "",
            sender=row.get("sender") or row.get("from_address") or "",
        )


async def get_source_message(message_id: str, user_id: str) -> SourceMessage | None:
    """Load a message, scoped to the user who owns it.

    Args:
        message_id: The message's id.
        user_id: The requesting user.

    Returns:
        The message, or None if it does not exist or belongs to someone else.

    Raises:
        DatabaseError: If the lookup itself failed.
        CircuitBreakerOpen: If Supabase is currently failing fast.
    """
    result = await SupabaseClient.run(
        "load email",
        lambda db: db.table(EMAILS_TABLE)
        .select(_COLUMNS)
        .eq("id", message_id)
        .eq("user_id", user_id)
        .limit(1)
        .execute(),
    )

    if not result.data:
        return None
    return SourceMessage.from_row(result.data[0])
