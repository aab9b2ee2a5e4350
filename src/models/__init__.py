"""Models package for the email drafts backend."""

from src.models.email_draft import (
    DraftFeedbackRequest,
    DraftRecord,
    DraftRetrievalResult,
    DraftSaveRequest,
    DraftSource,
    DraftStatus,
    EditOutcome,
    FeedbackAck,
    FeedbackType,
)

__all__ = [
    "DraftFeedbackRequest",
    "DraftRecord",
    "DraftRetrievalResult",
    "DraftSaveRequest",
    "DraftSource",
    "DraftStatus",
    "EditOutcome",
    "FeedbackAck",
    "FeedbackType",
]
