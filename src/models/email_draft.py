"""Pydantic models for cached email drafts and draft feedback."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, field_validator


class DraftStatus(str, Enum):
    """Lifecycle status of a row in ``email_drafts_cache``."""

    READY = "ready"
    USED = "used"
    EDITED = "edited"
    REJECTED = "rejected"
    DRAFT = "draft"


class DraftSource(str, Enum):
    """Which tier produced a served draft."""

    CACHE = "cache"
    REALTIME = "realtime"
    FALLBACK = "fallback"


class FeedbackType(str, Enum):
    """User decision about a served draft."""

    APPROVED = "approved"
    EDITED = "edited"
    REJECTED = "rejected"
    REGENERATED = "regenerated"


FEEDBACK_STATUS: dict[FeedbackType, DraftStatus] = {
    FeedbackType.APPROVED: DraftStatus.USED,
    FeedbackType.EDITED: DraftStatus.EDITED,
    FeedbackType.REJECTED: DraftStatus.REJECTED,
    FeedbackType.REGENERATED: DraftStatus.USED,
}


class EditOutcome(str, Enum):
    """Similarity band of an edited draft against its original."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


class DraftRecord(BaseModel):
    """A row of ``email_drafts_cache``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_id: str
    message_id: str | None = None
    organization_id: str | None = None
    subject: str = ""
    body: str = ""
    confidence_score: float = Field(0.0, ge=0.0, le=1.0)
    tone: str | None = None
    generation_model: str | None = None
    matched_patterns: list[str] = Field(default_factory=list)
    pattern_match_score: float = 0.0
    fallback_generation: bool = False
    generation_cost_usd: float = 0.0
    generation_tokens: int = 0
    status: DraftStatus = DraftStatus.READY
    user_feedback: str | None = None
    metadata: dict[str, Any] | None = None
    generated_at: datetime | None = None
    used_at: datetime | None = None
    expires_at: datetime | None = None

    @field_validator(
        "subject",
        "body",
        "confidence_score",
        "matched_patterns",
        "pattern_match_score",
        "fallback_generation",
        "generation_cost_usd",
        "generation_tokens",
        "status",
        mode="before",
    )
    @classmethod
    def null_column_to_default(cls, value: Any, info: ValidationInfo) -> Any:
        """Read NULL columns as the field default."""
        if value is None and info.field_name is not None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


class DraftPayload(BaseModel):
    """Draft body returned by ``GET /api/email/draft``."""

    id: str
    subject: str
    body: str
    confidence: float
    tone: str | None = "professional"
    generation_model: str | None = None
    matched_patterns: list[str] = Field(default_factory=list)
    pattern_match_score: float = 0.0
    was_fallback: bool = False
    generated_at: datetime | None = None


class DraftMetadata(BaseModel):
    """Retrieval bookkeeping returned alongside a draft."""

    generation_cost_usd: float = 0.0
    generation_tokens: int = 0
    cache_hit: bool = False
    retrieval_time_ms: int = 0


class DraftRetrievalResult(BaseModel):
    """Response model for ``GET /api/email/draft``."""

    success: bool = True
    source: DraftSource
    draft: DraftPayload
    metadata: DraftMetadata


class LearnedDraft(BaseModel):
    """Draft produced by the learning strategy."""

    id: str
    subject: str
    body: str
    confidence: float
    matched_patterns: list[str] = Field(default_factory=list)


class LearningDraftResult(BaseModel):
    """Outcome of a learning-strategy generation attempt."""

    success: bool
    draft: LearnedDraft | None = None
    error: str | None = None


class PatternMatch(BaseModel):
    """A learned pattern scored against an inbound message."""

    pattern_id: str
    match_score: float
    pattern_type: str | None = None
    context_category: str | None = None
    response_template: str | None = None
    trigger_keywords: list[str] = Field(default_factory=list)


class PatternUsageSignal(BaseModel):
    """Success/failure signal forwarded to the pattern usage counter."""

    pattern_id: str
    was_successful: bool


class PatternFeedbackEntry(BaseModel):
    """A row of ``pattern_feedback_log``."""

    pattern_id: str
    draft_id: str
    user_id: str
    original_content: str
    final_content: str
    edit_similarity: float
    subject_changed: bool
    body_changed: bool
    feedback_type: str
    confidence_score: float | None = None


class DraftFeedbackRequest(BaseModel):
    """Request body for recording feedback on a served draft."""

    model_config = ConfigDict(populate_by_name=True)

    draft_id: str | None = Field(None, alias="draftId")
    email_id: str | None = Field(None, alias="emailId")
    user_feedback: str | None = Field(None, alias="userFeedback")
    final_subject: str | None = Field(None, alias="finalSubject")
    final_body: str | None = Field(None, alias="finalBody")
    user_notes: str | None = Field(None, alias="userNotes")


class DraftSaveRequest(BaseModel):
    """Request body for saving a user-composed draft."""

    model_config = ConfigDict(populate_by_name=True)

    to: list[EmailStr] = Field(default_factory=list)
    cc: list[EmailStr] = Field(default_factory=list)
    bcc: list[EmailStr] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    account_id: str | None = Field(None, alias="accountId")
    priority: str = "normal"


class FeedbackAck(BaseModel):
    """Acknowledgement returned after feedback is recorded."""

    success: bool = True
    message: str = "Draft feedback recorded successfully"
    draft_id: str | None = None
    status: DraftStatus | None = None
    edit_similarity: float | None = None
    outcome: EditOutcome | None = None
    patterns_updated: int = 0


class DraftSaveResponse(BaseModel):
    """Response model for a saved user draft."""

    success: bool = True
    message: str = "Draft saved successfully"
    draft: DraftRecord
