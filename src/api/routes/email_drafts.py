"""Email draft routes: serve reply drafts and collect feedback on them."""

import logging
from typing import Any

from fastapi import APIRouter, Query, Request, Response, status

from src.api.deps import CurrentUser
from src.core.circuit_breaker import CircuitBreakerOpen
from src.core.exceptions import CRMException, InvalidParameterError
from src.models.email_draft import DraftFeedbackRequest, DraftSaveRequest, DraftSaveResponse
from src.services.draft_feedback import get_draft_feedback_service
from src.services.draft_retrieval import get_draft_retrieval_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email", tags=["email-drafts"])

_DRAFT_TEXT_FIELDS = ("subject", "body")


@router.get("/draft")
async def get_email_draft(
    current_user: CurrentUser,
    email_id: str | None = Query(None, alias="emailId"),
) -> dict[str, Any]:
    """Return a reply draft for an inbound email.

    Served from the draft cache when possible, otherwise generated on
    demand.

    Args:
        current_user: The authenticated user.
        email_id: Inbound email to draft a reply for.

    Returns:
        The draft, the tier that produced it, and retrieval metadata.
    """
    try:
        result = await get_draft_retrieval_service().get_draft(email_id, current_user.id)
    except (CRMException, CircuitBreakerOpen):
        raise
    except Exception as e:
        logger.exception("Unexpected error retrieving draft")
        raise CRMException(
            message="Failed to retrieve draft",
            code="DRAFT_RETRIEVAL_FAILED",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=str(e),
        ) from e

    logger.info(
        "Draft served",
        extra={
            "user_id": current_user.id,
            "email_id": email_id,
            "source": result.source.value,
            "retrieval_time_ms": result.metadata.retrieval_time_ms,
        },
    )
    return result.model_dump(mode="json")


@router.post("/draft")
async def post_email_draft(
    current_user: CurrentUser,
    request: Request,
    response: Response,
) -> dict[str, Any]:
    """Save a user-composed draft, or record feedback on a served draft.

    A body carrying a ``to`` list (even an empty one), or a non-empty
    ``subject`` or ``body``, is a draft save (201). Anything else is
    feedback (200) and needs ``draftId`` or ``emailId``.

    Args:
        current_user: The authenticated user.
        request: Raw request; the body shape selects the action.
        response: Used to set 201 on draft saves.

    Returns:
        The saved draft, or the feedback acknowledgement.
    """
    payload = await _read_json_object(request)

    if _is_draft_save(payload):
        save_request = DraftSaveRequest.model_validate(payload)
        try:
            draft = await get_draft_feedback_service().save_user_draft(
                current_user.id, save_request
            )
        except CRMException as e:
            raise CRMException(
                message="Failed to save draft",
                code=e.code,
                status_code=e.status_code,
                details=e.message,
            ) from e
        response.status_code = status.HTTP_201_CREATED
        return DraftSaveResponse(draft=draft).model_dump(mode="json")

    feedback = DraftFeedbackRequest.model_validate(payload)
    try:
        ack = await get_draft_feedback_service().record_feedback(
            user_id=current_user.id,
            draft_id=feedback.draft_id,
            message_id=feedback.email_id,
            feedback_type=feedback.user_feedback,
            final_subject=feedback.final_subject,
            final_body=feedback.final_body,
            notes=feedback.user_notes,
        )
    except (CRMException, CircuitBreakerOpen):
        raise
    except Exception as e:
        logger.exception("Unexpected error updating draft feedback")
        raise CRMException(
            message="Failed to update draft feedback",
            code="FEEDBACK_UPDATE_FAILED",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details=str(e),
        ) from e

    return ack.model_dump(mode="json")


async def _read_json_object(request: Request) -> dict[str, Any]:
    try:
        payload = await request.json()
    except ValueError as e:
        raise InvalidParameterError("Request body must be valid JSON") from e
    if not isinstance(payload, dict):
        raise InvalidParameterError("Request body must be a JSON object")
    return payload


def _is_draft_save(payload: dict[str, Any]) -> bool:
    # A recipient list counts even when empty; text fields only when non-empty.
    if payload.get("to") is not None:
        return True
    return any(payload.get(field) for field in _DRAFT_TEXT_FIELDS)
