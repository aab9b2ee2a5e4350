"""Tests for draft feedback recording."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.exceptions import InvalidParameterError, MissingParameterError
from src.models.email_draft import DraftSaveRequest, DraftStatus, EditOutcome
from src.services.draft_feedback import DraftFeedbackService
from src.services.pattern_usage import PatternUsageTracker

ORIGINAL_BODY = "Thanks for your note. I can meet on Tuesday at 10am."


@pytest.fixture
def store() -> AsyncMock:
    store = AsyncMock()
    store.apply_feedback.return_value = True
    store.get_draft_fields.return_value = {
        "subject": "Re: Meeting",
        "body": ORIGINAL_BODY,
        "matched_patterns": ["p1", "p2"],
        "confidence_score": 0.85,
    }
    return store


@pytest.fixture
def tracker() -> AsyncMock:
    tracker = AsyncMock()
    tracker.record_edit.return_value = True
    tracker.emit_all.return_value = 2
    return tracker


@pytest.fixture
def service(store: AsyncMock, tracker: AsyncMock) -> DraftFeedbackService:
    return DraftFeedbackService(store=store, tracker=tracker)


@pytest.mark.asyncio
async def test_requires_draft_or_email_id(service: DraftFeedbackService) -> None:
    with pytest.raises(MissingParameterError, match="draftId or emailId"):
        await service.record_feedback(user_id="u1", feedback_type="approved")


@pytest.mark.asyncio
async def test_unknown_feedback_type_is_rejected(
    service: DraftFeedbackService, store: AsyncMock
) -> None:
    with pytest.raises(InvalidParameterError) as exc_info:
        await service.record_feedback(user_id="u1", draft_id="d1", feedback_type="loved")

    assert exc_info.value.status_code == 400
    assert "approved" in exc_info.value.details["allowed"]
    store.apply_feedback.assert_not_called()


@pytest.mark.asyncio
async def test_missing_feedback_type_is_rejected(service: DraftFeedbackService) -> None:
    with pytest.raises(MissingParameterError):
        await service.record_feedback(user_id="u1", draft_id="d1")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "feedback_type,status",
    [
        ("approved", DraftStatus.USED),
        ("edited", DraftStatus.EDITED),
        ("rejected", DraftStatus.REJECTED),
        ("regenerated", DraftStatus.USED),
    ],
)
async def test_feedback_sets_status(
    service: DraftFeedbackService, store: AsyncMock, feedback_type: str, status: DraftStatus
) -> None:
    ack = await service.record_feedback(user_id="u1", draft_id="d1", feedback_type=feedback_type)

    assert ack.success is True
    assert ack.status is status
    store.apply_feedback.assert_awaited_once_with("d1", "u1", status, feedback_type)


@pytest.mark.asyncio
async def test_light_edit_counts_as_success_for_every_pattern(
    service: DraftFeedbackService, tracker: AsyncMock
) -> None:
    ack = await service.record_feedback(
        user_id="u1",
        draft_id="d1",
        feedback_type="edited",
        final_subject="Re: Meeting",
        final_body=ORIGINAL_BODY + " Thanks",
    )

    assert ack.outcome is EditOutcome.SUCCESS
    assert ack.edit_similarity is not None and ack.edit_similarity > 0.8
    assert ack.patterns_updated == 2
    assert tracker.record_edit.await_count == 2
    entries = [call.args[0] for call in tracker.record_edit.await_args_list]
    assert [e.pattern_id for e in entries] == ["p1", "p2"]
    assert all(call.args[1] is True for call in tracker.record_edit.await_args_list)
    assert entries[0].subject_changed is False
    assert entries[0].body_changed is True
    assert entries[0].confidence_score == 0.85
    assert entries[0].feedback_type == "edited"


@pytest.mark.asyncio
async def test_rewrite_counts_as_failure_for_every_pattern(
    service: DraftFeedbackService, tracker: AsyncMock
) -> None:
    ack = await service.record_feedback(
        user_id="u1",
        draft_id="d1",
        feedback_type="edited",
        final_subject="Different subject",
        final_body="Completely unrelated wording here",
    )

    assert ack.edit_similarity is not None and ack.edit_similarity <= 0.3
    assert ack.outcome is EditOutcome.FAILURE
    assert tracker.record_edit.await_count == 2
    assert all(call.args[1] is False for call in tracker.record_edit.await_args_list)
    assert tracker.record_edit.await_args_list[0].args[0].subject_changed is True


@pytest.mark.asyncio
async def test_edit_without_final_text_only_updates_status(
    service: DraftFeedbackService, store: AsyncMock, tracker: AsyncMock
) -> None:
    ack = await service.record_feedback(
        user_id="u1", draft_id="d1", feedback_type="edited", final_body="only body"
    )

    assert ack.edit_similarity is None
    store.get_draft_fields.assert_not_called()
    tracker.record_edit.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("feedback_type,expected", [("approved", True), ("rejected", False)])
async def test_decision_signals_patterns_without_feedback_entries(
    service: DraftFeedbackService, tracker: AsyncMock, feedback_type: str, expected: bool
) -> None:
    ack = await service.record_feedback(user_id="u1", draft_id="d1", feedback_type=feedback_type)

    tracker.emit_all.assert_awaited_once_with(["p1", "p2"], was_successful=expected)
    tracker.record_edit.assert_not_called()
    tracker.log_feedback.assert_not_called()
    assert ack.patterns_updated == 2


@pytest.mark.asyncio
async def test_regenerated_emits_no_signals(
    service: DraftFeedbackService, tracker: AsyncMock
) -> None:
    await service.record_feedback(user_id="u1", draft_id="d1", feedback_type="regenerated")

    tracker.emit_all.assert_not_called()
    tracker.record_edit.assert_not_called()


@pytest.mark.asyncio
async def test_email_id_resolves_latest_draft(
    service: DraftFeedbackService, store: AsyncMock
) -> None:
    store.find_latest_draft_id.return_value = "d9"

    ack = await service.record_feedback(user_id="u1", message_id="m1", feedback_type="rejected")

    assert ack.draft_id == "d9"
    store.find_latest_draft_id.assert_awaited_once_with("m1", "u1")
    store.apply_feedback.assert_awaited_once_with("d9", "u1", DraftStatus.REJECTED, "rejected")


@pytest.mark.asyncio
async def test_email_id_without_draft_is_acknowledged(
    service: DraftFeedbackService, store: AsyncMock
) -> None:
    store.find_latest_draft_id.return_value = None

    ack = await service.record_feedback(user_id="u1", message_id="m1", feedback_type="approved")

    assert ack.success is True
    assert ack.draft_id is None
    store.apply_feedback.assert_not_called()


@pytest.mark.asyncio
async def test_edit_writes_one_feedback_row_per_pattern(
    store: AsyncMock, mock_db: MagicMock
) -> None:
    service = DraftFeedbackService(store=store, tracker=PatternUsageTracker())

    await service.record_feedback(
        user_id="u1",
        draft_id="d1",
        feedback_type="edited",
        final_subject="Re: Meeting",
        final_body="Something else entirely",
    )

    assert mock_db.rpc.call_count == 2
    rpc_params = [call.args[1] for call in mock_db.rpc.call_args_list]
    assert {p["p_pattern_id"] for p in rpc_params} == {"p1", "p2"}
    assert all(p["p_was_successful"] is False for p in rpc_params)
    mock_db.table.assert_called_with("pattern_feedback_log")
    inserted = [call.args[0] for call in mock_db.table.return_value.insert.call_args_list]
    assert sorted(row["pattern_id"] for row in inserted) == ["p1", "p2"]
    assert all(row["draft_id"] == "d1" for row in inserted)


@pytest.mark.asyncio
async def test_save_user_draft_delegates_to_store(
    service: DraftFeedbackService, store: AsyncMock
) -> None:
    request = DraftSaveRequest(to=["lead@example.com"], subject="Intro", body="Hi there")
    store.insert_user_draft.return_value = MagicMock(id="user-draft-1")

    draft = await service.save_user_draft("u1", request)

    assert draft.id == "user-draft-1"
    store.insert_user_draft.assert_awaited_once_with("u1", request)
