"""
Tests for the verification review workflow.
"""

import pytest

from staff_verify.db.models import User, VerificationInfoRequest
from staff_verify.exceptions import (
    ApplicantNotFoundError,
    IllegalTransitionError,
    RequestNotFoundError,
)
from staff_verify.services.workflow import (
    REJECTION_GUIDANCE,
    RejectReason,
    RequestStatus,
    VerificationWorkflow,
    WorkflowAction,
    apply_transition,
    info_request_history,
)
from tests.conftest import FailingNotifier

MUTATING = [WorkflowAction.approve, WorkflowAction.reject, WorkflowAction.request_info]


class TestTransitionTable:
    """Test the pure transition function."""

    @pytest.mark.parametrize("start", [RequestStatus.pending, RequestStatus.needs_info])
    def test_open_states(self, start):
        assert apply_transition(start, WorkflowAction.approve) == RequestStatus.approved
        assert apply_transition(start, WorkflowAction.reject) == RequestStatus.rejected
        assert apply_transition(start, WorkflowAction.request_info) == RequestStatus.needs_info
        assert apply_transition(start, WorkflowAction.send_reminder) == start

    @pytest.mark.parametrize("terminal", [RequestStatus.approved, RequestStatus.rejected])
    @pytest.mark.parametrize("action", MUTATING)
    def test_terminal_states_reject_mutations(self, terminal, action):
        with pytest.raises(IllegalTransitionError) as exc_info:
            apply_transition(terminal, action, "req-1")
        assert exc_info.value.current_status == terminal.value
        assert exc_info.value.action == action.value

    @pytest.mark.parametrize("state", list(RequestStatus))
    def test_reply_and_reminder_never_fail(self, state):
        assert apply_transition(state, WorkflowAction.reply) == state
        assert apply_transition(state, WorkflowAction.send_reminder) == state

    def test_accepts_plain_strings(self):
        assert apply_transition("pending", "approve") == RequestStatus.approved


class TestApprove:
    """Test approval."""

    def test_marks_request_and_user(self, db, make_request, applicant, notifier):
        request = make_request()
        workflow = VerificationWorkflow(db, notifier)

        updated = workflow.approve(request.id, admin_id="admin-1")

        assert updated.status == "approved"
        assert updated.reviewed_by == "admin-1"
        assert updated.reviewed_at is not None
        user = db.get(User, applicant.id)
        assert user.is_verified is True
        assert user.verification_status == "approved"
        assert user.verified_at is not None
        assert [e.type for e in notifier.events] == ["verification_approved"]
        assert notifier.events[0].recipient_id == applicant.id

    def test_second_approve_is_illegal(self, db, make_request, notifier):
        request = make_request()
        workflow = VerificationWorkflow(db, notifier)
        workflow.approve(request.id)

        with pytest.raises(IllegalTransitionError) as exc_info:
            workflow.approve(request.id)

        assert exc_info.value.current_status == "approved"
        assert len(notifier.events) == 1

    def test_approve_from_needs_info(self, db, make_request):
        request = make_request(status="needs_info")
        assert VerificationWorkflow(db).approve(request.id).status == "approved"

    def test_missing_applicant_leaves_request_pending(self, db, make_request):
        request = make_request(applicant_id="ghost")
        workflow = VerificationWorkflow(db)

        with pytest.raises(ApplicantNotFoundError):
            workflow.approve(request.id)

        db.refresh(request)
        assert request.status == "pending"
        assert request.reviewed_at is None

    def test_notification_failure_keeps_transition(self, db, make_request):
        request = make_request()
        failing = FailingNotifier()

        updated = VerificationWorkflow(db, failing).approve(request.id)

        assert failing.calls == 1
        assert updated.status == "approved"

    def test_unknown_request(self, db):
        with pytest.raises(RequestNotFoundError):
            VerificationWorkflow(db).approve("missing")


class TestReject:
    """Test rejection."""

    def test_stores_reason_code(self, db, make_request, applicant, notifier):
        request = make_request()

        updated = VerificationWorkflow(db, notifier).reject(
            request.id, RejectReason.location_too_far, admin_id="admin-2"
        )

        assert updated.status == "rejected"
        assert updated.rejection_reason == "location_too_far"
        user = db.get(User, applicant.id)
        assert user.is_verified is False
        assert user.verification_status == "rejected"
        assert user.rejection_reason == "location_too_far"
        assert notifier.events[0].type == "verification_rejected"
        assert notifier.events[0].body == REJECTION_GUIDANCE[RejectReason.location_too_far]

    def test_unknown_reason_code(self, db, make_request):
        request = make_request()
        with pytest.raises(ValueError):
            VerificationWorkflow(db).reject(request.id, "looked_suspicious")

    def test_reject_after_approve_is_illegal(self, db, make_request):
        request = make_request()
        workflow = VerificationWorkflow(db)
        workflow.approve(request.id)

        with pytest.raises(IllegalTransitionError):
            workflow.reject(request.id, RejectReason.other)

        db.refresh(request)
        assert request.status == "approved"
        assert request.rejection_reason is None

    def test_every_reason_has_guidance(self):
        assert set(REJECTION_GUIDANCE) == set(RejectReason)


class TestRequestInfo:
    """Test follow-up questions."""

    def test_follow_up_appends_history(self, db, make_request, notifier):
        request = make_request(status="needs_info")
        db.add(VerificationInfoRequest(request_id=request.id, admin_id="admin-1",
                                       message="Show the code", created_at_ms=1))
        db.commit()

        updated = VerificationWorkflow(db, notifier).request_info(
            request.id, "follow-up", admin_id="admin-1"
        )

        assert updated.status == "needs_info"
        assert [i.message for i in updated.info_requests] == ["Show the code", "follow-up"]
        assert len(notifier.events) == 1
        assert notifier.events[0].type == "verification_info_requested"
        assert notifier.events[0].body == "follow-up"

    def test_moves_pending_to_needs_info(self, db, make_request):
        request = make_request()
        updated = VerificationWorkflow(db).request_info(request.id, "Retake photo")
        assert updated.status == "needs_info"
        assert len(updated.info_requests) == 1

    def test_illegal_after_rejection(self, db, make_request):
        request = make_request()
        workflow = VerificationWorkflow(db)
        workflow.reject(request.id, RejectReason.image_quality)

        with pytest.raises(IllegalTransitionError):
            workflow.request_info(request.id, "one more thing")

        db.refresh(request)
        assert request.info_requests == []


class TestReminderAndReply:
    """Actions that never change status."""

    def test_reminder_repeats_last_question(self, db, make_request, notifier):
        request = make_request()
        workflow = VerificationWorkflow(db, notifier)
        workflow.request_info(request.id, "Please show your badge")

        updated = workflow.send_reminder(request.id, admin_id="admin-1")

        assert updated.status == "needs_info"
        assert notifier.events[-1].type == "verification_reminder"
        assert notifier.events[-1].body == "Please show your badge"

    def test_reminder_on_decided_request_is_quiet(self, db, make_request, notifier):
        request = make_request()
        workflow = VerificationWorkflow(db, notifier)
        workflow.approve(request.id)

        updated = workflow.send_reminder(request.id)

        assert updated.status == "approved"
        assert [e.type for e in notifier.events] == ["verification_approved"]

    @pytest.mark.parametrize("status", ["pending", "needs_info", "approved", "rejected"])
    def test_reply_in_any_state(self, db, make_request, applicant, status):
        request = make_request(status=status)

        updated = VerificationWorkflow(db).reply(request.id, "Here is another photo")

        assert updated.status == status
        assert len(updated.messages) == 1
        assert updated.messages[0].author_id == applicant.id

    def test_replies_keep_order(self, db, make_request):
        request = make_request()
        workflow = VerificationWorkflow(db)
        workflow.reply(request.id, "first")
        updated = workflow.reply(request.id, "second")
        assert [m.message for m in updated.messages] == ["first", "second"]


class TestConcurrentReviewers:
    """Two reviewers acting on the same request."""

    def test_stale_reviewer_loses(self, db, session_factory, make_request):
        request = make_request()
        other_session = session_factory()
        try:
            VerificationWorkflow(other_session).approve(request.id, admin_id="admin-fast")
        finally:
            other_session.close()

        # `db` still holds the request as pending
        with pytest.raises(IllegalTransitionError) as exc_info:
            VerificationWorkflow(db).reject(request.id, RejectReason.other, admin_id="admin-slow")

        assert exc_info.value.current_status == "approved"
        db.refresh(request)
        assert request.status == "approved"
        assert request.reviewed_by == "admin-fast"


class TestInfoRequestHistory:
    """Legacy single-message records."""

    def test_legacy_message_read_as_history(self, make_request):
        request = make_request(status="needs_info", admin_message="Old question")
        history = info_request_history(request)
        assert history == [{"message": "Old question", "created_at_ms": None, "admin_id": None}]

    def test_list_wins_over_legacy_field(self, db, make_request):
        request = make_request(status="needs_info", admin_message="Old question")
        VerificationWorkflow(db).request_info(request.id, "New question")
        db.refresh(request)
        assert [h["message"] for h in info_request_history(request)] == ["New question"]
