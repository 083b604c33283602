"""
Verification Review Workflow

State machine over a verification request's status, driven by reviewers:

    pending, needs_info --request_info--> needs_info
    pending, needs_info --approve-------> approved   (terminal)
    pending, needs_info --reject--------> rejected   (terminal)
    any                 --send_reminder-> unchanged
    any                 --reply---------> unchanged

Legality is decided in one place (`apply_transition`). Status writes are
compare-and-set against the legal source states, so two reviewers racing
on the same request cannot both win. The request and the applicant user
record are committed together.

Notifications are emitted after the commit and are best-effort: a failing
notifier never undoes a transition.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from staff_verify.config import settings
from staff_verify.db.models import (
    User, VerificationRequest, VerificationInfoRequest, VerificationMessage
)
from staff_verify.exceptions import (
    ApplicantNotFoundError, IllegalTransitionError, RequestNotFoundError,
    VerificationError
)

logger = logging.getLogger(__name__)


class RequestStatus(str, Enum):
    pending = "pending"
    needs_info = "needs_info"
    approved = "approved"
    rejected = "rejected"


class WorkflowAction(str, Enum):
    request_info = "request_info"
    send_reminder = "send_reminder"
    approve = "approve"
    reject = "reject"
    reply = "reply"


class RejectReason(str, Enum):
    location_too_far = "location_too_far"
    location_missing = "location_missing"
    invalid_code = "invalid_code"
    face_not_visible = "face_not_visible"
    image_quality = "image_quality"
    multiple_people = "multiple_people"
    outside_time_window = "outside_time_window"
    roster_mismatch = "roster_mismatch"
    edited_image = "edited_image"
    other = "other"


# Applicant-facing guidance per reject reason
REJECTION_GUIDANCE = {
    RejectReason.location_too_far: "Take your verification photo inside your store with location access turned on.",
    RejectReason.location_missing: "We could not read a location. Allow location access in your browser and try again.",
    RejectReason.invalid_code: "Write today's verification code clearly on paper and make sure it is readable in the photo.",
    RejectReason.face_not_visible: "Make sure your face is clearly visible and not covered.",
    RejectReason.image_quality: "The photo was too dark or blurry. Retake it in good lighting.",
    RejectReason.multiple_people: "Only you should appear in the verification photo.",
    RejectReason.outside_time_window: "Submit a photo taken just now, not an older picture.",
    RejectReason.roster_mismatch: "Your details do not match the store roster. Use the email your store manager has on file.",
    RejectReason.edited_image: "Upload an original, unedited photo taken with your camera.",
    RejectReason.other: "Your submission did not meet our verification requirements. Please try again.",
}

TERMINAL_STATES = {RequestStatus.approved, RequestStatus.rejected}
_OPEN_STATES = (RequestStatus.pending, RequestStatus.needs_info)

# action -> {from_state: to_state}
TRANSITIONS: Dict[WorkflowAction, Dict[RequestStatus, RequestStatus]] = {
    WorkflowAction.request_info: {s: RequestStatus.needs_info for s in _OPEN_STATES},
    WorkflowAction.approve: {s: RequestStatus.approved for s in _OPEN_STATES},
    WorkflowAction.reject: {s: RequestStatus.rejected for s in _OPEN_STATES},
    WorkflowAction.send_reminder: {s: s for s in RequestStatus},
    WorkflowAction.reply: {s: s for s in RequestStatus},
}


def apply_transition(
    current: RequestStatus,
    action: WorkflowAction,
    request_id: Optional[str] = None
) -> RequestStatus:
    """Return the next status, or raise IllegalTransitionError."""
    current = RequestStatus(current)
    action = WorkflowAction(action)
    next_status = TRANSITIONS[action].get(current)
    if next_status is None:
        raise IllegalTransitionError(request_id, current.value, action.value)
    return next_status


def source_states(action: WorkflowAction) -> List[RequestStatus]:
    return list(TRANSITIONS[WorkflowAction(action)].keys())


class NotificationEvent(BaseModel):
    recipient_id: str
    type: str
    title: str
    body: str
    link: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class Notifier(Protocol):
    def emit(self, event: NotificationEvent) -> None:
        ...


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def request_link(request_id: str) -> str:
    return f"{settings.APP_BASE_URL}/staff/verification?request={request_id}"


class VerificationWorkflow:
    """
    Reviewer actions on verification requests.

    Every method returns the refreshed request or raises a typed error.
    Database errors propagate unchanged after the session is rolled back.
    """

    def __init__(self, db: Session, notifier: Optional[Notifier] = None):
        self.db = db
        self.notifier = notifier

    def approve(self, request_id: str, admin_id: Optional[str] = None) -> VerificationRequest:
        reviewed_at = _now()

        def apply_user(user_query):
            return user_query.update({
                User.verification_status: RequestStatus.approved.value,
                User.is_verified: True,
                User.rejection_reason: None,
                User.verified_at: reviewed_at,
            }, synchronize_session=False)

        request = self._transition(
            request_id,
            WorkflowAction.approve,
            {
                VerificationRequest.reviewed_at: reviewed_at,
                VerificationRequest.reviewed_by: admin_id,
                VerificationRequest.rejection_reason: None,
            },
            apply_user=apply_user,
        )
        self._notify(NotificationEvent(
            recipient_id=request.applicant_id,
            type="verification_approved",
            title="You're verified",
            body="Your staff verification was approved. You now have full access.",
            link=request_link(request.id),
            meta={"request_id": request.id},
        ))
        return request

    def reject(
        self,
        request_id: str,
        reason_code: RejectReason,
        admin_id: Optional[str] = None
    ) -> VerificationRequest:
        reason = RejectReason(reason_code)
        reviewed_at = _now()

        def apply_user(user_query):
            return user_query.update({
                User.verification_status: RequestStatus.rejected.value,
                User.is_verified: False,
                User.rejection_reason: reason.value,
            }, synchronize_session=False)

        request = self._transition(
            request_id,
            WorkflowAction.reject,
            {
                VerificationRequest.reviewed_at: reviewed_at,
                VerificationRequest.reviewed_by: admin_id,
                VerificationRequest.rejection_reason: reason.value,
            },
            apply_user=apply_user,
        )
        self._notify(NotificationEvent(
            recipient_id=request.applicant_id,
            type="verification_rejected",
            title="Verification not approved",
            body=REJECTION_GUIDANCE[reason],
            link=request_link(request.id),
            meta={"request_id": request.id, "reason": reason.value},
        ))
        return request

    def request_info(
        self,
        request_id: str,
        message: str,
        admin_id: Optional[str] = None
    ) -> VerificationRequest:
        created_at_ms = _now_ms()

        def append_history():
            self.db.add(VerificationInfoRequest(
                request_id=request_id,
                admin_id=admin_id,
                message=message,
                created_at_ms=created_at_ms,
            ))

        request = self._transition(
            request_id,
            WorkflowAction.request_info,
            {},
            extra_writes=append_history,
        )
        self._notify(NotificationEvent(
            recipient_id=request.applicant_id,
            type="verification_info_requested",
            title="More information needed",
            body=message,
            link=request_link(request.id),
            meta={"request_id": request.id, "created_at_ms": created_at_ms},
        ))
        return request

    def send_reminder(self, request_id: str, admin_id: Optional[str] = None) -> VerificationRequest:
        request = self._load(request_id)
        status = RequestStatus(request.status)
        apply_transition(status, WorkflowAction.send_reminder, request_id)

        if status in TERMINAL_STATES:
            logger.warning(
                f"Reminder skipped for decided verification request {request_id} ({status.value})"
            )
            return request

        history = info_request_history(request)
        last_question = history[-1]["message"] if history else None
        self._notify(NotificationEvent(
            recipient_id=request.applicant_id,
            type="verification_reminder",
            title="Reminder: your verification needs attention",
            body=last_question or "Please complete your staff verification.",
            link=request_link(request.id),
            meta={"request_id": request.id, "admin_id": admin_id},
        ))
        logger.info(f"Reminder sent for verification request {request_id}")
        return request

    def reply(
        self,
        request_id: str,
        message: str,
        author_id: Optional[str] = None
    ) -> VerificationRequest:
        request = self._load(request_id)
        apply_transition(RequestStatus(request.status), WorkflowAction.reply, request_id)

        try:
            self.db.add(VerificationMessage(
                request_id=request_id,
                author_id=author_id or request.applicant_id,
                message=message,
                created_at_ms=_now_ms(),
            ))
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(request)
        logger.info(f"Applicant reply recorded on verification request {request_id}")
        return request

    def _load(self, request_id: str) -> VerificationRequest:
        request = self.db.query(VerificationRequest).filter(
            VerificationRequest.id == request_id
        ).first()
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def _transition(
        self,
        request_id: str,
        action: WorkflowAction,
        request_fields: Dict[Any, Any],
        apply_user=None,
        extra_writes=None
    ) -> VerificationRequest:
        request = self._load(request_id)
        current = RequestStatus(request.status)
        try:
            next_status = apply_transition(current, action, request_id)
        except IllegalTransitionError:
            logger.warning(
                f"Illegal {action.value} on verification request {request_id} ({current.value})"
            )
            raise

        legal_from = [s.value for s in source_states(action)]
        try:
            updated = self.db.query(VerificationRequest).filter(
                VerificationRequest.id == request_id,
                VerificationRequest.status.in_(legal_from)
            ).update(
                {VerificationRequest.status: next_status.value, **request_fields},
                synchronize_session=False
            )
            if updated != 1:
                # Another reviewer moved the request since we read it
                self.db.rollback()
                self.db.refresh(request)
                logger.warning(
                    f"Concurrent {action.value} lost on verification request {request_id} "
                    f"({request.status})"
                )
                raise IllegalTransitionError(request_id, request.status, action.value)

            if apply_user is not None:
                user_query = self.db.query(User).filter(User.id == request.applicant_id)
                if apply_user(user_query) != 1:
                    self.db.rollback()
                    raise ApplicantNotFoundError(request.applicant_id)

            if extra_writes is not None:
                extra_writes()

            self.db.commit()
        except VerificationError:
            raise
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(request)
        logger.info(
            f"Verification request {request_id}: {action.value} "
            f"{current.value} -> {next_status.value}"
        )
        return request

    def _notify(self, event: NotificationEvent) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.emit(event)
        except Exception as e:
            logger.error(
                f"Notification {event.type} to {event.recipient_id} failed: {e}"
            )


def info_request_history(request: VerificationRequest) -> List[Dict[str, Any]]:
    """
    Follow-up questions, oldest first.

    Older records only carry the single `admin_message` field; it is
    surfaced as one history entry when the list is empty.
    """
    history = [
        {
            "message": item.message,
            "created_at_ms": item.created_at_ms,
            "admin_id": item.admin_id,
        }
        for item in request.info_requests
    ]
    if not history and request.admin_message:
        history.append({
            "message": request.admin_message,
            "created_at_ms": None,
            "admin_id": None,
        })
    return history
