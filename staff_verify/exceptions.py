"""
Typed errors raised by the verification services
"""
from typing import Optional


class VerificationError(Exception):
    """Base class for verification service errors."""


class RequestNotFoundError(VerificationError):
    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Verification request not found: {request_id}")


class ApplicantNotFoundError(VerificationError):
    def __init__(self, applicant_id: str):
        self.applicant_id = applicant_id
        super().__init__(f"Applicant user not found: {applicant_id}")


class IllegalTransitionError(VerificationError):
    """
    The requested action is not legal from the request's current status.

    Also raised when the status changed between the read and the write
    (another reviewer acted first). Retrying the same action is pointless.
    """

    def __init__(self, request_id: Optional[str], current_status: str, action: str):
        self.request_id = request_id
        self.current_status = current_status
        self.action = action
        super().__init__(
            f"Cannot {action} verification request {request_id}: "
            f"status is '{current_status}'"
        )


class InvalidSubmissionError(VerificationError):
    """Contract violation in submitted data (not a data-quality problem)."""
