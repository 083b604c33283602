"""
Verification Service - submission intake, evidence updates and the review queue
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from staff_verify.config import settings
from staff_verify.db.models import User, VerificationRequest
from staff_verify.exceptions import (
    ApplicantNotFoundError, InvalidSubmissionError, RequestNotFoundError
)

logger = logging.getLogger(__name__)


def daily_code(day: Optional[date] = None, prefix: Optional[str] = None) -> str:
    """Code applicants write on paper in the photo, e.g. ENG-0703 for 7 March."""
    day = day or datetime.now(timezone.utc).date()
    prefix = prefix or settings.VERIFICATION_CODE_PREFIX
    return f"{prefix}-{day.day:02d}{day.month:02d}"


def code_matches(provided: Optional[str], expected: str) -> Optional[bool]:
    if not provided or not provided.strip():
        return None
    return "".join(provided.split()).upper() == "".join(expected.split()).upper()


class VerificationService:
    """Service for creating and querying verification requests"""

    def submit(
        self,
        db: Session,
        applicant_id: str,
        data: Dict[str, Any],
        today: Optional[date] = None
    ) -> VerificationRequest:
        """
        Create a pending verification request for an applicant.

        Args:
            db: Database session
            applicant_id: Submitting user
            data:
                - store_id: overrides the user's saved store
                - photo_url, code_image_url, submitted_code
                - device_location: {lat, lng, captured_at_ms}
                - exif_location: {lat, lng}

        The applicant's user record is marked pending in the same commit.
        """
        user = db.query(User).filter(User.id == applicant_id).first()
        if user is None:
            raise ApplicantNotFoundError(applicant_id)

        if not (user.email or user.name):
            raise InvalidSubmissionError("Applicant has neither an email nor a name")

        if not data.get("photo_url") and not data.get("submitted_code"):
            raise InvalidSubmissionError("Provide a photo or a verification code")

        expected_code = daily_code(today)
        device = data.get("device_location") or {}
        exif = data.get("exif_location") or {}
        submitted_at = datetime.now(timezone.utc).replace(tzinfo=None)

        request = VerificationRequest(
            applicant_id=user.id,
            store_id=data.get("store_id") or user.store_id,
            applicant_email=user.email,
            applicant_name=user.name,
            photo_url=data.get("photo_url"),
            code_image_url=data.get("code_image_url"),
            submitted_code=data.get("submitted_code"),
            daily_code=expected_code,
            code_matches=code_matches(data.get("submitted_code"), expected_code),
            device_latitude=device.get("lat"),
            device_longitude=device.get("lng"),
            device_captured_at_ms=device.get("captured_at_ms"),
            exif_has_gps=True if exif.get("lat") is not None else None,
            exif_latitude=exif.get("lat"),
            exif_longitude=exif.get("lng"),
            status="pending",
            submitted_at=submitted_at,
        )

        try:
            db.add(request)
            user.verification_status = "pending"
            user.last_verification_submission = submitted_at
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(request)
        logger.info(f"Verification request {request.id} submitted by {applicant_id}")
        return request

    def attach_exif(
        self,
        db: Session,
        request_id: str,
        has_gps: bool,
        lat: Optional[float] = None,
        lng: Optional[float] = None
    ) -> VerificationRequest:
        """Record EXIF GPS extracted from the uploaded photo."""
        request = self.get(db, request_id)
        if has_gps and (lat is None or lng is None):
            raise InvalidSubmissionError("EXIF GPS requires both lat and lng")

        try:
            request.exif_has_gps = bool(has_gps)
            request.exif_latitude = lat if has_gps else None
            request.exif_longitude = lng if has_gps else None
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(request)
        logger.info(f"EXIF attached to verification request {request_id} (gps={has_gps})")
        return request

    def get(self, db: Session, request_id: str) -> VerificationRequest:
        request = db.query(VerificationRequest).filter(
            VerificationRequest.id == request_id
        ).first()
        if request is None:
            raise RequestNotFoundError(request_id)
        return request

    def list_requests(
        self,
        db: Session,
        status: Optional[str] = None,
        store_id: Optional[str] = None,
        applicant_id: Optional[str] = None,
        limit: int = 50
    ) -> List[VerificationRequest]:
        """Review queue, newest first."""
        query = db.query(VerificationRequest)

        if status:
            query = query.filter(VerificationRequest.status == status)
        if store_id:
            query = query.filter(VerificationRequest.store_id == store_id)
        if applicant_id:
            query = query.filter(VerificationRequest.applicant_id == applicant_id)

        return query.order_by(
            VerificationRequest.submitted_at.desc(),
            VerificationRequest.id
        ).limit(limit).all()


# Singleton instance
verification_service = VerificationService()
