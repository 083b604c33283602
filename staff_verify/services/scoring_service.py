"""
Scoring Service - loads a verification request with its store and roster,
runs the score engine and writes the score fields back
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from staff_verify.db.models import RosterEntry, Store, VerificationRequest
from staff_verify.exceptions import RequestNotFoundError
from staff_verify.services import score_engine
from staff_verify.services.score_engine import (
    DeviceLocation, GeoPoint, RosterRecord, StoreRecord, Submission
)

logger = logging.getLogger(__name__)

SCORE_FIELDS = ("auto_score", "reasons", "distance_meters", "location_source")


class ScoringService:
    """Adapter between stored verification requests and the score engine"""

    def build_submission(self, request: VerificationRequest) -> Submission:
        device = None
        if request.device_latitude is not None or request.device_longitude is not None:
            device = DeviceLocation(
                lat=request.device_latitude,
                lng=request.device_longitude,
                captured_at_ms=request.device_captured_at_ms,
            )

        exif = None
        if request.exif_has_gps is not False and request.exif_latitude is not None:
            exif = GeoPoint(lat=request.exif_latitude, lng=request.exif_longitude)

        return Submission(
            id=request.id,
            store_id=request.store_id,
            applicant_email=request.applicant_email,
            applicant_name=request.applicant_name,
            device_location=device,
            exif_location=exif,
        )

    def load_store(self, db: Session, store_id: Optional[str]) -> Optional[StoreRecord]:
        if not store_id:
            return None
        store = db.query(Store).filter(Store.id == store_id).first()
        if store is None:
            return None
        location = None
        if store.latitude is not None and store.longitude is not None:
            location = GeoPoint(lat=store.latitude, lng=store.longitude)
        return StoreRecord(
            store_id=store.id,
            name=store.name,
            address=store.address,
            location=location,
        )

    def load_roster(self, db: Session, store_id: Optional[str]) -> List[RosterRecord]:
        if not store_id:
            return []
        entries = db.query(RosterEntry).filter(
            RosterEntry.store_id == store_id
        ).order_by(RosterEntry.email).all()
        return [
            RosterRecord(
                email=e.email,
                email_lower=e.email_lower,
                name=e.name,
                normalized_name=e.normalized_name,
            )
            for e in entries
        ]

    def score_request(
        self,
        db: Session,
        request_id: str,
        now_ms: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Score a stored verification request and persist the result.

        The write is skipped when the stored score fields already match,
        so duplicate trigger deliveries cause no extra writes.

        Returns:
            {"request_id", "written", "auto_score", "reasons",
             "distance_meters", "location_source"}
        """
        request = db.query(VerificationRequest).filter(
            VerificationRequest.id == request_id
        ).first()
        if request is None:
            raise RequestNotFoundError(request_id)

        submission = self.build_submission(request)
        store = self.load_store(db, request.store_id)
        roster = self.load_roster(db, request.store_id)

        result = score_engine.score(submission, store, roster, now_ms=now_ms)
        patch = result.to_patch()

        current = {field: getattr(request, field) for field in SCORE_FIELDS}
        if current == patch:
            logger.debug(f"Score unchanged for verification request {request_id}")
            return {"request_id": request_id, "written": False, **patch}

        try:
            for field, value in patch.items():
                setattr(request, field, value)
            request.scored_at = datetime.now(timezone.utc).replace(tzinfo=None)
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info(
            f"Scored verification request {request_id}: {patch['auto_score']} {patch['reasons']}"
        )
        return {"request_id": request_id, "written": True, **patch}


# Singleton instance
scoring_service = ScoringService()
