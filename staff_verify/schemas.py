"""
Pydantic Schemas for the Staff Verification APIs.
Request and Response models for all endpoints.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime

from staff_verify.db.models import VerificationRequest
from staff_verify.services.workflow import RejectReason, info_request_history


# ============================================
# SUBMISSION SCHEMAS
# ============================================
class DeviceLocationIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    captured_at_ms: Optional[int] = Field(None, description="Capture time, epoch milliseconds")


class GeoPointIn(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class SubmissionRequest(BaseModel):
    """Applicant verification submission."""
    applicant_id: str = Field(..., description="Submitting user")
    store_id: Optional[str] = Field(None, description="Overrides the user's saved store")
    photo_url: Optional[str] = None
    code_image_url: Optional[str] = None
    submitted_code: Optional[str] = Field(None, max_length=100)
    device_location: Optional[DeviceLocationIn] = None
    exif_location: Optional[GeoPointIn] = None

    class Config:
        json_schema_extra = {
            "example": {
                "applicant_id": "u_123",
                "photo_url": "https://cdn.example.com/verification/u_123/selfie.jpg",
                "submitted_code": "ENG-0703",
                "device_location": {"lat": 40.7128, "lng": -74.006, "captured_at_ms": 1709800000000}
            }
        }


class ExifUpdate(BaseModel):
    """EXIF GPS extracted from the uploaded photo."""
    has_gps: bool
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)


# ============================================
# REVIEW SCHEMAS
# ============================================
class RejectRequest(BaseModel):
    reason: RejectReason


class InfoRequestIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)


class ReplyIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    author_id: Optional[str] = None


# ============================================
# RESPONSE SCHEMAS
# ============================================
class InfoRequestOut(BaseModel):
    message: str
    created_at_ms: Optional[int] = None
    admin_id: Optional[str] = None


class MessageOut(BaseModel):
    id: int
    author_id: Optional[str] = None
    message: str
    created_at_ms: int


class VerificationRequestOut(BaseModel):
    id: str
    applicant_id: str
    store_id: Optional[str] = None
    status: str
    photo_url: Optional[str] = None
    code_image_url: Optional[str] = None
    submitted_code: Optional[str] = None
    daily_code: Optional[str] = None
    code_matches: Optional[bool] = None
    auto_score: Optional[int] = None
    reasons: List[str] = Field(default_factory=list)
    distance_meters: Optional[int] = None
    location_source: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    info_requests: List[InfoRequestOut] = Field(default_factory=list)
    messages: List[MessageOut] = Field(default_factory=list)

    @classmethod
    def from_model(cls, request: VerificationRequest) -> "VerificationRequestOut":
        return cls(
            id=request.id,
            applicant_id=request.applicant_id,
            store_id=request.store_id,
            status=request.status,
            photo_url=request.photo_url,
            code_image_url=request.code_image_url,
            submitted_code=request.submitted_code,
            daily_code=request.daily_code,
            code_matches=request.code_matches,
            auto_score=request.auto_score,
            reasons=request.reasons or [],
            distance_meters=request.distance_meters,
            location_source=request.location_source,
            rejection_reason=request.rejection_reason,
            reviewed_by=request.reviewed_by,
            reviewed_at=request.reviewed_at,
            submitted_at=request.submitted_at,
            info_requests=[InfoRequestOut(**item) for item in info_request_history(request)],
            messages=[
                MessageOut(
                    id=m.id,
                    author_id=m.author_id,
                    message=m.message,
                    created_at_ms=m.created_at_ms,
                )
                for m in request.messages
            ],
        )


class NotificationOut(BaseModel):
    id: int
    recipient_id: str
    type: str
    title: str
    body: Optional[str] = None
    link: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    is_read: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RosterImportResponse(BaseModel):
    stores: int
    staff: int


class ErrorResponse(BaseModel):
    """Error body returned for typed service errors."""
    error: str
    detail: str
    retryable: bool = False
    current_status: Optional[str] = None
