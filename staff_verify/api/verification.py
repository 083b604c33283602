"""
Verification Router - applicant submissions, evidence updates and replies

Provides:
- POST /verification/requests: submit a verification attempt
- GET /verification/requests: review queue (newest first)
- GET /verification/requests/{request_id}: one request with its history
- POST /verification/requests/{request_id}/exif: attach EXIF GPS
- POST /verification/requests/{request_id}/messages: applicant reply
"""
import logging
from typing import Callable, List, Optional
from fastapi import APIRouter, Depends, Query
from kombu.exceptions import OperationalError as BrokerError
from sqlalchemy.orm import Session

from staff_verify.dependencies import get_db, get_score_dispatcher, get_workflow
from staff_verify.schemas import (
    ExifUpdate, ReplyIn, SubmissionRequest, VerificationRequestOut
)
from staff_verify.services.verification_service import verification_service
from staff_verify.services.workflow import RequestStatus, VerificationWorkflow

logger = logging.getLogger(__name__)
router = APIRouter()


def _dispatch(dispatch_scoring: Callable[[str], None], request_id: str) -> None:
    # The row is already committed; a later evidence update re-triggers scoring
    try:
        dispatch_scoring(request_id)
    except BrokerError as e:
        logger.error(f"Scoring dispatch failed for verification request {request_id}: {e}")


@router.post("/requests", response_model=VerificationRequestOut, status_code=201)
async def submit_verification(
    request: SubmissionRequest,
    db: Session = Depends(get_db),
    dispatch_scoring: Callable[[str], None] = Depends(get_score_dispatcher)
):
    """
    Submit a verification attempt (selfie, daily code, location).

    The request starts `pending` and is scored asynchronously. If the
    queue is unreachable the request is still created, unscored.
    """
    created = verification_service.submit(
        db,
        request.applicant_id,
        request.model_dump(exclude={"applicant_id"})
    )
    _dispatch(dispatch_scoring, created.id)
    return VerificationRequestOut.from_model(created)


@router.get("/requests", response_model=List[VerificationRequestOut])
async def list_verification_requests(
    status: Optional[RequestStatus] = Query(None, description="Filter by status"),
    store_id: Optional[str] = Query(None),
    applicant_id: Optional[str] = Query(None),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    """Review queue, newest first"""
    requests = verification_service.list_requests(
        db,
        status=status.value if status else None,
        store_id=store_id,
        applicant_id=applicant_id,
        limit=limit
    )
    return [VerificationRequestOut.from_model(r) for r in requests]


@router.get("/requests/{request_id}", response_model=VerificationRequestOut)
async def get_verification_request(
    request_id: str,
    db: Session = Depends(get_db)
):
    """Get one verification request with follow-up and reply history"""
    return VerificationRequestOut.from_model(verification_service.get(db, request_id))


@router.post("/requests/{request_id}/exif", response_model=VerificationRequestOut)
async def attach_exif(
    request_id: str,
    update: ExifUpdate,
    db: Session = Depends(get_db),
    dispatch_scoring: Callable[[str], None] = Depends(get_score_dispatcher)
):
    """Attach EXIF GPS from the photo processor; triggers a re-score"""
    updated = verification_service.attach_exif(
        db, request_id, update.has_gps, update.lat, update.lng
    )
    _dispatch(dispatch_scoring, updated.id)
    return VerificationRequestOut.from_model(updated)


@router.post("/requests/{request_id}/messages", response_model=VerificationRequestOut)
async def reply_to_request(
    request_id: str,
    reply: ReplyIn,
    workflow: VerificationWorkflow = Depends(get_workflow)
):
    """Applicant reply on the request thread; never changes status"""
    updated = workflow.reply(request_id, reply.message, author_id=reply.author_id)
    return VerificationRequestOut.from_model(updated)
