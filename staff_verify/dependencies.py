"""
FastAPI dependencies for the Staff Verification Service
"""
from typing import Callable, Generator, Optional
from fastapi import Depends, HTTPException, Header, status
from sqlalchemy.orm import Session
from staff_verify.db.database import SessionLocal
from staff_verify.config import settings
from staff_verify.services.notification_service import NotificationService
from staff_verify.services.workflow import VerificationWorkflow


def get_db() -> Generator[Session, None, None]:
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


async def verify_api_key(x_api_key: Optional[str] = Header(None)) -> str:
    """Verify API key for admin endpoints"""
    if not x_api_key or x_api_key != settings.API_KEY:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key"
        )
    return x_api_key


async def get_admin_id(x_admin_id: Optional[str] = Header(None)) -> Optional[str]:
    """Reviewer identity forwarded by the admin surface"""
    return x_admin_id


def _enqueue_scoring(request_id: str) -> None:
    from staff_verify.worker.tasks import score_verification_request
    score_verification_request.delay(request_id)


def get_score_dispatcher() -> Callable[[str], None]:
    """Trigger fired when a verification request is created or its evidence changes"""
    return _enqueue_scoring


def get_notifier() -> NotificationService:
    return NotificationService(SessionLocal)


def get_workflow(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier)
) -> VerificationWorkflow:
    return VerificationWorkflow(db, notifier)
