"""
Celery Tasks for async processing
"""
import asyncio
import logging
from typing import Any, Dict

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from staff_verify.db.database import SessionLocal
from staff_verify.db.models import Notification, User
from staff_verify.exceptions import VerificationError
from staff_verify.services.email_service import email_service
from staff_verify.services.scoring_service import scoring_service

logger = logging.getLogger(__name__)


def get_db_session():
    """Get database session for tasks"""
    return SessionLocal()


@shared_task(bind=True, max_retries=3, default_retry_delay=10)
def score_verification_request(self, request_id: str) -> Dict[str, Any]:
    """
    Score a verification request after it was created or its evidence changed.

    Safe to run more than once for the same request: the same stored
    inputs produce the same score and unchanged scores are not rewritten.
    """
    db = get_db_session()
    try:
        return scoring_service.score_request(db, request_id)
    except VerificationError as e:
        # Contract problems: retrying cannot help
        logger.warning(f"Scoring skipped for {request_id}: {e}")
        return {"request_id": request_id, "written": False, "error": str(e)}
    except SQLAlchemyError as e:
        logger.error(f"Scoring failed for {request_id}: {e}")
        raise self.retry(exc=e)
    finally:
        db.close()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def deliver_notification(self, notification_id: int) -> Dict[str, Any]:
    """Send the email copy of an in-app notification."""
    db = get_db_session()
    try:
        notification = db.query(Notification).filter(
            Notification.id == notification_id
        ).first()
        if notification is None or notification.email_sent:
            return {"notification_id": notification_id, "sent": False}

        user = db.query(User).filter(User.id == notification.recipient_id).first()
        if user is None or not user.email:
            logger.warning(f"No email address for notification {notification_id}")
            return {"notification_id": notification_id, "sent": False}

        loop = asyncio.new_event_loop()
        try:
            result = loop.run_until_complete(
                email_service.send_notification(
                    to_email=user.email,
                    title=notification.title,
                    body=notification.body or "",
                    link=notification.link
                )
            )
        finally:
            loop.close()

        notification.email_sent = True
        db.commit()

        logger.info(f"Notification {notification_id} emailed to {user.email}")
        return {"notification_id": notification_id, "sent": True, **result}

    except Exception as e:
        db.rollback()
        logger.error(f"Notification {notification_id} delivery failed: {e}")
        raise self.retry(exc=e)
    finally:
        db.close()
