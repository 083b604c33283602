"""
Notification Service - in-app notifications with an email copy queued
on the worker
"""
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from staff_verify.db.models import Notification
from staff_verify.services.workflow import NotificationEvent

logger = logging.getLogger(__name__)


def _enqueue_email(notification_id: int) -> None:
    from staff_verify.worker.tasks import deliver_notification
    deliver_notification.delay(notification_id)


class NotificationService:
    """
    Notification sink used by the review workflow.

    Uses its own session so a delivery problem never touches the
    reviewer's transaction.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        enqueue_email: Optional[Callable[[int], None]] = _enqueue_email
    ):
        self.session_factory = session_factory
        self.enqueue_email = enqueue_email

    def emit(self, event: NotificationEvent) -> Notification:
        db = self.session_factory()
        try:
            notification = Notification(
                recipient_id=event.recipient_id,
                type=event.type,
                title=event.title,
                body=event.body,
                link=event.link,
                meta=event.meta,
            )
            db.add(notification)
            db.commit()
            db.refresh(notification)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        if self.enqueue_email is not None:
            self.enqueue_email(notification.id)

        logger.info(f"Notification {event.type} queued for {event.recipient_id}")
        return notification


def list_notifications(db: Session, user_id: str, limit: int = 50) -> List[Notification]:
    return db.query(Notification).filter(
        Notification.recipient_id == user_id
    ).order_by(Notification.id.desc()).limit(limit).all()
