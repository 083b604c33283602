"""
Tests for notification email delivery.
"""

import asyncio

from staff_verify.db.models import Notification
from staff_verify.services.email_service import EmailService
from staff_verify.worker import tasks


class TestEmailService:
    """Test email sending without an SMTP server."""

    def test_unconfigured_smtp_is_simulated(self):
        service = EmailService()
        service.smtp_configured = False

        result = asyncio.run(service.send_notification(
            to_email="jane.doe@example.com",
            title="You're verified",
            body="Welcome",
            link="http://localhost/x",
        ))

        assert result["simulated"] is True
        assert result["subject"] == "You're verified"


class TestDeliverNotification:
    """Test the delivery task."""

    def test_marks_email_sent(self, db, session_factory, applicant, monkeypatch):
        monkeypatch.setattr(tasks, "get_db_session", session_factory)
        monkeypatch.setattr(tasks.email_service, "smtp_configured", False)
        notification = Notification(recipient_id=applicant.id, type="verification_approved",
                                    title="You're verified", body="Welcome")
        db.add(notification)
        db.commit()

        outcome = tasks.deliver_notification(notification.id)

        assert outcome["sent"] is True
        db.refresh(notification)
        assert notification.email_sent is True

    def test_already_sent_is_skipped(self, db, session_factory, applicant, monkeypatch):
        monkeypatch.setattr(tasks, "get_db_session", session_factory)
        notification = Notification(recipient_id=applicant.id, type="t", title="t",
                                    email_sent=True)
        db.add(notification)
        db.commit()

        assert tasks.deliver_notification(notification.id)["sent"] is False
