"""
Email Service - Sends notification emails via SMTP
"""
import logging
import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Dict, Any, Optional
from staff_verify.config import settings

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails via SMTP"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_pass = settings.SMTP_PASS
        self.from_email = settings.SMTP_FROM_EMAIL
        # Check if SMTP is properly configured
        self.smtp_configured = bool(
            self.smtp_host and
            self.smtp_host != "localhost" and
            self.smtp_user and
            self.smtp_pass
        )

    async def send_email(
        self,
        to_email: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Send an email.

        Connection and protocol errors propagate so the calling task can
        retry delivery.
        """
        if not self.smtp_configured:
            logger.warning(f"SMTP not configured - simulating email send to {to_email}")
            return {
                "success": True,
                "message": "Email simulated (SMTP not configured)",
                "simulated": True,
                "to": to_email,
                "subject": subject
            }

        if html_body:
            message = MIMEMultipart("alternative")
            message.attach(MIMEText(body, "plain"))
            message.attach(MIMEText(html_body, "html"))
        else:
            message = MIMEText(body, "plain")

        message["Subject"] = subject
        message["From"] = self.from_email
        message["To"] = to_email

        async with aiosmtplib.SMTP(
            hostname=self.smtp_host,
            port=self.smtp_port,
            use_tls=True,
            timeout=30
        ) as smtp:
            await smtp.login(self.smtp_user, self.smtp_pass)
            await smtp.send_message(message)

        logger.info(f"Email sent successfully to {to_email}")
        return {
            "success": True,
            "message": "Email sent successfully"
        }

    async def send_notification(
        self,
        to_email: str,
        title: str,
        body: str,
        link: Optional[str] = None
    ) -> Dict[str, Any]:
        """Send the email copy of an in-app notification"""
        full_body = body
        if link:
            full_body = f"{body}\n\nOpen: {link}"
        full_body = f"""{full_body}

---
Staff Verification Team
This is an automated message.
"""
        return await self.send_email(
            to_email=to_email,
            subject=title,
            body=full_body
        )


# Singleton instance
email_service = EmailService()
