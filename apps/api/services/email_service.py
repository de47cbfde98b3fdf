"""
Email Service

Transport for queued notifications (reminders, alerts, deadline notices).
Uses SMTP for now, can be swapped for SendGrid/Mailgun later.
"""

import smtplib
import uuid
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from email.utils import make_msgid
from typing import Optional
from core.config import settings
from core.exceptions import DeliveryError
import logging

logger = logging.getLogger(__name__)


class EmailService:
    """Service for sending emails"""

    def __init__(self):
        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = settings.SMTP_PORT
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.smtp_timeout = settings.SMTP_TIMEOUT_S
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.enabled = settings.EMAIL_ENABLED

    def send_notification(
        self,
        to_email: str,
        to_name: Optional[str],
        subject: str,
        body: str,
    ) -> str:
        """
        Send a plain-text notification email.

        Returns the message id. Raises DeliveryError when the transport
        rejects or cannot reach the server; the caller decides what to do
        with the job.
        """
        if not self.enabled:
            message_id = f"<disabled-{uuid.uuid4().hex}@{self.from_email.split('@')[-1]}>"
            logger.info(f"Email disabled, would send to {to_email}: {subject}")
            return message_id

        msg = MIMEMultipart('alternative')
        msg['Subject'] = subject
        msg['From'] = f"{self.from_name} <{self.from_email}>"
        msg['To'] = f"{to_name} <{to_email}>" if to_name else to_email
        msg['Message-ID'] = make_msgid(domain=self.from_email.split('@')[-1])
        msg.attach(MIMEText(body, 'plain'))

        try:
            with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.smtp_timeout) as server:
                if self.smtp_username and self.smtp_password:
                    server.starttls()
                    server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            raise DeliveryError(to_email, str(e)) from e

        logger.info(f"Email sent to {to_email}: {subject}")
        return msg['Message-ID']


# Singleton instance
email_service = EmailService()
