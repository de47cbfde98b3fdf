"""
Tests for the SMTP email transport.
"""
import smtplib
from unittest.mock import patch

import pytest

from core.exceptions import DeliveryError
from services.email_service import EmailService


@pytest.fixture
def service():
    service = EmailService()
    service.enabled = True
    service.smtp_username = "mailer"
    service.smtp_password = "secret"
    return service


def test_disabled_transport_sends_nothing():
    service = EmailService()
    service.enabled = False

    with patch("services.email_service.smtplib.SMTP") as smtp:
        message_id = service.send_notification("alex@example.com", "Alex", "Subject", "Body")

    smtp.assert_not_called()
    assert message_id.startswith("<disabled-")


@patch("services.email_service.smtplib.SMTP")
def test_sends_plain_text_message(smtp, service):
    server = smtp.return_value.__enter__.return_value

    message_id = service.send_notification("alex@example.com", "Alex Facilitator", "Week 3 reminder", "Please submit.")

    smtp.assert_called_once_with(service.smtp_server, service.smtp_port, timeout=service.smtp_timeout)
    server.starttls.assert_called_once()
    server.login.assert_called_once_with("mailer", "secret")
    sent = server.send_message.call_args[0][0]
    assert sent["To"] == "Alex Facilitator <alex@example.com>"
    assert sent["Subject"] == "Week 3 reminder"
    assert message_id == sent["Message-ID"]


@patch("services.email_service.smtplib.SMTP")
def test_no_login_without_credentials(smtp, service):
    service.smtp_username = None
    server = smtp.return_value.__enter__.return_value

    service.send_notification("alex@example.com", None, "Subject", "Body")

    server.login.assert_not_called()
    assert server.send_message.call_args[0][0]["To"] == "alex@example.com"


@pytest.mark.parametrize("error", [
    smtplib.SMTPRecipientsRefused({"alex@example.com": (550, b"no such user")}),
    ConnectionRefusedError("Connection refused"),
])
def test_transport_failure_becomes_delivery_error(service, error):
    with patch("services.email_service.smtplib.SMTP", side_effect=error):
        with pytest.raises(DeliveryError) as exc_info:
            service.send_notification("alex@example.com", "Alex", "Subject", "Body")

    assert exc_info.value.recipient == "alex@example.com"
