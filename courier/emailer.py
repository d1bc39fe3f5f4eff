# courier/emailer.py
from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Iterable, Optional, Tuple

from .config import settings

logger = logging.getLogger(__name__)

# (filename, content bytes, mime type "maintype/subtype")
Attachment = Tuple[str, bytes, str]


def _smtp_client() -> smtplib.SMTP:
    if settings.smtp_port == 465:
        return smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, context=ssl.create_default_context(), timeout=30)
    client = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=30)
    client.starttls(context=ssl.create_default_context())
    return client


def send_email(
    to_email: str,
    subject: str,
    body: str,
    html: Optional[str] = None,
    attachments: Iterable[Attachment] = (),
) -> bool:
    """Best-effort send. Returns False when SMTP is not configured or the send fails."""
    if not settings.smtp_configured:
        logger.warning("Email transporter not configured; skipping '%s' to %s", subject, to_email)
        return False

    msg = EmailMessage()
    msg["From"] = settings.smtp_from
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    for filename, content, mime in attachments:
        maintype, subtype = mime.split("/", 1)
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    try:
        with _smtp_client() as client:
            client.login(settings.smtp_user, settings.smtp_pass)
            client.send_message(msg)
    except (smtplib.SMTPException, OSError):
        logger.exception("Failed to send '%s' to %s", subject, to_email)
        return False

    logger.info("Email '%s' sent to %s", subject, to_email)
    return True


def send_verification_email(to_email: str, code: str) -> bool:
    return send_email(
        to_email,
        "Verify your email address",
        f"Your verification code is: {code}",
        html=f"<p>Your verification code is: <b>{code}</b></p>",
    )


def send_invoice_email(to_email: str, subject: str, html: str, filename: str) -> bool:
    return send_email(
        to_email,
        subject,
        f"Thank you for choosing {settings.company_name}! Your invoice is attached.",
        html=html,
        attachments=[(filename, html.encode("utf-8"), "text/html")],
    )


def send_status_update_email(to_email: str, tracking_number: str, html: str) -> bool:
    return send_email(
        to_email,
        f"Package Status Update - {tracking_number}",
        f"Your package {tracking_number} has a new status. Track it at {settings.public_base_url}",
        html=html,
    )
