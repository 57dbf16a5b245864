"""Outgoing email delivery.

Development without an SMTP host prints messages to the log. Otherwise mail
goes out over SMTP (aiosmtplib) or, when only an HTTP API is configured,
through a transactional email API (httpx).
"""

import logging
from email.message import EmailMessage

import aiosmtplib
import httpx

from lazyuncle.config import settings

logger = logging.getLogger(__name__)


class EmailTransportError(Exception):
    """Raised when a message could not be handed to any transport."""


def build_message(to: str, subject: str, html: str, text: str) -> EmailMessage:
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(text)
    message.add_alternative(html, subtype="html")
    return message


async def _send_smtp(message: EmailMessage) -> None:
    try:
        await aiosmtplib.send(
            message,
            hostname=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user or None,
            password=settings.smtp_password or None,
            use_tls=settings.smtp_secure,
            start_tls=None if not settings.smtp_secure else False,
            timeout=30,
        )
    except aiosmtplib.SMTPException as e:
        raise EmailTransportError(f"SMTP delivery failed: {e}") from e


async def _send_api(to: str, subject: str, html: str, text: str) -> None:
    payload = {
        "from": settings.smtp_from,
        "to": to,
        "subject": subject,
        "html": html,
        "text": text,
    }
    headers = {"Authorization": f"Bearer {settings.email_api_key}"}
    try:
        async with httpx.AsyncClient(timeout=15.0) as client:
            resp = await client.post(settings.email_api_url, json=payload, headers=headers)
            resp.raise_for_status()
    except httpx.HTTPError as e:
        raise EmailTransportError(f"Email API delivery failed: {e}") from e


async def send_email(to: str, subject: str, html: str, text: str) -> None:
    """Deliver one message. Raises EmailTransportError on failure."""
    if settings.is_development and not settings.smtp_host:
        logger.info(
            "=== EMAIL NOTIFICATION ===\nTo: %s\nSubject: %s\n%s\n==========================",
            to,
            subject,
            text,
        )
        return

    if settings.smtp_host:
        await _send_smtp(build_message(to, subject, html, text))
    elif settings.email_api_url:
        await _send_api(to, subject, html, text)
    else:
        raise EmailTransportError("No email transport configured")

    logger.info("Sent email '%s' to %s", subject, to)
