"""Email sending via SMTP."""

import asyncio
import logging
from decimal import Decimal
from email.message import EmailMessage

import aiosmtplib

from claybook.core.config import settings

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, body: str) -> None:
    """Send a plain-text email via SMTP, retrying with exponential backoff."""
    message = EmailMessage()
    message["From"] = settings.smtp_from
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)

    delay = settings.email_backoff_initial_seconds
    for attempt in range(1, settings.email_max_attempts + 1):
        try:
            await aiosmtplib.send(message, hostname=settings.smtp_host, port=settings.smtp_port)
            return
        except (aiosmtplib.SMTPException, OSError) as exc:
            if attempt == settings.email_max_attempts:
                raise
            logger.warning("Email to %s failed (attempt %d): %s; retrying in %.1fs", to, attempt, exc, delay)
            await asyncio.sleep(delay)
            delay = min(delay * 2, settings.email_backoff_max_seconds)


async def send_payment_receipt_email(
    to: str, customer_name: str, booking_code: str, amount: Decimal, method: str
) -> None:
    """Receipt for a payment applied to a booking."""
    body = (
        f"Hi {customer_name},\n\n"
        f"We received your payment of ${amount:.2f} ({method}) for booking {booking_code}.\n\n"
        f"See you at the studio!\n\n"
        f"{settings.app_name}"
    )
    await send_email(to, f"Payment received for {booking_code}", body)
    logger.info("Payment receipt sent to %s for %s", to, booking_code)
