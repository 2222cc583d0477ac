# apps/api/podcast_api/services/email.py
"""
SendGrid Email Service - Podcast Platform
Transactional email (account verification, subscription notices).
Delivery is best-effort: callers never fail because an email could not be sent.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Content, Email, Mail, To

from podcast_api.core.config import settings

logger = logging.getLogger(__name__)


def _client() -> Optional[SendGridAPIClient]:
    if settings.SENDGRID_API_KEY is None:
        return None
    return SendGridAPIClient(settings.SENDGRID_API_KEY.get_secret_value())


async def send_email(
    to: str,
    subject: str,
    plain_text: Optional[str] = None,
    html_content: Optional[str] = None,
    from_email: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Core async email sending function. Raises on delivery failure.
    Returns {"status": "skipped"} when SendGrid is not configured.
    """
    client = _client()
    if client is None:
        logger.warning(f"SENDGRID_API_KEY not configured; email to {to} skipped ({subject})")
        return {"status": "skipped"}

    message = Mail(from_email=Email(from_email or str(settings.EMAIL_FROM)), subject=subject)
    message.to = [To(to)]
    if html_content:
        message.add_content(Content("text/html", html_content))
    if plain_text:
        message.add_content(Content("text/plain", plain_text))

    response = await asyncio.to_thread(client.send, message)
    status_code = response.status_code
    if status_code not in (200, 202):
        raise ValueError(f"SendGrid returned {status_code}: {response.body}")

    logger.info(f"Email sent to {to}: {subject} (status: {status_code})")
    return {
        "status": "success",
        "status_code": status_code,
        "message_id": response.headers.get("X-Message-Id"),
    }


# ────────────────────────────────────────────────
# Convenience Wrappers (best-effort, safe for BackgroundTasks)
# ────────────────────────────────────────────────
async def send_verification_email(email: str, name: str, token: str) -> bool:
    verification_url = f"{settings.FRONTEND_URL}/verify/{token}"
    try:
        result = await send_email(
            to=email,
            subject="Verify your Podcast Platform account",
            plain_text=(
                f"Hi {name},\n\nConfirm your email address by opening {verification_url}\n"
                f"The link expires in {settings.VERIFICATION_TOKEN_HOURS} hours."
            ),
            html_content=(
                f"<p>Hi {name},</p><p><a href=\"{verification_url}\">Verify your email</a></p>"
                f"<p>The link expires in {settings.VERIFICATION_TOKEN_HOURS} hours.</p>"
            ),
        )
        return result["status"] == "success"
    except Exception:
        logger.exception(f"Verification email to {email} failed; account kept")
        return False
