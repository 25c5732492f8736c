"""
Email Service using Resend

Sends invitation emails. When no API key is configured the email is logged
instead of sent.
"""

import asyncio
import logging
from datetime import datetime
from html import escape

import resend

from gdpt.core.config import settings

logger = logging.getLogger(__name__)

resend.api_key = settings.resend_api_key

ROLE_LABELS = {
    "ADMIN": "Administrator",
    "LEADER": "Leader",
    "PARENT": "Parent",
}


def invitation_url(token: str) -> str:
    """Public URL where an invitation token is accepted."""
    return f"{settings.frontend_url.rstrip('/')}/invite/{token}"


async def send_email(
    to_email: str,
    subject: str,
    html_content: str,
) -> bool:
    """
    Send an email using Resend.

    Args:
        to_email: Recipient email address
        subject: Email subject line
        html_content: HTML content of the email

    Returns:
        True if email was sent (or logged in place of sending)
    """
    if not resend.api_key:
        logger.warning("RESEND_API_KEY not set - logging email instead of sending")
        logger.info(f"EMAIL TO: {to_email} | SUBJECT: {subject}")
        return True

    try:
        params: resend.Emails.SendParams = {
            "from": settings.email_from,
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }

        # Resend's client is synchronous
        email = await asyncio.to_thread(resend.Emails.send, params)
        logger.info(f"Email sent to {to_email}, id: {email['id']}")
        return True
    except Exception as e:
        logger.error(f"Failed to send email to {to_email}: {e}")
        return False


async def send_invitation_email(
    to_email: str,
    invitee_name: str | None,
    role: str,
    token: str,
    expires_at: datetime,
) -> bool:
    """Send the invitation link to a prospective user."""
    greeting = f"Hello {escape(invitee_name)}," if invitee_name else "Hello,"
    role_label = escape(ROLE_LABELS.get(role, role))
    link = invitation_url(token)
    expiry = expires_at.strftime("%d %B %Y")

    html_content = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <style>
            body {{ font-family: system-ui, -apple-system, sans-serif; line-height: 1.6; color: #1f2937; }}
            .container {{ max-width: 600px; margin: 0 auto; padding: 40px 20px; }}
            .button {{ display: inline-block; background: #b45309; color: #ffffff; padding: 12px 24px;
                       border-radius: 6px; text-decoration: none; font-weight: 600; }}
            .muted {{ color: #6b7280; font-size: 14px; }}
        </style>
    </head>
    <body>
        <div class="container">
            <p>{greeting}</p>
            <p>You have been invited to join GDPT as a <strong>{role_label}</strong>.</p>
            <p><a class="button" href="{link}">Accept invitation</a></p>
            <p class="muted">This invitation can be used once and expires on {expiry}.</p>
            <p class="muted">If the button does not work, copy this link into your browser:<br>{link}</p>
        </div>
    </body>
    </html>
    """

    return await send_email(to_email, "You're invited to GDPT", html_content)
