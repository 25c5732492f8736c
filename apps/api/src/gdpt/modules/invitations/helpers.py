"""
Invitation token helpers.
"""

import secrets
from datetime import UTC, datetime

from gdpt.core.security import hash_token
from gdpt.modules.invitations.models import Invitation, InvitationStatus

TOKEN_BYTES = 32  # 256 bits of entropy with token_urlsafe


def generate_token() -> str:
    """Create a URL-safe invitation token."""
    return secrets.token_urlsafe(TOKEN_BYTES)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes coming back from the database as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def invitation_status(invitation: Invitation | None, now: datetime | None = None) -> InvitationStatus:
    """
    Derive the state of an invitation.

    Expiry is checked first: a used invitation whose expiry has passed
    reports EXPIRED.
    """
    if invitation is None:
        return InvitationStatus.NOT_FOUND

    now = now or datetime.now(UTC)
    if as_utc(invitation.expires_at) <= now:
        return InvitationStatus.EXPIRED
    if invitation.used_at is not None:
        return InvitationStatus.USED
    return InvitationStatus.VALID


__all__ = ["as_utc", "generate_token", "hash_token", "invitation_status"]
