"""
Invitations Module

Single-use, time-limited invitations that provision accounts:
1. Admin issues an invitation (7-day expiry, link emailed)
2. Admin may resend (token rotated) or cancel while unused
3. Invitee validates and accepts the link, creating the account

API Endpoints:
- GET /invitations/{token} - Validate a token
- POST /invitations/{token}/accept - Accept and create the account
- GET/POST /admin/invitations, POST /admin/invitations/{id}/resend,
  DELETE /admin/invitations/{id} - Administration

Security Features:
- SHA-256 token hashing (tokens never stored in plain text)
- Conditional claim so a token is accepted at most once
- Rate limiting on issuing and on the public endpoints
"""

from gdpt.modules.invitations.models import Invitation, InvitationStatus

__all__ = ["Invitation", "InvitationStatus"]
