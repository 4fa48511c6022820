"""
Invitation Service

Admins invite an email address to join an organization with a preset role.
The invite token is single-use and expires after INVITE_TTL_HOURS; expiry
is checked when the token is redeemed, never swept.

STATUS: pending -> accepted (terminal)

NOTE: issuance lowercases the email, but acceptance compares the invite
email to the accepting user's stored email exactly. A user whose provider
email has upper-case letters cannot accept. This mirrors how the system
has always behaved and is kept until the product decision is confirmed.
"""
from __future__ import annotations

import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import (
    ConflictError,
    InvalidInviteError,
    ExpiredInviteError,
    EmailMismatchError,
    ValidationError,
)
from ..extensions import db
from ..models import Organization, OrganizationInvite, OrganizationMember, User
from ..permissions import ADMIN_ROLES, Role
from ..time_utils import utcnow, as_utc_naive
from ..validation import normalize_email
from .concurrency import atomic, lock_for_update
from .identity_service import Principal, get_or_create_user
from .membership_service import authorize, get_member, reassert_access


INVITE_STATUS_PENDING = "pending"
INVITE_STATUS_ACCEPTED = "accepted"

# 32 bytes = 256 bits of entropy, URL-safe base64
TOKEN_BYTES = 32


def generate_invite_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def _is_expired(invite: OrganizationInvite, now=None) -> bool:
    now = now or utcnow()
    expires_at = as_utc_naive(invite.expires_at)
    return expires_at is None or expires_at < now


def invite_member(org_id, email: str, role: str, principal: Principal) -> dict:
    """
    Issue an invitation.

    Returns:
        dict with the token and its expiry

    Raises:
        ValidationError: missing email or role, unknown role
        AccessDeniedError: caller is not admin
        ConflictError: already a member, or an unexpired pending invite exists
    """
    normalized_email = normalize_email(email)
    parsed_role = Role.parse(role)
    if parsed_role is None:
        raise ValidationError("Role is required")

    ctx = authorize(org_id, principal, ADMIN_ROLES, "invite employees")
    now = utcnow()

    existing_member = (
        db.session.query(OrganizationMember.id)
        .join(User, User.id == OrganizationMember.user_id)
        .filter(
            OrganizationMember.org_id == ctx.org_id,
            func.lower(User.email) == normalized_email,
        )
        .first()
    )
    if existing_member:
        raise ConflictError("User is already a member of this organization")

    ttl_hours = current_app.config.get("INVITE_TTL_HOURS", 24)
    with atomic("invite employee"):
        reassert_access(ctx, ADMIN_ROLES, "invite employees")

        # Serializes issuance per organization; no constraint backs one
        # pending invite per email.
        lock_for_update(db.session.query(Organization).filter_by(id=ctx.org_id)).one()
        pending = (
            db.session.query(OrganizationInvite.id)
            .filter(
                OrganizationInvite.org_id == ctx.org_id,
                OrganizationInvite.email == normalized_email,
                OrganizationInvite.status == INVITE_STATUS_PENDING,
                OrganizationInvite.expires_at >= now,
            )
            .first()
        )
        if pending:
            raise ConflictError("A pending invitation already exists for this email")

        invite = OrganizationInvite(
            org_id=ctx.org_id,
            email=normalized_email,
            role=parsed_role.value,
            token=generate_invite_token(),
            status=INVITE_STATUS_PENDING,
            expires_at=now + timedelta(hours=ttl_hours),
        )
        db.session.add(invite)

    current_app.logger.info("Invite %s issued for org %s as %s", invite.id, ctx.org_id, parsed_role.value)
    return {
        "token": invite.token,
        "email": invite.email,
        "role": invite.role,
        "expires_at": invite.to_dict()["expires_at"],
    }


def accept_invite(token: str, principal: Principal) -> dict:
    """
    Redeem an invitation token for the calling principal.

    Raises:
        InvalidInviteError: unknown token, or invite no longer pending
        ExpiredInviteError: past expires_at
        EmailMismatchError: invite addressed to another email
        ConflictError: already a member
    """
    if token is None or not str(token).strip():
        raise InvalidInviteError("Invalid invitation token")
    token = str(token).strip()

    invite = db.session.query(OrganizationInvite).filter_by(token=token).first()
    if not invite or invite.status != INVITE_STATUS_PENDING:
        raise InvalidInviteError()

    if _is_expired(invite):
        raise ExpiredInviteError()

    user = get_or_create_user(principal)

    # Exact comparison - see module docstring.
    if invite.email != user.email:
        raise EmailMismatchError()

    if get_member(invite.org_id, user.id):
        raise ConflictError("User is already a member of this organization")

    with atomic("accept invitation", conflict_message="User is already a member of this organization"):
        locked = lock_for_update(db.session.query(OrganizationInvite).filter_by(id=invite.id)).first()
        if not locked or locked.status != INVITE_STATUS_PENDING:
            raise InvalidInviteError()

        db.session.add(OrganizationMember(org_id=locked.org_id, user_id=user.id, role=locked.role))
        locked.status = INVITE_STATUS_ACCEPTED

    current_app.logger.info("User %s joined org %s via invite %s", user.id, invite.org_id, invite.id)
    return {"org_id": str(invite.org_id), "role": invite.role}


def list_invites(org_id, principal: Principal) -> list[dict]:
    ctx = authorize(org_id, principal, ADMIN_ROLES, "view invitations")
    now = utcnow()

    invites = (
        db.session.query(OrganizationInvite)
        .filter(OrganizationInvite.org_id == ctx.org_id)
        .order_by(OrganizationInvite.created_at.desc(), OrganizationInvite.id.desc())
        .all()
    )
    return [
        {**invite.to_dict(), "is_expired": invite.status == INVITE_STATUS_PENDING and _is_expired(invite, now)}
        for invite in invites
    ]


def expired_pending_invites(org_id: int) -> list[OrganizationInvite]:
    """Pending invites past their expiry (reporting only; nothing is changed)."""
    return (
        db.session.query(OrganizationInvite)
        .filter(
            OrganizationInvite.org_id == org_id,
            OrganizationInvite.status == INVITE_STATUS_PENDING,
            OrganizationInvite.expires_at < utcnow(),
        )
        .order_by(OrganizationInvite.expires_at.asc())
        .all()
    )
