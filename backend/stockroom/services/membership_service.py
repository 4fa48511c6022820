"""
Membership Service: Role Resolution and Membership Guarantees

WHY: Centralize the trust decisions every organization-scoped request makes
before it touches data. Callers use `authorize()`, which runs the pipeline

    guarantee membership -> resolve role -> permission gate

and returns an AccessContext for the mutation that follows.

SECURITY INVARIANTS:
1. The creator of an organization always resolves to admin, and ends up
   with an explicit admin membership row even if one was never written.
2. A principal that is not the creator needs a membership row; otherwise
   access is denied (fail closed).
3. Mutations call `reassert_access()` inside their own transaction so a
   membership revoked after the initial check is still observed.

USAGE:
    from stockroom.services.membership_service import authorize
    from stockroom.permissions import WRITE_ROLES

    ctx = authorize(org_id, principal, WRITE_ROLES, "add products")
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..errors import AccessDeniedError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Organization, OrganizationMember, User
from ..permissions import Role, has_permission
from ..validation import parse_id
from .concurrency import atomic, lock_for_update
from .identity_service import Principal, get_or_create_user


@dataclass
class AccessContext:
    """Outcome of a successful authorization for one request."""
    org: Organization
    user: User
    role: Role

    @property
    def org_id(self) -> int:
        return self.org.id

    @property
    def is_creator(self) -> bool:
        return self.org.created_by == self.user.id


def get_organization(org_id: int) -> Organization | None:
    return db.session.query(Organization).filter_by(id=org_id).first()


def get_member(org_id: int, user_id: int, *, for_update: bool = False) -> OrganizationMember | None:
    query = db.session.query(OrganizationMember).filter_by(org_id=org_id, user_id=user_id)
    if for_update:
        query = lock_for_update(query)
    return query.first()


def upsert_admin_membership(org: Organization, user: User) -> OrganizationMember:
    """
    Insert or promote the member row for (org, user) to admin.

    Idempotent. Must run inside a transaction; does not commit.
    """
    member = get_member(org.id, user.id, for_update=True)
    if member:
        if member.role != Role.ADMIN.value:
            current_app.logger.info(
                "Restoring admin role for creator %s in org %s (was %r)",
                user.id, org.id, member.role,
            )
            member.role = Role.ADMIN.value
    else:
        member = OrganizationMember(org_id=org.id, user_id=user.id, role=Role.ADMIN.value)
        db.session.add(member)
    db.session.flush()
    return member


def _stored_role(member: OrganizationMember | None) -> Role | None:
    if member is None:
        return None
    try:
        return Role.parse(member.role)
    except ValidationError:
        current_app.logger.warning(
            "Member row org=%s user=%s has unrecognised role %r; treating as no role",
            member.org_id, member.user_id, member.role,
        )
        return None


def _resolve_role(org: Organization, user: User) -> Role | None:
    if org.created_by == user.id:
        with atomic("resolve organization role"):
            upsert_admin_membership(org, user)
        return Role.ADMIN

    return _stored_role(get_member(org.id, user.id))


def get_user_role(org_id, principal: Principal) -> Role | None:
    """
    Determine the principal's role in an organization.

    Returns None (not an error) when the organization does not exist or the
    principal has no relation to it.

    Raises:
        ValidationError: org_id is not a positive integer
    """
    org_pk = parse_id(org_id, "Organization ID")
    user = get_or_create_user(principal)

    org = get_organization(org_pk)
    if not org:
        return None

    return _resolve_role(org, user)


def _guarantee_membership(org_id, principal: Principal) -> tuple[Organization, User]:
    org_pk = parse_id(org_id, "Organization ID")
    user = get_or_create_user(principal)

    org = get_organization(org_pk)
    if not org:
        raise NotFoundError(f"Organization with ID \"{org_pk}\" not found. Please verify the organization ID.")

    if org.created_by == user.id:
        with atomic("ensure organization membership"):
            upsert_admin_membership(org, user)
        return org, user

    if not get_member(org.id, user.id):
        current_app.logger.warning("User %s has no membership in org %s", user.id, org.id)
        raise AccessDeniedError(
            f"Access denied. User is not a member of organization \"{org.name}\" (ID: {org.id}). "
            "Please contact an administrator to be added to this organization."
        )

    return org, user


def ensure_organization_member(org_id, principal: Principal) -> None:
    """
    Precondition for role-gated operations.

    Raises:
        ValidationError: malformed org_id
        NotFoundError: organization does not exist
        AccessDeniedError: principal is neither creator nor member
    """
    _guarantee_membership(org_id, principal)


def authorize(org_id, principal: Principal, required_roles, action: str) -> AccessContext:
    """
    Guarantee membership, resolve the role, and apply the permission gate.

    Args:
        org_id: Organization ID (string or int)
        principal: Authenticated caller
        required_roles: Roles allowed to perform `action` (admin always is)
        action: Phrase for the denial message, e.g. "add products"

    Raises:
        AccessDeniedError if the resolved role does not satisfy required_roles
    """
    org, user = _guarantee_membership(org_id, principal)
    role = _resolve_role(org, user)

    if not has_permission(role, required_roles):
        current_app.logger.warning(
            "Permission denied: user=%s org=%s role=%s action=%r",
            user.id, org.id, role, action,
        )
        raise AccessDeniedError(f"Insufficient permissions to {action}. Current role: \"{role}\"")

    return AccessContext(org=org, user=user, role=role)


def reassert_access(ctx: AccessContext, required_roles, action: str) -> None:
    """
    Re-check membership inside the caller's mutation transaction.

    Locks the member row so a concurrent revocation either lands before this
    read (and the mutation is denied) or waits until the mutation commits.
    """
    if ctx.is_creator:
        return

    member = get_member(ctx.org_id, ctx.user.id, for_update=True)
    role = _stored_role(member)
    if not has_permission(role, required_roles):
        current_app.logger.warning(
            "Membership changed mid-request: user=%s org=%s role=%s action=%r",
            ctx.user.id, ctx.org_id, role, action,
        )
        raise AccessDeniedError(f"Insufficient permissions to {action}. Current role: \"{role}\"")


def list_user_organizations(principal: Principal) -> list[dict]:
    """
    Organizations the principal created (as admin) plus those it is a member of.

    De-duplicated by organization id; created organizations win.
    """
    user = get_or_create_user(principal)

    created = (
        db.session.query(Organization)
        .filter(Organization.created_by == user.id)
        .order_by(Organization.id.asc())
        .all()
    )
    memberships = (
        db.session.query(OrganizationMember, Organization)
        .join(Organization, Organization.id == OrganizationMember.org_id)
        .filter(OrganizationMember.user_id == user.id)
        .order_by(Organization.id.asc())
        .all()
    )

    orgs: list[dict] = []
    seen: set[int] = set()
    for org in created:
        seen.add(org.id)
        orgs.append({"id": str(org.id), "name": org.name, "role": Role.ADMIN.value})
    for member, org in memberships:
        if org.id in seen:
            continue
        seen.add(org.id)
        orgs.append({"id": str(org.id), "name": org.name, "role": member.role})

    return orgs
