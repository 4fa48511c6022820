# backend/stockroom/routes/invites.py
"""
Invitation routes.

SECURITY:
- Issuing and listing invitations requires admin in the organization
- Accepting requires only an authenticated principal whose email matches
  the invitation
"""
from flask import Blueprint, request

from ..decorators import require_principal
from ..services.identity_service import current_principal


invites_bp = Blueprint("invites", __name__, url_prefix="/api")


@invites_bp.get("/organizations/<org_id>/invites")
@require_principal
def list_invites_route(org_id):
    from ..services.invite_service import list_invites

    return {"invites": list_invites(org_id, current_principal())}


@invites_bp.post("/organizations/<org_id>/invites")
@require_principal
def invite_member_route(org_id):
    payload = request.get_json(silent=True) or {}

    from ..services.invite_service import invite_member

    result = invite_member(org_id, payload.get("email"), payload.get("role"), current_principal())
    return result, 201


@invites_bp.post("/invites/<token>/accept")
@require_principal
def accept_invite_route(token):
    from ..services.invite_service import accept_invite

    return accept_invite(token, current_principal())
