# backend/stockroom/routes/organizations.py
"""
Organization lifecycle routes.

SECURITY: All routes require an authenticated principal.
- Listing and creating need no organization role
- Rename and delete require admin in the target organization

Errors raised by the services are rendered by the app-level ServiceError
handler.
"""
from flask import Blueprint, request

from ..decorators import require_principal
from ..services.identity_service import current_principal


organizations_bp = Blueprint("organizations", __name__, url_prefix="/api/organizations")


def _truthy(value) -> bool:
    return str(value or "").strip().lower() in ("1", "true", "yes")


@organizations_bp.get("")
@require_principal
def list_organizations_route():
    """Organizations the caller created or belongs to, with the caller's role."""
    from ..services.membership_service import list_user_organizations

    return {"organizations": list_user_organizations(current_principal())}


@organizations_bp.post("")
@require_principal
def create_organization_route():
    payload = request.get_json(silent=True) or {}

    from ..services.organization_service import create_organization

    result = create_organization(payload.get("name"), current_principal())
    return result, 201


@organizations_bp.patch("/<org_id>")
@require_principal
def rename_organization_route(org_id):
    payload = request.get_json(silent=True) or {}

    from ..services.organization_service import rename_organization

    return rename_organization(org_id, payload.get("name"), current_principal())


@organizations_bp.delete("/<org_id>")
@require_principal
def delete_organization_route(org_id):
    """
    Delete an organization.

    Without ?force=true the request is refused (409) while the organization
    still has warehouses, products or orders.
    """
    force = _truthy(request.args.get("force"))

    from ..services.organization_service import delete_organization

    return delete_organization(org_id, current_principal(), force=force)
