"""
Warehouse Service with Multi-Tenant Support

MULTI-TENANT: Warehouses belong to exactly one organization. Any warehouse
id that arrives from a client is validated against the caller's org before
use; a warehouse from another org is reported as not found so its
existence is not revealed.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import ConflictError, NotFoundError
from ..extensions import db
from ..models import Warehouse
from ..permissions import READ_ROLES, WRITE_ROLES
from ..validation import require_text, optional_text, parse_id
from .concurrency import atomic
from .identity_service import Principal
from .membership_service import authorize, reassert_access


DEFAULT_WAREHOUSE_NAME = "Default Warehouse"
DEFAULT_WAREHOUSE_ADDRESS = "Default Address"


def get_or_create_default_warehouse(org_id: int) -> Warehouse:
    """
    First warehouse of the organization, created on demand.

    Runs inside the caller's transaction; does not commit.
    """
    warehouse = (
        db.session.query(Warehouse)
        .filter_by(org_id=org_id)
        .order_by(Warehouse.id.asc())
        .first()
    )
    if warehouse:
        return warehouse

    warehouse = Warehouse(org_id=org_id, name=DEFAULT_WAREHOUSE_NAME, address=DEFAULT_WAREHOUSE_ADDRESS)
    db.session.add(warehouse)
    db.session.flush()
    current_app.logger.info("Created default warehouse %s for org %s", warehouse.id, org_id)
    return warehouse


def require_warehouse_in_org(warehouse_id, org_id: int) -> Warehouse:
    """
    Validate that a warehouse belongs to the specified organization.

    Raises:
        ValidationError: malformed id
        NotFoundError: missing, or owned by another organization
    """
    warehouse_pk = parse_id(warehouse_id, "Warehouse ID")
    warehouse = db.session.query(Warehouse).filter_by(id=warehouse_pk).first()
    if not warehouse or warehouse.org_id != org_id:
        raise NotFoundError("Warehouse not found in this organization")
    return warehouse


def list_warehouses(org_id, principal: Principal) -> list[dict]:
    ctx = authorize(org_id, principal, READ_ROLES, "view warehouses")
    warehouses = (
        db.session.query(Warehouse)
        .filter_by(org_id=ctx.org_id)
        .order_by(Warehouse.id.asc())
        .all()
    )
    return [w.to_dict() for w in warehouses]


def create_warehouse(org_id, name: str, address: str | None, principal: Principal) -> dict:
    """
    Add a warehouse to the organization.

    Raises:
        ConflictError: a warehouse with this name (case-insensitive) exists
    """
    trimmed = require_text(name, "Warehouse name", max_length=120)
    ctx = authorize(org_id, principal, WRITE_ROLES, "create warehouses")

    duplicate = (
        db.session.query(Warehouse.id)
        .filter(Warehouse.org_id == ctx.org_id, func.lower(Warehouse.name) == trimmed.lower())
        .first()
    )
    if duplicate:
        raise ConflictError(f"A warehouse named \"{trimmed}\" already exists in this organization")

    with atomic("create warehouse"):
        reassert_access(ctx, WRITE_ROLES, "create warehouses")
        warehouse = Warehouse(org_id=ctx.org_id, name=trimmed, address=optional_text(address))
        db.session.add(warehouse)

    current_app.logger.info("Warehouse %s created in org %s", warehouse.id, ctx.org_id)
    return warehouse.to_dict()
