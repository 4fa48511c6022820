"""
Organization Lifecycle Service

Create, rename and delete organizations.

DELETE MODES:
- default: refuses with ConflictError when warehouses, products or orders
  exist, listing the counts.
- force: deletes every dependent row in one transaction, children first:
  order items -> orders -> product prices -> product stock ->
  stock movements -> products -> warehouses -> invites -> members ->
  organization. Swapping any adjacent pair can trip a foreign key.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, select

from ..errors import ConflictError, OperationFailedError
from ..extensions import db
from ..models import (
    Organization,
    OrganizationMember,
    OrganizationInvite,
    Warehouse,
    Product,
    ProductStock,
    ProductPrice,
    StockMovement,
    Order,
    OrderItem,
)
from ..permissions import ADMIN_ROLES, Role
from ..validation import require_text
from .cache_service import invalidate_after_write
from .concurrency import atomic
from .identity_service import Principal, get_or_create_user
from .membership_service import authorize, reassert_access


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def create_organization(name: str, principal: Principal) -> dict:
    """
    Create an organization with the principal as its admin member.

    Raises:
        ValidationError: blank name
        ConflictError: principal already owns an org with this name (case-insensitive)
    """
    trimmed = require_text(name, "Organization name", max_length=255)
    user = get_or_create_user(principal)

    existing = (
        db.session.query(Organization.id)
        .filter(
            Organization.created_by == user.id,
            func.lower(Organization.name) == trimmed.lower(),
        )
        .first()
    )
    if existing:
        raise ConflictError("You already have an organization with this name")

    with atomic("create organization"):
        org = Organization(name=trimmed, created_by=user.id)
        db.session.add(org)
        db.session.flush()

        db.session.add(OrganizationMember(org_id=org.id, user_id=user.id, role=Role.ADMIN.value))
        db.session.flush()

        # Guard against a column default silently overriding the role.
        member = (
            db.session.query(OrganizationMember)
            .filter_by(org_id=org.id, user_id=user.id)
            .first()
        )
        if member is None or member.role != Role.ADMIN.value:
            raise OperationFailedError("Failed to create organization member record")

    current_app.logger.info("Organization %s (%r) created by user %s", org.id, org.name, user.id)
    return {"org_id": str(org.id), "name": org.name}


def rename_organization(org_id, name: str, principal: Principal) -> dict:
    trimmed = require_text(name, "Organization name", max_length=255)
    ctx = authorize(org_id, principal, ADMIN_ROLES, "update organizations")

    with atomic("update organization"):
        reassert_access(ctx, ADMIN_ROLES, "update organizations")
        ctx.org.name = trimmed

    current_app.logger.info("Organization %s renamed to %r", ctx.org_id, trimmed)
    return {"success": True, "org": ctx.org.to_dict()}


def count_dependents(org_id: int) -> dict:
    return {
        "warehouses": db.session.query(Warehouse).filter_by(org_id=org_id).count(),
        "products": db.session.query(Product).filter_by(org_id=org_id).count(),
        "orders": db.session.query(Order).filter_by(org_id=org_id).count(),
    }


def _delete_inventory_and_orders(org_id: int) -> dict:
    """Bulk-delete org-owned inventory and order rows, children first."""
    order_ids = select(Order.id).where(Order.org_id == org_id)
    product_ids = select(Product.id).where(Product.org_id == org_id)

    deleted = {}
    deleted["order_items"] = (
        db.session.query(OrderItem)
        .filter(OrderItem.order_id.in_(order_ids))
        .delete(synchronize_session=False)
    )
    deleted["orders"] = (
        db.session.query(Order).filter(Order.org_id == org_id).delete(synchronize_session=False)
    )
    deleted["product_prices"] = (
        db.session.query(ProductPrice)
        .filter(ProductPrice.product_id.in_(product_ids))
        .delete(synchronize_session=False)
    )
    deleted["product_stock"] = (
        db.session.query(ProductStock)
        .filter(ProductStock.product_id.in_(product_ids))
        .delete(synchronize_session=False)
    )
    deleted["stock_movements"] = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id.in_(product_ids))
        .delete(synchronize_session=False)
    )
    deleted["products"] = (
        db.session.query(Product).filter(Product.org_id == org_id).delete(synchronize_session=False)
    )
    deleted["warehouses"] = (
        db.session.query(Warehouse).filter(Warehouse.org_id == org_id).delete(synchronize_session=False)
    )
    return deleted


def delete_organization(org_id, principal: Principal, force: bool = False) -> dict:
    """
    Delete an organization.

    Raises:
        AccessDeniedError: caller is not admin
        ConflictError: dependent data exists and force is False
    """
    ctx = authorize(org_id, principal, ADMIN_ROLES, "delete organizations")
    org_pk = ctx.org_id

    counts = count_dependents(org_pk)
    has_data = any(counts.values())

    if has_data and not force:
        details = []
        if counts["warehouses"]:
            details.append(_plural(counts["warehouses"], "warehouse"))
        if counts["products"]:
            details.append(_plural(counts["products"], "product"))
        if counts["orders"]:
            details.append(_plural(counts["orders"], "order"))
        raise ConflictError(
            f"Cannot delete organization. It contains: {', '.join(details)}. "
            "To delete this organization and all its data permanently, use the force delete option. "
            "This action cannot be undone."
        )

    with atomic("delete organization"):
        reassert_access(ctx, ADMIN_ROLES, "delete organizations")

        deleted: dict = {}
        if has_data:
            deleted.update(_delete_inventory_and_orders(org_pk))

        deleted["invites"] = (
            db.session.query(OrganizationInvite)
            .filter(OrganizationInvite.org_id == org_pk)
            .delete(synchronize_session=False)
        )
        deleted["members"] = (
            db.session.query(OrganizationMember)
            .filter(OrganizationMember.org_id == org_pk)
            .delete(synchronize_session=False)
        )
        db.session.query(Organization).filter(Organization.id == org_pk).delete(synchronize_session=False)

    invalidate_after_write(org_pk)

    current_app.logger.info("Organization %s deleted (force=%s): %s", org_pk, force, deleted)
    return {
        "success": True,
        "deleted": deleted,
        "message": (
            "Organization and all its data have been permanently deleted"
            if force else "Organization deleted successfully"
        ),
    }
