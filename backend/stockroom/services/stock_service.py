"""
Stock Movement Service

Adjusts and transfers on-hand quantities per (product, warehouse) and
writes the stock ledger (StockMovement) in the same transaction.

LEDGER: one entry per adjustment, two per transfer (out of the source,
into the destination). Entries are never updated; they only disappear with
their product or organization.

CONCURRENCY: stock rows are read with SELECT ... FOR UPDATE and carry a
version_id, so two concurrent decrements cannot both succeed against the
same starting quantity.
"""
from __future__ import annotations

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Product, ProductStock, StockMovement
from ..permissions import READ_ROLES, WRITE_ROLES
from ..validation import coerce_int, parse_id, require_text, optional_text
from .cache_service import invalidate_after_write
from .concurrency import atomic, lock_for_update
from .identity_service import Principal
from .membership_service import authorize, reassert_access
from .warehouse_service import require_warehouse_in_org


MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"

DEFAULT_MOVEMENT_LIMIT = 50
MAX_MOVEMENT_LIMIT = 500


def _require_product_in_org(product_id, org_id: int) -> Product:
    product_pk = parse_id(product_id, "Product ID")
    product = db.session.query(Product).filter_by(id=product_pk, org_id=org_id).first()
    if not product:
        raise NotFoundError("Product not found in this organization")
    return product


def _locked_stock(product_id: int, warehouse_id: int) -> ProductStock | None:
    return lock_for_update(
        db.session.query(ProductStock).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    ).first()


def adjust_stock(org_id, product_id, warehouse_id, adjustment, principal: Principal) -> dict:
    """
    Add (positive) or remove (negative) stock in one warehouse.

    Raises:
        ValidationError: zero or non-integer adjustment
        NotFoundError: product or warehouse not in this organization
        InsufficientStockError: the result would be negative
    """
    delta = coerce_int(adjustment, "Adjustment")
    if delta == 0:
        raise ValidationError("Adjustment must be a non-zero integer")

    ctx = authorize(org_id, principal, WRITE_ROLES, "update stock")
    product = _require_product_in_org(product_id, ctx.org_id)
    warehouse = require_warehouse_in_org(warehouse_id, ctx.org_id)

    with atomic("update stock"):
        reassert_access(ctx, WRITE_ROLES, "update stock")

        stock = _locked_stock(product.id, warehouse.id)
        previous = stock.quantity if stock else 0
        new_quantity = previous + delta
        if new_quantity < 0:
            raise InsufficientStockError(
                f"Insufficient stock for this adjustment. Available: {previous}, requested decrease: {-delta}"
            )

        if stock:
            stock.quantity = new_quantity
        else:
            stock = ProductStock(product_id=product.id, warehouse_id=warehouse.id, quantity=new_quantity)
            db.session.add(stock)

        movement = StockMovement(
            product_id=product.id,
            warehouse_id=warehouse.id,
            type=MOVEMENT_IN if delta > 0 else MOVEMENT_OUT,
            quantity=abs(delta),
            reason="Stock increase" if delta > 0 else "Stock decrease",
            created_by=ctx.user.id,
        )
        db.session.add(movement)

    invalidate_after_write(ctx.org_id)

    current_app.logger.info(
        "Stock adjusted: product=%s warehouse=%s %s -> %s",
        product.id, warehouse.id, previous, new_quantity,
    )
    return {
        "success": True,
        "product_id": str(product.id),
        "warehouse_id": str(warehouse.id),
        "previous_quantity": previous,
        "new_quantity": new_quantity,
        "movement_id": str(movement.id),
    }


def transfer_stock(
    org_id,
    product_id,
    from_warehouse_id,
    to_warehouse_id,
    quantity,
    reason: str,
    notes: str | None,
    principal: Principal,
) -> dict:
    """
    Move stock between two warehouses of the same organization.

    WHY: A transfer is a single business event. The source decrement, the
    destination increment and both ledger entries commit together or not
    at all, so total on-hand stock across warehouses is unchanged.

    Raises:
        ValidationError: non-positive quantity, same source and destination,
            missing reason
        NotFoundError: product or either warehouse not in this organization
        InsufficientStockError: source has less than `quantity`
    """
    qty = coerce_int(quantity, "Quantity")
    if qty <= 0:
        raise ValidationError("Quantity must be positive")
    reason_text = require_text(reason, "Transfer reason", max_length=200)
    notes_text = optional_text(notes)

    from_pk = parse_id(from_warehouse_id, "Source warehouse ID")
    to_pk = parse_id(to_warehouse_id, "Destination warehouse ID")
    if from_pk == to_pk:
        raise ValidationError("Source and destination warehouses must differ")

    ctx = authorize(org_id, principal, WRITE_ROLES, "transfer stock")
    product = _require_product_in_org(product_id, ctx.org_id)
    source = require_warehouse_in_org(from_pk, ctx.org_id)
    destination = require_warehouse_in_org(to_pk, ctx.org_id)

    with atomic("transfer stock"):
        reassert_access(ctx, WRITE_ROLES, "transfer stock")

        source_stock = _locked_stock(product.id, source.id)
        if not source_stock or source_stock.quantity < qty:
            raise InsufficientStockError("Insufficient stock in source warehouse")
        source_stock.quantity = source_stock.quantity - qty

        dest_stock = _locked_stock(product.id, destination.id)
        if dest_stock:
            dest_stock.quantity = dest_stock.quantity + qty
        else:
            dest_stock = ProductStock(product_id=product.id, warehouse_id=destination.id, quantity=qty)
            db.session.add(dest_stock)

        db.session.add(StockMovement(
            product_id=product.id,
            warehouse_id=source.id,
            type=MOVEMENT_OUT,
            quantity=qty,
            reason=f"Transfer to warehouse {destination.id}: {reason_text}",
            notes=notes_text,
            created_by=ctx.user.id,
        ))
        db.session.add(StockMovement(
            product_id=product.id,
            warehouse_id=destination.id,
            type=MOVEMENT_IN,
            quantity=qty,
            reason=f"Transfer from warehouse {source.id}: {reason_text}",
            notes=notes_text,
            created_by=ctx.user.id,
        ))

    invalidate_after_write(ctx.org_id)

    current_app.logger.info(
        "Transferred %s of product %s from warehouse %s to %s",
        qty, product.id, source.id, destination.id,
    )
    return {
        "success": True,
        "product_id": str(product.id),
        "from_warehouse_id": str(source.id),
        "to_warehouse_id": str(destination.id),
        "quantity": qty,
        "source_quantity": source_stock.quantity,
        "destination_quantity": dest_stock.quantity,
    }


def list_stock_movements(org_id, product_id, principal: Principal, limit=DEFAULT_MOVEMENT_LIMIT) -> list[dict]:
    """Ledger entries for a product, newest first."""
    ctx = authorize(org_id, principal, READ_ROLES, "view stock movements")
    product = _require_product_in_org(product_id, ctx.org_id)

    if limit is None:
        limit = DEFAULT_MOVEMENT_LIMIT
    limit = coerce_int(limit, "limit")
    if limit <= 0:
        raise ValidationError("limit must be positive")
    limit = min(limit, MAX_MOVEMENT_LIMIT)

    movements = (
        db.session.query(StockMovement)
        .filter(StockMovement.product_id == product.id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )
    return [m.to_dict() for m in movements]
