# backend/stockroom/routes/stock.py
"""
Stock movement and warehouse routes.

SECURITY: All routes require an authenticated principal and membership in
the organization named in the path.
- Listing warehouses requires any role
- Adjusting, transferring and creating warehouses require writer tier
"""
from flask import Blueprint, request

from ..decorators import require_principal
from ..services.identity_service import current_principal


stock_bp = Blueprint("stock", __name__, url_prefix="/api/organizations/<org_id>")


@stock_bp.post("/stock/adjust")
@require_principal
def adjust_stock_route(org_id):
    """
    Body: {"product_id", "warehouse_id", "adjustment"}

    Positive adjustment adds stock, negative removes it (409 if that would
    go below zero).
    """
    payload = request.get_json(silent=True) or {}

    from ..services.stock_service import adjust_stock

    return adjust_stock(
        org_id,
        payload.get("product_id"),
        payload.get("warehouse_id"),
        payload.get("adjustment"),
        current_principal(),
    )


@stock_bp.post("/stock/transfer")
@require_principal
def transfer_stock_route(org_id):
    """
    Body: {"product_id", "from_warehouse_id", "to_warehouse_id", "quantity",
    "reason", "notes"?}
    """
    payload = request.get_json(silent=True) or {}

    from ..services.stock_service import transfer_stock

    return transfer_stock(
        org_id,
        payload.get("product_id"),
        payload.get("from_warehouse_id"),
        payload.get("to_warehouse_id"),
        payload.get("quantity"),
        payload.get("reason"),
        payload.get("notes"),
        current_principal(),
    )


@stock_bp.get("/warehouses")
@require_principal
def list_warehouses_route(org_id):
    from ..services.warehouse_service import list_warehouses

    return {"warehouses": list_warehouses(org_id, current_principal())}


@stock_bp.post("/warehouses")
@require_principal
def create_warehouse_route(org_id):
    payload = request.get_json(silent=True) or {}

    from ..services.warehouse_service import create_warehouse

    result = create_warehouse(org_id, payload.get("name"), payload.get("address"), current_principal())
    return {"warehouse": result}, 201
