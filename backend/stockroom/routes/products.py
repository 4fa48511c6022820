# backend/stockroom/routes/products.py
"""
Product routes.

SECURITY: All routes require an authenticated principal and membership in
the organization named in the path.
- Listing, details and movement history require any role
- Add, update, bulk update, details edit and delete require writer tier

CACHE: the listing reports how it was served in X-Cache
(HIT/MISS/STALE/BYPASS) and X-Cache-Age (seconds).
"""
from flask import Blueprint, request

from ..decorators import require_principal
from ..services.identity_service import current_principal


products_bp = Blueprint("products", __name__, url_prefix="/api/organizations/<org_id>/products")


@products_bp.get("")
@require_principal
def list_products_route(org_id):
    from ..services.products_service import list_products

    listing = list_products(org_id, current_principal())
    cache = listing["cache"]

    headers = {"X-Cache": cache["status"]}
    if cache["age_seconds"] is not None:
        headers["X-Cache-Age"] = str(cache["age_seconds"])
    return {"products": listing["items"], "cache": cache}, 200, headers


@products_bp.post("")
@require_principal
def add_product_route(org_id):
    payload = request.get_json(silent=True)

    from ..services.products_service import add_product

    return add_product(org_id, current_principal(), payload), 201


@products_bp.patch("/bulk")
@require_principal
def bulk_update_products_route(org_id):
    """
    Body: {"updates": [{"id": "<product id>", "data": {...}}, ...]}

    All updates commit together or none do.
    """
    payload = request.get_json(silent=True) or {}

    from ..services.products_service import bulk_update_products

    return bulk_update_products(org_id, current_principal(), payload.get("updates"))


@products_bp.post("/cache/warm")
@require_principal
def warm_product_cache_route(org_id):
    from ..services.products_service import warm_product_cache

    return warm_product_cache(org_id, current_principal())


@products_bp.put("/<product_id>")
@require_principal
def update_product_route(org_id, product_id):
    payload = request.get_json(silent=True)

    from ..services.products_service import update_product

    return update_product(org_id, product_id, current_principal(), payload)


@products_bp.delete("/<product_id>")
@require_principal
def delete_product_route(org_id, product_id):
    from ..services.products_service import delete_product

    return delete_product(org_id, product_id, current_principal())


@products_bp.get("/<product_id>/details")
@require_principal
def get_product_details_route(org_id, product_id):
    from ..services.products_service import get_product_details

    return {"product": get_product_details(org_id, product_id, current_principal())}


@products_bp.patch("/<product_id>/details")
@require_principal
def update_product_details_route(org_id, product_id):
    payload = request.get_json(silent=True)

    from ..services.products_service import update_product_details

    return update_product_details(org_id, product_id, current_principal(), payload)


@products_bp.get("/<product_id>/movements")
@require_principal
def list_stock_movements_route(org_id, product_id):
    from ..services.stock_service import list_stock_movements

    limit = request.args.get("limit")
    return {"movements": list_stock_movements(org_id, product_id, current_principal(), limit=limit)}
