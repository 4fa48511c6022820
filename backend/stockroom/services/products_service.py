# backend/stockroom/services/products_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are scoped to one organization and
gated by the caller's role in it.
- Read operations require any role (READ_ROLES)
- Write operations require writer, read-write or admin (WRITE_ROLES)

Every product owns one stock row per warehouse and a price history.

PRICE STRATEGIES (both are used on purpose, by different entry points):
- revise_current_price: edit the newest price row in place. Used by the
  plain product edit and bulk edit. History is not preserved.
- supersede_current_price: close every open row at "now" and insert a new
  open row. Used by the product details editor. History is preserved.

CACHE: every committed write invalidates the organization's product
listing before returning.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy.orm import selectinload

from ..errors import (
    AccessDeniedError,
    AuthenticationError,
    ConflictError,
    IdentityError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db, product_cache
from ..models import Product, ProductStock, ProductPrice, Order, OrderItem, User
from ..permissions import READ_ROLES, WRITE_ROLES
from ..time_utils import utcnow, to_utc_z
from ..validation import (
    parse_id,
    require_text,
    optional_text,
    clamp_quantity,
    clamp_price,
)
from .cache_service import invalidate_after_write
from .concurrency import atomic, classify_failure
from .identity_service import Principal
from .membership_service import authorize, reassert_access
from .warehouse_service import get_or_create_default_warehouse


PRICE_HISTORY_LIMIT = 20
RECENT_ORDERS_LIMIT = 10

PRODUCT_STATUSES = {"active", "inactive", "archived"}

DUPLICATE_SKU_MESSAGE = "A product with this SKU already exists in the organization"

# Answers about the request itself; never masked by the stale listing.
_LISTING_REFUSALS = (AccessDeniedError, AuthenticationError, IdentityError, NotFoundError, ValidationError)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_product(org_id: int, product_id) -> Product:
    product_pk = parse_id(product_id, "Product ID")
    product = db.session.query(Product).filter_by(id=product_pk, org_id=org_id).first()
    if not product:
        raise NotFoundError("Product not found in this organization")
    return product


def _sku_taken(org_id: int, sku: str, exclude_product_id: int | None = None) -> bool:
    query = db.session.query(Product.id).filter(Product.org_id == org_id, Product.sku == sku)
    if exclude_product_id is not None:
        query = query.filter(Product.id != exclude_product_id)
    return query.first() is not None


def _require_data(data) -> dict:
    if not data or not isinstance(data, dict):
        raise ValidationError("Product data is required")
    return data


def _core_fields(data: dict) -> dict:
    """Full set of editable fields, as used by add and plain update."""
    return {
        "name": require_text(data.get("name"), "Product name", max_length=255),
        "sku": require_text(data.get("sku"), "Product SKU", max_length=64),
        "description": optional_text(data.get("description")),
        "image_url": optional_text(data.get("image")),
        "stock": clamp_quantity(data.get("stock"), "stock"),
        "price": clamp_price(data.get("price"), "price"),
    }


def _partial_fields(data: dict) -> dict:
    """Only the keys present in `data`, validated. Used by bulk and details edits."""
    fields: dict = {}
    if "name" in data:
        fields["name"] = require_text(data["name"], "Product name", max_length=255)
    if "sku" in data:
        fields["sku"] = require_text(data["sku"], "Product SKU", max_length=64)
    if "description" in data:
        fields["description"] = optional_text(data["description"])
    if "image" in data:
        fields["image_url"] = optional_text(data["image"])
    if data.get("stock") is not None:
        fields["stock"] = clamp_quantity(data["stock"], "stock")
    if data.get("price") is not None:
        fields["price"] = clamp_price(data["price"], "price")
    return fields


def _apply_product_fields(product: Product, fields: dict) -> None:
    for key in ("name", "sku", "description", "image_url", "status"):
        if key in fields:
            setattr(product, key, fields[key])


def set_stock_quantity(product_id: int, warehouse_id: int, quantity: int) -> ProductStock:
    """Set (not adjust) the quantity for a product in a warehouse, creating the row if needed."""
    stock = (
        db.session.query(ProductStock)
        .filter_by(product_id=product_id, warehouse_id=warehouse_id)
        .first()
    )
    if stock:
        stock.quantity = quantity
    else:
        stock = ProductStock(product_id=product_id, warehouse_id=warehouse_id, quantity=quantity)
        db.session.add(stock)
    return stock


def latest_price(product_id: int) -> ProductPrice | None:
    return (
        db.session.query(ProductPrice)
        .filter_by(product_id=product_id)
        .order_by(ProductPrice.valid_from.desc(), ProductPrice.id.desc())
        .first()
    )


def revise_current_price(product_id: int, retail_price: float) -> ProductPrice:
    """
    Simple path: edit the newest price row in place.

    - newest row has the same retail price -> no-op
    - newest row differs -> its retail price is overwritten
    - no row -> one open row is created
    """
    current = latest_price(product_id)
    if current is not None and float(current.retail_price) == retail_price:
        return current

    if current is not None:
        current.retail_price = retail_price
        return current

    price = ProductPrice(
        product_id=product_id,
        retail_price=retail_price,
        valid_from=utcnow(),
    )
    db.session.add(price)
    return price


def supersede_current_price(
    product_id: int,
    retail_price: float,
    actual_price: float | None = None,
    market_price: float | None = None,
) -> ProductPrice:
    """
    Interval-preserving path: close every open price row and open a new one.
    """
    now = utcnow()
    (
        db.session.query(ProductPrice)
        .filter(ProductPrice.product_id == product_id, ProductPrice.valid_to.is_(None))
        .update({ProductPrice.valid_to: now}, synchronize_session="fetch")
    )

    price = ProductPrice(
        product_id=product_id,
        retail_price=retail_price,
        actual_price=actual_price,
        market_price=market_price,
        valid_from=now,
    )
    db.session.add(price)
    return price


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def add_product(org_id, principal: Principal, data: dict) -> dict:
    """
    Create a product with its initial stock (default warehouse) and price.

    Raises:
        ValidationError: missing name/sku, non-numeric stock/price
        AccessDeniedError: role below writer tier
        ConflictError: SKU already used in this organization
    """
    fields = _core_fields(_require_data(data))
    ctx = authorize(org_id, principal, WRITE_ROLES, "add products")

    if _sku_taken(ctx.org_id, fields["sku"]):
        raise ConflictError(f"A product with SKU \"{fields['sku']}\" already exists in this organization")

    with atomic("add product", conflict_message=DUPLICATE_SKU_MESSAGE):
        reassert_access(ctx, WRITE_ROLES, "add products")

        product = Product(
            org_id=ctx.org_id,
            name=fields["name"],
            sku=fields["sku"],
            description=fields["description"],
            image_url=fields["image_url"],
            status="active",
            created_by=ctx.user.id,
        )
        db.session.add(product)
        db.session.flush()

        warehouse = get_or_create_default_warehouse(ctx.org_id)

        stock = ProductStock(product_id=product.id, warehouse_id=warehouse.id, quantity=fields["stock"])
        price = ProductPrice(
            product_id=product.id,
            retail_price=fields["price"],
            actual_price=fields["price"],
            valid_from=utcnow(),
        )
        db.session.add(stock)
        db.session.add(price)

    invalidate_after_write(ctx.org_id)

    result = {
        "product_id": str(product.id),
        "name": product.name,
        "sku": product.sku,
        "stock": stock.quantity,
        "price": float(price.retail_price),
        "created_at": to_utc_z(product.created_at),
        "warehouse_id": str(warehouse.id),
        "warehouse_name": warehouse.name,
    }
    current_app.logger.info("Product %s (%s) added to org %s", product.id, product.sku, ctx.org_id)
    return {
        "success": True,
        "product_id": result["product_id"],
        "data": result,
        "message": f"Product \"{result['name']}\" with SKU \"{result['sku']}\" has been successfully added to inventory",
    }


def update_product(org_id, product_id, principal: Principal, data: dict) -> dict:
    """
    Replace a product's editable fields, its default-warehouse stock and
    (simple path) its current price.
    """
    fields = _core_fields(_require_data(data))
    ctx = authorize(org_id, principal, WRITE_ROLES, "update products")
    product = _require_product(ctx.org_id, product_id)

    if _sku_taken(ctx.org_id, fields["sku"], exclude_product_id=product.id):
        raise ConflictError("A product with this SKU already exists in this organization")

    with atomic("update product", conflict_message=DUPLICATE_SKU_MESSAGE):
        reassert_access(ctx, WRITE_ROLES, "update products")

        _apply_product_fields(product, fields)
        product.modified_by = ctx.user.id

        warehouse = get_or_create_default_warehouse(ctx.org_id)
        set_stock_quantity(product.id, warehouse.id, fields["stock"])
        revise_current_price(product.id, fields["price"])

    invalidate_after_write(ctx.org_id)

    current_app.logger.info("Product %s updated in org %s", product.id, ctx.org_id)
    return {
        "success": True,
        "product_id": str(product.id),
        "data": {
            "product_id": str(product.id),
            "name": product.name,
            "sku": product.sku,
            "stock": fields["stock"],
            "price": fields["price"],
            "warehouse_id": str(warehouse.id),
            "warehouse_name": warehouse.name,
        },
        "message": f"Product \"{product.name}\" with SKU \"{product.sku}\" has been successfully updated",
    }


def delete_product(org_id, product_id, principal: Principal) -> dict:
    """
    Delete a product with its stock rows, price history and ledger entries.

    Raises:
        ConflictError: the product appears on an order
    """
    ctx = authorize(org_id, principal, WRITE_ROLES, "delete products")
    product = _require_product(ctx.org_id, product_id)
    product_pk = product.id

    ordered = db.session.query(OrderItem.id).filter(OrderItem.product_id == product_pk).first()
    if ordered:
        raise ConflictError("Cannot delete product that has been ordered. Consider deactivating it instead.")

    with atomic("delete product"):
        reassert_access(ctx, WRITE_ROLES, "delete products")
        db.session.delete(product)

    invalidate_after_write(ctx.org_id)

    current_app.logger.info("Product %s deleted from org %s", product_pk, ctx.org_id)
    return {
        "success": True,
        "product_id": str(product_pk),
        "message": "Product has been successfully deleted",
    }


def bulk_update_products(org_id, principal: Principal, updates: list) -> dict:
    """
    Apply many product edits in one transaction.

    Each update is {"id": "<product id>", "data": {...}}; only keys present
    in data are changed. Stock goes to the default warehouse, price uses the
    simple (in-place) strategy. The listing cache is invalidated once for
    the whole batch.
    """
    if not updates or not isinstance(updates, list):
        raise ValidationError("No updates provided")

    parsed = []
    for index, update in enumerate(updates):
        if not isinstance(update, dict):
            raise ValidationError(f"Update #{index + 1} is malformed")
        product_pk = parse_id(update.get("id"), "Product ID")
        parsed.append((product_pk, _partial_fields(_require_data(update.get("data")))))

    ctx = authorize(org_id, principal, WRITE_ROLES, "update products")

    bulk_timeout = current_app.config.get("BULK_TRANSACTION_TIMEOUT_SECONDS")
    results = []
    with atomic("update products", timeout=bulk_timeout, conflict_message=DUPLICATE_SKU_MESSAGE):
        reassert_access(ctx, WRITE_ROLES, "update products")
        warehouse = None

        for product_pk, fields in parsed:
            product = _require_product(ctx.org_id, product_pk)

            if "sku" in fields and fields["sku"] != product.sku:
                if _sku_taken(ctx.org_id, fields["sku"], exclude_product_id=product.id):
                    raise ConflictError(f"A product with SKU \"{fields['sku']}\" already exists in this organization")

            _apply_product_fields(product, fields)
            product.modified_by = ctx.user.id
            db.session.flush()

            if "stock" in fields:
                if warehouse is None:
                    warehouse = get_or_create_default_warehouse(ctx.org_id)
                set_stock_quantity(product.id, warehouse.id, fields["stock"])

            if "price" in fields:
                revise_current_price(product.id, fields["price"])

            results.append({"product_id": str(product.id), "name": product.name, "sku": product.sku})

    invalidate_after_write(ctx.org_id)

    current_app.logger.info("Bulk updated %s products in org %s", len(results), ctx.org_id)
    return {
        "success": True,
        "updated_count": len(results),
        "results": results,
        "message": f"Successfully updated {len(results)} products",
    }


# ---------------------------------------------------------------------------
# Product details (read + replace)
# ---------------------------------------------------------------------------


def _user_ref(user: User | None) -> dict | None:
    if user is None:
        return None
    return {"id": str(user.id), "email": user.email}


def get_product_details(org_id, product_id, principal: Principal) -> dict:
    """
    Full product view: audit users, stock per warehouse, the 20 newest price
    rows, the 10 newest order lines, total stock and current price.
    """
    ctx = authorize(org_id, principal, READ_ROLES, "view product details")
    product = _require_product(ctx.org_id, product_id)

    stocks = sorted(product.stocks, key=lambda s: s.warehouse_id)
    prices = (
        db.session.query(ProductPrice)
        .filter_by(product_id=product.id)
        .order_by(ProductPrice.valid_from.desc(), ProductPrice.id.desc())
        .limit(PRICE_HISTORY_LIMIT)
        .all()
    )
    recent_items = (
        db.session.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.product_id == product.id, Order.org_id == ctx.org_id)
        .order_by(Order.order_date.desc(), OrderItem.id.desc())
        .limit(RECENT_ORDERS_LIMIT)
        .all()
    )

    total_stock = sum(s.quantity or 0 for s in stocks)
    current_price = float(prices[0].retail_price) if prices else 0.0

    return {
        **product.to_dict(),
        "created_by": _user_ref(product.creator) or {"id": "", "email": "Unknown"},
        "modified_by": _user_ref(product.modifier),
        "warehouses": [
            {
                "id": str(s.warehouse.id),
                "name": s.warehouse.name,
                "address": s.warehouse.address or "",
                "stock": s.quantity or 0,
            }
            for s in stocks
        ],
        "price_history": [p.to_dict() for p in prices],
        "recent_orders": [item.to_dict() for item in recent_items],
        "total_stock": total_stock,
        "current_price": current_price,
        "low_stock_threshold": current_app.config.get("LOW_STOCK_THRESHOLD", 10),
    }


def update_product_details(org_id, product_id, principal: Principal, data: dict) -> dict:
    """
    Replace path from the details view.

    Product fields present in `data` are updated; when `price` is present
    the current price is superseded (history preserved), with optional
    `actual_price` and `market_price`.
    """
    data = _require_data(data)
    fields = _partial_fields(data)
    fields.pop("stock", None)

    if "status" in data:
        status = require_text(data["status"], "Status").lower()
        if status not in PRODUCT_STATUSES:
            raise ValidationError(f"Status must be one of: {', '.join(sorted(PRODUCT_STATUSES))}")
        fields["status"] = status

    actual_price = clamp_price(data["actual_price"], "actual_price") if data.get("actual_price") is not None else None
    market_price = clamp_price(data["market_price"], "market_price") if data.get("market_price") is not None else None

    ctx = authorize(org_id, principal, WRITE_ROLES, "update products")
    product = _require_product(ctx.org_id, product_id)

    if "sku" in fields and _sku_taken(ctx.org_id, fields["sku"], exclude_product_id=product.id):
        raise ConflictError("A product with this SKU already exists in this organization")

    with atomic("update product", conflict_message=DUPLICATE_SKU_MESSAGE):
        reassert_access(ctx, WRITE_ROLES, "update products")
        _apply_product_fields(product, fields)
        product.modified_by = ctx.user.id

        if "price" in fields:
            supersede_current_price(product.id, fields["price"], actual_price, market_price)

    invalidate_after_write(ctx.org_id)
    return {"success": True, "product_id": str(product.id)}


# ---------------------------------------------------------------------------
# Listing + cache
# ---------------------------------------------------------------------------


def _listing_item(product: Product) -> dict:
    newest = max(product.prices, key=lambda p: (p.valid_from, p.id), default=None)
    return {
        "id": str(product.id),
        "name": product.name or "",
        "sku": product.sku or "",
        "description": product.description or "",
        "stock": sum(s.quantity or 0 for s in product.stocks),
        "price": float(newest.retail_price) if newest else 0.0,
        "image": product.image_url,
        "created_at": to_utc_z(product.created_at),
        "updated_at": to_utc_z(product.updated_at),
    }


def load_product_listing(org_id: int) -> list[dict]:
    """Product listing computed from the database (source of truth)."""
    products = (
        db.session.query(Product)
        .options(selectinload(Product.stocks), selectinload(Product.prices))
        .filter(Product.org_id == org_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    return [_listing_item(p) for p in products]


def list_products(org_id, principal: Principal) -> dict:
    """
    Read-through cached product listing.

    Returns {"items": [...], "cache": {"status": HIT|MISS|STALE|BYPASS, "age_seconds": n}}.

    A refusal (AccessDeniedError, NotFoundError, ValidationError) propagates.
    Any other failure, including one while authorizing, serves the last
    cached listing as STALE, or raises a typed error when nothing is cached.
    """
    org_pk = parse_id(org_id, "Organization ID")
    try:
        authorize(org_pk, principal, READ_ROLES, "view products")
        return product_cache.read_through(org_pk, lambda: load_product_listing(org_pk))
    except _LISTING_REFUSALS:
        raise
    except Exception as exc:
        db.session.rollback()
        stale = product_cache.serve_stale(org_pk)
        if stale is not None:
            return stale
        raise classify_failure(exc, "load products") from exc


def warm_cache_for_org(org_id: int) -> dict:
    """Recompute and store the listing. Operator path; no authorization."""
    items = load_product_listing(org_id)
    cached = product_cache.store(org_id, items)
    current_app.logger.info("Warmed product cache for org %s with %s products (stored=%s)", org_id, len(items), cached)
    return {
        "success": True,
        "cached_count": len(items),
        "cached": cached,
        "message": f"Cache warmed up with {len(items)} products",
    }


def warm_product_cache(org_id, principal: Principal) -> dict:
    ctx = authorize(org_id, principal, READ_ROLES, "access products")
    return warm_cache_for_org(ctx.org_id)
