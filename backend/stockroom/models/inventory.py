from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Warehouse(db.Model):
    """
    Stock location within an organization.

    BOOTSTRAP: the first product added to an organization creates a
    "Default Warehouse" if none exists yet.
    """
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("warehouses", lazy=True))

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "address": self.address or "",
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to organizations via org_id.
    SKUs are unique within an organization and compared case-sensitively.
    Stock and price rows belong to the product and are removed with it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_products_org_sku"),
        db.Index("ix_products_org_name", "org_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(1024), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    modified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("products", lazy=True))
    creator = db.relationship("User", foreign_keys=[created_by])
    modifier = db.relationship("User", foreign_keys=[modified_by])

    stocks = db.relationship(
        "ProductStock",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy=True,
    )
    prices = db.relationship(
        "ProductPrice",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy=True,
    )
    movements = db.relationship(
        "StockMovement",
        back_populates="product",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} org_id={self.org_id}>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "sku": self.sku,
            "name": self.name,
            "description": self.description or "",
            "image": self.image_url,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductStock(db.Model):
    """
    Quantity of one product in one warehouse.

    Quantity never goes negative; the stock service enforces this when it
    mutates the row. version_id guards against two concurrent adjustments
    committing from the same stale quantity.
    """
    __tablename__ = "product_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", name="uq_product_stock_product_warehouse"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", back_populates="stocks")
    warehouse = db.relationship("Warehouse", backref=db.backref("stocks", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ProductStock product_id={self.product_id} warehouse_id={self.warehouse_id} quantity={self.quantity}>"


class ProductPrice(db.Model):
    """
    Price row with a validity interval.

    The current price is the newest row by valid_from; an open row has
    valid_to = NULL.
    """
    __tablename__ = "product_prices"
    __table_args__ = (
        db.Index("ix_product_prices_product_valid_from", "product_id", "valid_from"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    retail_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=False, default=0)
    actual_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)
    market_price = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)

    valid_from = db.Column(db.DateTime(timezone=True), nullable=False)
    valid_to = db.Column(db.DateTime(timezone=True), nullable=True)

    product = db.relationship("Product", back_populates="prices")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "retail_price": float(self.retail_price or 0),
            "actual_price": float(self.actual_price) if self.actual_price is not None else None,
            "market_price": float(self.market_price) if self.market_price is not None else None,
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
        }


class StockMovement(db.Model):
    """
    Stock ledger entry.

    IMMUTABLE: Never update or delete an individual entry. Entries only
    disappear together with their product or organization.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False)  # "in" | "out"
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="movements")
    warehouse = db.relationship("Warehouse")

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "product_id": str(self.product_id),
            "warehouse_id": str(self.warehouse_id),
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "notes": self.notes,
            "created_by": str(self.created_by) if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
