from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """Customer order. Only referenced for integrity checks and org deletion."""
    __tablename__ = "orders"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    customer_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(32), nullable=False, default="pending")

    items = db.relationship("OrderItem", back_populates="order", lazy=True)


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    price_at_order = db.Column(db.Numeric(12, 2, asdecimal=False), nullable=True)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "order_id": str(self.order_id),
            "order_date": to_utc_z(self.order.order_date),
            "customer_name": self.order.customer_name or "Unknown Customer",
            "quantity": self.quantity or 0,
            "price_at_order": float(self.price_at_order or 0),
            "status": self.order.status or "pending",
        }
