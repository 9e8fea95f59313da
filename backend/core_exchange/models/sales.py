from __future__ import annotations

from ..extensions import db
from core_exchange.time_utils import to_utc_z, utcnow


SALE_TYPE_NORMAL = "NORMAL"
SALE_TYPE_CORE_EXCHANGE = "CORE_EXCHANGE"
SALE_TYPES = (SALE_TYPE_NORMAL, SALE_TYPE_CORE_EXCHANGE)

ORDER_STATUS_AWAITING_RETURN = "AWAITING_RETURN"
ORDER_STATUS_OVERDUE = "OVERDUE"
ORDER_STATUS_COMPLETED = "COMPLETED"
ORDER_STATUS_TOTAL_LOSS = "TOTAL_LOSS"

# Statuses under which cores are still expected back
ORDER_OPEN_STATUSES = (ORDER_STATUS_AWAITING_RETURN, ORDER_STATUS_OVERDUE)


class Order(db.Model):
    """
    Sale document.

    status and return_date are the only fields mutated after creation, and
    only by the status propagator (services/status_service.py).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_client_status", "client_id", "status"),
        db.Index("ix_orders_seller_status", "seller_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable, year-scoped number (e.g., "PED-2026-0042")
    order_number = db.Column(db.String(32), nullable=False)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, nullable=True)

    sale_type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_CORE_EXCHANGE)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_AWAITING_RETURN, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    return_date = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    # Order number in the seller's own system, when the sale was keyed elsewhere first
    origin_order_number = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    client = db.relationship("Client", backref=db.backref("orders", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "client_id": self.client_id,
            "seller_id": self.seller_id,
            "sale_type": self.sale_type,
            "total_value_cents": self.total_value_cents,
            "status": self.status,
            "sale_date": to_utc_z(self.sale_date),
            "return_date": to_utc_z(self.return_date) if self.return_date else None,
            "notes": self.notes,
            "origin_order_number": self.origin_order_number,
        }


class OrderItem(db.Model):
    """
    Sold line item and its core-debt counter.

    core_debt counts core units still owed (not money). It starts equal to
    quantity for CORE_EXCHANGE lines, is always 0 for NORMAL lines, and only
    ever decreases through services/ledger_service.py.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("core_debt >= 0", name="ck_order_items_debt_non_negative"),
        db.CheckConstraint("core_debt <= quantity", name="ck_order_items_debt_le_quantity"),
        db.Index("ix_order_items_product_debt", "product_id", "core_debt"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Snapshot at sale time
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    # Negotiated price per unit, before discount
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_percent = db.Column(db.Numeric(7, 4), nullable=False, default=0)
    # Per unit, after discount
    final_price_cents = db.Column(db.Integer, nullable=False)

    core_debt = db.Column(db.Integer, nullable=False, default=0)
    # Whole line: per-unit retained revenue x quantity
    retained_revenue_cents = db.Column(db.Integer, nullable=False, default=0)

    sale_type = db.Column(db.String(16), nullable=False, default=SALE_TYPE_CORE_EXCHANGE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("items", lazy=True, order_by="OrderItem.id"))
    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.final_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_percent": str(self.discount_percent),
            "final_price_cents": self.final_price_cents,
            "line_total_cents": self.line_total_cents,
            "core_debt": self.core_debt,
            "retained_revenue_cents": self.retained_revenue_cents,
            "sale_type": self.sale_type,
        }
