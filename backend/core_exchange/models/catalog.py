from __future__ import annotations

from ..extensions import db
from core_exchange.time_utils import to_utc_z


class Product(db.Model):
    """
    Remanufactured part offered for sale.

    carcass_value_cents is the fixed monetary ceiling on the discount a seller
    may grant when the customer owes back the used core of this product.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    base_price_cents = db.Column(db.Integer, nullable=False)
    carcass_value_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "base_price_cents": self.base_price_cents,
            "carcass_value_cents": self.carcass_value_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Client(db.Model):
    """Customer that buys parts and owes back cores."""
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_seller_active", "seller_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    # Tax id (CNPJ), free text
    document = db.Column(db.String(32), nullable=True)
    seller_id = db.Column(db.Integer, nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "document": self.document,
            "seller_id": self.seller_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
