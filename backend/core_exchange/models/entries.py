from __future__ import annotations

from ..extensions import db
from core_exchange.time_utils import to_utc_z, utcnow


ENTRY_STATUS_PENDING = "PENDING"
ENTRY_STATUS_COMPLETED = "COMPLETED"


class MerchandiseEntry(db.Model):
    """
    Goods physically received from a client, typically returned cores.

    Created PENDING; becomes COMPLETED once every item is linked to a debt.
    """
    __tablename__ = "merchandise_entries"
    __table_args__ = (
        db.Index("ix_entries_client_status", "client_id", "status"),
        db.Index("ix_entries_report_number", "report_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    # Delivery note / invoice number, or an allocated ENT-YYYY-NNNN
    report_number = db.Column(db.String(64), nullable=False)
    entry_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    status = db.Column(db.String(16), nullable=False, default=ENTRY_STATUS_PENDING, index=True)

    created_by = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    client = db.relationship("Client", backref=db.backref("merchandise_entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "report_number": self.report_number,
            "entry_date": to_utc_z(self.entry_date),
            "status": self.status,
            "created_by": self.created_by,
            "notes": self.notes,
        }


class MerchandiseEntryItem(db.Model):
    """
    One received line.

    linked / linked_order_item_id go from unset to set exactly once; there is
    no unlink path. linked_quantity is how many units were applied to the debt.
    """
    __tablename__ = "merchandise_entry_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(db.Integer, db.ForeignKey("merchandise_entries.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    linked = db.Column(db.Boolean, nullable=False, default=False)
    linked_order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=True, index=True)
    linked_quantity = db.Column(db.Integer, nullable=True)
    linked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    entry = db.relationship("MerchandiseEntry", backref=db.backref("items", lazy=True, order_by="MerchandiseEntryItem.id"))
    linked_order_item = db.relationship("OrderItem", backref=db.backref("entry_items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "linked": self.linked,
            "linked_order_item_id": self.linked_order_item_id,
            "linked_quantity": self.linked_quantity,
            "linked_at": to_utc_z(self.linked_at) if self.linked_at else None,
        }
