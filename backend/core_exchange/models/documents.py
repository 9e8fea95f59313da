from __future__ import annotations

from ..extensions import db
from core_exchange.time_utils import to_utc_z


RETURN_SOURCE_AUTO_LINK = "AUTO_LINK"
RETURN_SOURCE_MANUAL_LINK = "MANUAL_LINK"
RETURN_SOURCE_DIRECT = "DIRECT"
RETURN_SOURCE_FULL_RETURN = "FULL_RETURN"


class CoreReturnEvent(db.Model):
    """
    Append-only journal of core-debt decrements.

    One row per successful ledger decrement, written in the same transaction
    as the decrement itself. Never updated or deleted.
    """
    __tablename__ = "core_return_events"
    __table_args__ = (
        db.Index("ix_core_return_events_item_occurred", "order_item_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    entry_item_id = db.Column(db.Integer, db.ForeignKey("merchandise_entry_items.id"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    debt_after = db.Column(db.Integer, nullable=False)

    source = db.Column(db.String(16), nullable=False)
    actor = db.Column(db.Integer, nullable=True)
    note = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_item_id": self.order_item_id,
            "order_id": self.order_id,
            "entry_item_id": self.entry_item_id,
            "quantity": self.quantity,
            "debt_after": self.debt_after,
            "source": self.source,
            "actor": self.actor,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic year-scoped document counters.

    WHY: Order and entry-report numbers (PREFIX-YYYY-NNNN) must not collide
    under concurrent creation; scanning the latest row and incrementing does.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "year", name="uq_doc_sequences_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
