"""
Status Propagator

Recomputes and persists the aggregate status of orders and merchandise
entries from ledger state. This module is the only writer of Order.status,
Order.return_date and MerchandiseEntry.status.

ORDER LIFECYCLE:
- AWAITING_RETURN: created with at least one core owed
- COMPLETED: every item's core_debt reached 0 (return_date stamped once)
- TOTAL_LOSS: manual terminal override, never set by recomputation

OVERDUE is a read-time label (derived_order_status): an AWAITING_RETURN
order older than OVERDUE_AFTER_DAYS reads as OVERDUE. The core never
persists it; a stored OVERDUE written by an outside job is still honoured
as an open status.

ENTRY LIFECYCLE:
- PENDING -> COMPLETED once every item is linked

Recompute functions do not commit; they join the caller's transaction and
are safe to call redundantly.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app

from ..errors import InvalidState, NotFound
from ..extensions import db
from ..models import MerchandiseEntry, MerchandiseEntryItem, Order, OrderItem
from ..models.entries import ENTRY_STATUS_COMPLETED
from ..models.sales import (
    ORDER_OPEN_STATUSES,
    ORDER_STATUS_AWAITING_RETURN,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_OVERDUE,
    ORDER_STATUS_TOTAL_LOSS,
)
from ..time_utils import days_between, utcnow
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


def recompute_order_status(order_id: int, *, returned_at: datetime | None = None) -> Order:
    """
    Mark the order COMPLETED when no item owes a core any more.

    Leaves the status untouched while any debt remains, and never touches
    COMPLETED (return_date keeps its first value) or TOTAL_LOSS orders.
    """
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if not order:
        raise NotFound(f"Order {order_id} not found")

    if order.status in (ORDER_STATUS_COMPLETED, ORDER_STATUS_TOTAL_LOSS):
        return order

    outstanding = (
        db.session.query(OrderItem.id)
        .filter(OrderItem.order_id == order_id, OrderItem.core_debt > 0)
        .first()
    )
    if outstanding is None:
        order.status = ORDER_STATUS_COMPLETED
        order.return_date = returned_at or utcnow()
        db.session.flush()
        logger.info("Order %s completed: all cores returned", order.order_number)

    return order


def recompute_entry_status(entry_id: int) -> MerchandiseEntry:
    """Mark the entry COMPLETED when every one of its items is linked."""
    entry = lock_for_update(db.session.query(MerchandiseEntry).filter_by(id=entry_id)).first()
    if not entry:
        raise NotFound(f"Merchandise entry {entry_id} not found")

    if entry.status == ENTRY_STATUS_COMPLETED:
        return entry

    has_items = db.session.query(MerchandiseEntryItem.id).filter_by(entry_id=entry_id).first()
    unlinked = (
        db.session.query(MerchandiseEntryItem.id)
        .filter_by(entry_id=entry_id, linked=False)
        .first()
    )
    if has_items is not None and unlinked is None:
        entry.status = ENTRY_STATUS_COMPLETED
        db.session.flush()
        logger.info("Merchandise entry %s completed: all items linked", entry.report_number)

    return entry


def mark_total_loss(order_id: int, *, note: str | None = None) -> Order:
    """
    Manual terminal override: the cores of this order will never come back.

    Only open orders (AWAITING_RETURN / OVERDUE) can be written off.
    """
    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFound(f"Order {order_id} not found")

        if order.status not in ORDER_OPEN_STATUSES:
            raise InvalidState(
                f"Only open orders can be marked as total loss. Order {order.order_number} has status: {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

        order.status = ORDER_STATUS_TOTAL_LOSS
        if note:
            order.notes = f"{order.notes}\n{note}" if order.notes else note
        logger.info("Order %s marked as total loss", order.order_number)
        return order

    return run_in_transaction(_op)


def days_pending(order: Order, as_of: datetime | None = None) -> int:
    return days_between(order.sale_date, as_of or utcnow())


def derived_order_status(
    order: Order,
    *,
    as_of: datetime | None = None,
    overdue_after_days: int | None = None,
) -> str:
    """Status as shown to users: AWAITING_RETURN turns into OVERDUE by age."""
    if order.status != ORDER_STATUS_AWAITING_RETURN:
        return order.status

    if overdue_after_days is None:
        overdue_after_days = current_app.config["OVERDUE_AFTER_DAYS"]

    if days_pending(order, as_of) > overdue_after_days:
        return ORDER_STATUS_OVERDUE
    return order.status
