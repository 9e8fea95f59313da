# Overview: Service-layer operations for the core-debt ledger; the only writer of OrderItem.core_debt.

from __future__ import annotations

import logging

from sqlalchemy import update

from ..errors import InsufficientDebt, NotFound
from ..extensions import db
from ..models import CoreReturnEvent, Order, OrderItem
from ..models.documents import RETURN_SOURCE_DIRECT
from ..models.sales import SALE_TYPE_CORE_EXCHANGE
from ..time_utils import utcnow
from ..validation import ValidationError
from . import status_service
from .concurrency import run_in_transaction

logger = logging.getLogger(__name__)
"""
Core-Debt Ledger Invariants (authoritative)

- core_debt counts core units still owed on an order item; it starts at the
  sold quantity and only ever decreases.
- 0 <= core_debt <= quantity at all times (also enforced by CHECK constraints).
- Decrements are a single conditional UPDATE guarded by core_debt >= :q; the
  affected-row count is the success signal, so concurrent returns against the
  same item cannot lose an update or drive the debt negative.
- Every decrement appends a CoreReturnEvent and re-runs the status propagator
  for the parent order in the same transaction.
- Idempotency of a logical return is the caller's responsibility: each call
  is a distinct decrement.
"""


def _apply_return_locked(
    order_item_id: int,
    quantity: int,
    *,
    source: str = RETURN_SOURCE_DIRECT,
    entry_item_id: int | None = None,
    actor: int | None = None,
    note: str | None = None,
    returned_at=None,
) -> OrderItem:
    """Decrement without committing; callers own the transaction."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Return quantity must be a positive integer")

    stmt = (
        update(OrderItem)
        .where(OrderItem.id == order_item_id, OrderItem.core_debt >= quantity)
        .values(core_debt=OrderItem.core_debt - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    item = db.session.get(OrderItem, order_item_id, populate_existing=True)
    if not result.rowcount:
        if item is None:
            raise NotFound(f"Order item {order_item_id} not found")
        raise InsufficientDebt(
            f"Cannot return {quantity} core(s) for order item {order_item_id}. Current debt: {item.core_debt}",
            details={
                "order_item_id": order_item_id,
                "requested_quantity": quantity,
                "core_debt": item.core_debt,
            },
        )

    db.session.add(CoreReturnEvent(
        order_item_id=item.id,
        order_id=item.order_id,
        entry_item_id=entry_item_id,
        quantity=quantity,
        debt_after=item.core_debt,
        source=source,
        actor=actor,
        note=note,
        occurred_at=utcnow(),
    ))
    db.session.flush()

    logger.info(
        "Core debt decremented: order_item=%s quantity=%s debt_after=%s source=%s",
        item.id, quantity, item.core_debt, source,
    )

    status_service.recompute_order_status(item.order_id, returned_at=returned_at)
    return item


def apply_return(
    order_item_id: int,
    quantity: int,
    *,
    source: str = RETURN_SOURCE_DIRECT,
    entry_item_id: int | None = None,
    actor: int | None = None,
    note: str | None = None,
) -> int:
    """
    Record `quantity` returned cores against an order item.

    Returns the new core_debt.

    Raises:
        ValidationError: quantity is not a positive integer
        NotFound: order item does not exist
        InsufficientDebt: quantity exceeds the current core_debt
    """
    def _op() -> int:
        item = _apply_return_locked(
            order_item_id,
            quantity,
            source=source,
            entry_item_id=entry_item_id,
            actor=actor,
            note=note,
        )
        return item.core_debt

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order_item(order_item_id: int) -> OrderItem:
    item = db.session.get(OrderItem, order_item_id)
    if not item:
        raise NotFound(f"Order item {order_item_id} not found")
    return item


def get_outstanding_debts_by_client(client_id: int) -> list[OrderItem]:
    """Core-exchange items of a client that still owe cores, oldest sale first."""
    return (
        db.session.query(OrderItem)
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            Order.client_id == client_id,
            OrderItem.sale_type == SALE_TYPE_CORE_EXCHANGE,
            OrderItem.core_debt > 0,
        )
        .order_by(Order.sale_date.asc(), OrderItem.id.asc())
        .all()
    )


def get_return_events(order_item_id: int) -> list[CoreReturnEvent]:
    return (
        db.session.query(CoreReturnEvent)
        .filter_by(order_item_id=order_item_id)
        .order_by(CoreReturnEvent.id.asc())
        .all()
    )


def outstanding_debt_to_dict(item: OrderItem) -> dict:
    """Debt row enriched with its order, as shown in candidate pickers."""
    data = item.to_dict()
    order = item.order
    data["order_number"] = order.order_number
    data["sale_date"] = order.to_dict()["sale_date"]
    data["order_status"] = status_service.derived_order_status(order)
    return data
