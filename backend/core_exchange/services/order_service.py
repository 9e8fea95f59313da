"""
Sales Service - core-exchange and normal sales

WHY: A core-exchange sale creates the debts the rest of the engine settles.
Each line is priced under its product's carcass-value ceiling and starts
owing one core per unit sold.

DESIGN PRINCIPLES:
- Order numbers are PED-YYYY-NNNN from an atomic year-scoped counter
- Over-ceiling discounts are clamped, and the clamped lines are returned so
  the caller can tell the seller
- NORMAL sales owe no cores and carry no core discount
- A full return settles every remaining debt of an order through the ledger
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import InvalidState, NotFound
from ..extensions import db
from ..models import Client, Order, OrderItem, Product
from ..models.documents import RETURN_SOURCE_FULL_RETURN
from ..models.sales import (
    ORDER_OPEN_STATUSES,
    ORDER_STATUS_AWAITING_RETURN,
    ORDER_STATUS_OVERDUE,
    SALE_TYPE_CORE_EXCHANGE,
    SALE_TYPE_NORMAL,
    SALE_TYPES,
)
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    clean_text,
    parse_cents,
    parse_datetime,
    parse_int,
    parse_percent,
    parse_quantity,
)
from . import ledger_service, pricing_service, status_service
from .concurrency import lock_for_update, run_in_transaction
from .document_service import DOCUMENT_TYPE_ORDER, next_document_number

logger = logging.getLogger(__name__)


def _parse_lines(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Add at least one item")

    parsed = []
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if raw.get("product_id") in (None, ""):
            raise ValidationError(f"items[{idx}].product_id is required")
        unit_price = raw.get("unit_price_cents")
        parsed.append({
            "product_id": parse_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1),
            "quantity": parse_quantity(raw.get("quantity"), f"items[{idx}].quantity"),
            "unit_price_cents": (
                parse_cents(unit_price, f"items[{idx}].unit_price_cents")
                if unit_price not in (None, "") else None
            ),
            "discount_percent": parse_percent(
                raw.get("discount_percent", 0), f"items[{idx}].discount_percent"
            ),
        })
    return parsed


def _price_line(line: dict, product: Product, sale_type: str) -> pricing_service.LineQuote:
    unit_price = line["unit_price_cents"]
    if unit_price is None:
        unit_price = product.base_price_cents

    if sale_type == SALE_TYPE_NORMAL:
        if line["discount_percent"] != 0:
            raise ValidationError("NORMAL sales carry no core discount; discount_percent must be 0")
        # No carcass ceiling applies, so a zero price is allowed
        zero = Decimal(0).quantize(pricing_service.PERCENT_PLACES)
        return pricing_service.LineQuote(
            unit_price_cents=unit_price,
            carcass_value_cents=0,
            quantity=line["quantity"],
            requested_discount_percent=zero,
            discount_percent=zero,
            max_discount_percent=zero,
            discount_value_cents=0,
            final_price_cents=unit_price,
            retained_revenue_cents=0,
            clamped=False,
        )

    quote = pricing_service.quote_line(
        unit_price, line["discount_percent"], product.carcass_value_cents, line["quantity"]
    )
    if not pricing_service.validate_discount(unit_price, quote.discount_percent, product.carcass_value_cents):
        raise ValidationError(f"Discount on {product.name} exceeds its carcass value")
    return quote


def create_order(
    client_id: int,
    seller_id: int | None,
    items: list,
    *,
    sale_type: str = SALE_TYPE_CORE_EXCHANGE,
    notes: str | None = None,
    origin_order_number: str | None = None,
    sale_date: datetime | str | None = None,
) -> tuple[Order, list[pricing_service.LineQuote]]:
    """
    Create a sale with its line items and initial core debts.

    Args:
        items: [{product_id, quantity, unit_price_cents?, discount_percent?}]
            unit_price_cents defaults to the product's base price.

    Returns:
        (order, quotes) with one LineQuote per line, in input order.
        Quotes with `clamped` set had their discount reduced to the ceiling.
    """
    if sale_type not in SALE_TYPES:
        raise ValidationError(f"sale_type must be one of: {', '.join(SALE_TYPES)}")

    lines = _parse_lines(items)
    notes = clean_text(notes, "notes", max_length=2000)
    origin_order_number = clean_text(origin_order_number, "origin_order_number", max_length=64)
    sale_date = parse_datetime(sale_date, "sale_date") or utcnow()

    def _op():
        client = db.session.get(Client, client_id)
        if not client:
            raise NotFound(f"Client {client_id} not found")

        priced = []
        for line in lines:
            product = db.session.get(Product, line["product_id"])
            if not product:
                raise NotFound(f"Product {line['product_id']} not found")
            priced.append((line, product, _price_line(line, product, sale_type)))

        order = Order(
            order_number=next_document_number(
                document_type=DOCUMENT_TYPE_ORDER,
                prefix=current_app.config["ORDER_NUMBER_PREFIX"],
                year=sale_date.year,
            ),
            client_id=client.id,
            seller_id=seller_id if seller_id is not None else client.seller_id,
            sale_type=sale_type,
            total_value_cents=sum(quote.line_total_cents for _, _, quote in priced),
            status=ORDER_STATUS_AWAITING_RETURN,
            sale_date=sale_date,
            notes=notes,
            origin_order_number=origin_order_number,
        )
        db.session.add(order)
        db.session.flush()

        for line, product, quote in priced:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                product_name=product.name,
                quantity=line["quantity"],
                unit_price_cents=quote.unit_price_cents,
                discount_percent=quote.discount_percent,
                final_price_cents=quote.final_price_cents,
                core_debt=line["quantity"] if sale_type == SALE_TYPE_CORE_EXCHANGE else 0,
                retained_revenue_cents=quote.line_retained_revenue_cents if sale_type == SALE_TYPE_CORE_EXCHANGE else 0,
                sale_type=sale_type,
            ))
        db.session.flush()

        # A NORMAL sale owes nothing and completes right away
        status_service.recompute_order_status(order.id, returned_at=sale_date)

        clamped = sum(1 for _, _, quote in priced if quote.clamped)
        logger.info(
            "Order %s created for client %s: %s line(s), %s clamped",
            order.order_number, client.id, len(priced), clamped,
        )
        return order, [quote for _, _, quote in priced]

    return run_in_transaction(_op)


def register_full_return(
    order_id: int,
    *,
    returned_at: datetime | None = None,
    actor: int | None = None,
) -> Order:
    """
    Settle every remaining core of an order at once.

    Each outstanding item goes through the ledger for its full remaining
    debt, so the journal and status propagation stay consistent.
    """
    def _op() -> Order:
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFound(f"Order {order_id} not found")

        if order.status not in ORDER_OPEN_STATUSES:
            raise InvalidState(
                f"Order {order.order_number} is already closed with status: {order.status}",
                details={"order_id": order.id, "status": order.status},
            )

        outstanding = (
            db.session.query(OrderItem)
            .filter(OrderItem.order_id == order.id, OrderItem.core_debt > 0)
            .all()
        )
        for item in outstanding:
            ledger_service._apply_return_locked(
                item.id,
                item.core_debt,
                source=RETURN_SOURCE_FULL_RETURN,
                actor=actor,
                returned_at=returned_at,
            )

        status_service.recompute_order_status(order.id, returned_at=returned_at)
        return order

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFound(f"Order {order_id} not found")
    return order


def get_order_by_number(order_number: str) -> Order:
    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if not order:
        raise NotFound(f"Order {order_number} not found")
    return order


def get_order_items_by_order(order_id: int) -> list[OrderItem]:
    get_order(order_id)
    return (
        db.session.query(OrderItem)
        .filter_by(order_id=order_id)
        .order_by(OrderItem.id.asc())
        .all()
    )


def order_to_dict(order: Order, *, as_of: datetime | None = None) -> dict:
    data = order.to_dict()
    data["display_status"] = status_service.derived_order_status(order, as_of=as_of)
    data["days_pending"] = status_service.days_pending(order, as_of) if order.status in ORDER_OPEN_STATUSES else None
    data["items"] = [item.to_dict() for item in order.items]
    data["core_debt"] = sum(item.core_debt for item in order.items)
    return data


def _debt_summary(filter_clause) -> dict:
    pending_cores, pending_lines = (
        db.session.query(
            func.coalesce(func.sum(OrderItem.core_debt), 0),
            func.count(OrderItem.id),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            filter_clause,
            Order.status.in_(ORDER_OPEN_STATUSES),
            OrderItem.core_debt > 0,
        )
        .one()
    )
    open_orders = (
        db.session.query(func.count(Order.id))
        .filter(filter_clause, Order.status.in_(ORDER_OPEN_STATUSES))
        .scalar()
    )
    return {
        "pending_cores": int(pending_cores),
        "pending_lines": int(pending_lines),
        "open_orders": int(open_orders),
    }


def client_debt_summary(client_id: int) -> dict:
    """Cores still owed by a client across its open orders."""
    if not db.session.get(Client, client_id):
        raise NotFound(f"Client {client_id} not found")
    summary = _debt_summary(Order.client_id == client_id)
    summary["client_id"] = client_id
    return summary


def seller_debt_summary(seller_id: int) -> dict:
    """Cores still owed on a seller's open orders."""
    summary = _debt_summary(Order.seller_id == seller_id)
    summary["seller_id"] = seller_id
    return summary


def list_overdue_orders(as_of: datetime | None = None, overdue_after_days: int | None = None) -> list[Order]:
    """Open orders whose derived status is OVERDUE, oldest first."""
    candidates = (
        db.session.query(Order)
        .filter(Order.status.in_((ORDER_STATUS_AWAITING_RETURN, ORDER_STATUS_OVERDUE)))
        .order_by(Order.sale_date.asc())
        .all()
    )
    return [
        order for order in candidates
        if status_service.derived_order_status(
            order, as_of=as_of, overdue_after_days=overdue_after_days
        ) == ORDER_STATUS_OVERDUE
    ]
