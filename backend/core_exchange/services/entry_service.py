"""
Entry Intake & Auto-Matcher

WHY: When a client brings cores back, the receiving clerk records a
merchandise entry. If the clerk already knows which sale each line settles,
the link is resolved on the spot instead of waiting for manual matching.

LIFECYCLE:
1. create_entry: entry PENDING, items unlinked
2. Items carrying target_order_item_id are settled immediately through the
   ledger (full item quantity) and linked
3. Entry becomes COMPLETED when every item ended up linked; otherwise it
   waits for the manual matcher

Auto-links are checked for client and product compatibility unless
AUTO_LINK_REQUIRE_PRODUCT_MATCH is turned off, in which case the caller is
trusted to have picked a compatible debt.

The whole intake is one transaction: a failed auto-link rolls back the
entry, its items and any decrement already made.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app

from ..errors import NotFound
from ..extensions import db
from ..models import Client, MerchandiseEntry, MerchandiseEntryItem, OrderItem, Product
from ..models.documents import RETURN_SOURCE_AUTO_LINK
from ..models.entries import ENTRY_STATUS_COMPLETED, ENTRY_STATUS_PENDING
from ..time_utils import utcnow
from ..validation import (
    ConflictError,
    ValidationError,
    clean_text,
    parse_datetime,
    parse_int,
    parse_quantity,
)
from . import ledger_service, status_service
from .concurrency import run_in_transaction
from .document_service import DOCUMENT_TYPE_ENTRY_REPORT, next_document_number
from .matching_service import ensure_compatible, link_entry_item

logger = logging.getLogger(__name__)

ENTRY_STATUSES = (ENTRY_STATUS_PENDING, ENTRY_STATUS_COMPLETED)


def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    parsed = []
    seen_products: set[int] = set()
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if raw.get("product_id") in (None, ""):
            raise ValidationError(f"items[{idx}].product_id is required")

        product_id = parse_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1)
        quantity = parse_quantity(raw.get("quantity"), f"items[{idx}].quantity")

        if product_id in seen_products:
            raise ConflictError(
                f"Product {product_id} appears on more than one line; each product may appear only once per entry"
            )
        seen_products.add(product_id)

        target = raw.get("target_order_item_id")
        parsed.append({
            "product_id": product_id,
            "product_name": clean_text(raw.get("product_name"), f"items[{idx}].product_name", max_length=255),
            "quantity": quantity,
            "target_order_item_id": (
                parse_int(target, f"items[{idx}].target_order_item_id", minimum=1)
                if target not in (None, "") else None
            ),
        })
    return parsed


def _auto_link(entry: MerchandiseEntry, entry_item: MerchandiseEntryItem, order_item_id: int, actor: int | None) -> None:
    if current_app.config["AUTO_LINK_REQUIRE_PRODUCT_MATCH"]:
        order_item = db.session.get(OrderItem, order_item_id)
        if order_item is None:
            raise NotFound(f"Order item {order_item_id} not found")
        ensure_compatible(entry, entry_item, order_item)

    ledger_service._apply_return_locked(
        order_item_id,
        entry_item.quantity,
        source=RETURN_SOURCE_AUTO_LINK,
        entry_item_id=entry_item.id,
        actor=actor,
    )
    link_entry_item(entry_item, order_item_id, entry_item.quantity)


def create_entry(
    client_id: int,
    report_number: str | None,
    entry_date: datetime | str | None,
    items: list,
    *,
    created_by: int | None = None,
    notes: str | None = None,
) -> MerchandiseEntry:
    """
    Record received merchandise and resolve any pre-selected links.

    Args:
        client_id: Client returning the goods
        report_number: Delivery note number; allocated as ENT-YYYY-NNNN when omitted
        entry_date: When the goods arrived (defaults to now)
        items: [{product_id, product_name?, quantity, target_order_item_id?}]
        created_by: User recording the entry
        notes: Free text

    Raises:
        ValidationError / ConflictError: malformed items or repeated product
        NotFound: client, product or target order item missing
        InvalidPairing: target debt belongs to another client or product
        InsufficientDebt: an item's quantity exceeds its target's debt
    """
    parsed_items = _parse_items(items)
    report_number = clean_text(report_number, "report_number", max_length=64)
    entry_date = parse_datetime(entry_date, "entry_date") or utcnow()
    notes = clean_text(notes, "notes", max_length=2000)

    def _op() -> MerchandiseEntry:
        client = db.session.get(Client, client_id)
        if not client:
            raise NotFound(f"Client {client_id} not found")

        products = {}
        for item in parsed_items:
            product = db.session.get(Product, item["product_id"])
            if not product:
                raise NotFound(f"Product {item['product_id']} not found")
            products[product.id] = product

        number = report_number or next_document_number(
            document_type=DOCUMENT_TYPE_ENTRY_REPORT,
            prefix=current_app.config["ENTRY_REPORT_PREFIX"],
            year=entry_date.year,
        )

        entry = MerchandiseEntry(
            client_id=client.id,
            report_number=number,
            entry_date=entry_date,
            status=ENTRY_STATUS_PENDING,
            created_by=created_by,
            notes=notes,
        )
        db.session.add(entry)
        db.session.flush()

        for item in parsed_items:
            entry_item = MerchandiseEntryItem(
                entry_id=entry.id,
                product_id=item["product_id"],
                product_name=item["product_name"] or products[item["product_id"]].name,
                quantity=item["quantity"],
                linked=False,
            )
            db.session.add(entry_item)
            db.session.flush()

            if item["target_order_item_id"] is not None:
                _auto_link(entry, entry_item, item["target_order_item_id"], created_by)

        status_service.recompute_entry_status(entry.id)

        logger.info(
            "Merchandise entry %s recorded for client %s: %s item(s), status %s",
            entry.report_number, client.id, len(parsed_items), entry.status,
        )
        return entry

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_entry_with_items(entry_id: int) -> MerchandiseEntry:
    entry = db.session.get(MerchandiseEntry, entry_id)
    if not entry:
        raise NotFound(f"Merchandise entry {entry_id} not found")
    return entry


def list_entries(client_id: int | None = None, status: str | None = None) -> list[MerchandiseEntry]:
    if status is not None and status not in ENTRY_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ENTRY_STATUSES)}")

    query = db.session.query(MerchandiseEntry)
    if client_id is not None:
        query = query.filter_by(client_id=client_id)
    if status is not None:
        query = query.filter_by(status=status)
    return query.order_by(MerchandiseEntry.entry_date.desc(), MerchandiseEntry.id.desc()).all()


def entry_to_dict(entry: MerchandiseEntry) -> dict:
    data = entry.to_dict()
    data["items"] = [item.to_dict() for item in entry.items]
    data["total_units"] = sum(item.quantity for item in entry.items)
    return data
