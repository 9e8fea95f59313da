"""
Manual Reconciliation Matcher

WHY: Returned cores often arrive without a reference to the sale they settle.
An operator pairs each unlinked entry line with an outstanding debt of the
same client and product, choosing how many units to apply.

DESIGN PRINCIPLES:
- One PENDING entry at a time
- Candidates are filtered to the same product (id, or case-insensitive name
  as fallback) and bounded to min(entry quantity, current debt)
- confirm_links validates every pairing against freshly read debts before
  any mutation; one bad pairing rejects the whole batch
- The apply phase (ledger decrement + entry-item link per pairing, then entry
  completion) runs in the same transaction, so a failure mid-batch rolls
  everything back
- An entry item is linked exactly once; there is no unlink
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import ExceedsAvailableDebt, InvalidPairing, InvalidState, NotFound
from ..extensions import db
from ..models import MerchandiseEntry, MerchandiseEntryItem, OrderItem
from ..models.documents import RETURN_SOURCE_MANUAL_LINK
from ..models.entries import ENTRY_STATUS_PENDING
from ..models.sales import SALE_TYPE_CORE_EXCHANGE
from ..time_utils import utcnow
from ..validation import ValidationError, parse_int, parse_quantity
from . import ledger_service, status_service
from .concurrency import lock_for_update, run_in_transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Pairing:
    entry_item_id: int
    order_item_id: int
    quantity: int


# =============================================================================
# COMPATIBILITY & LINKING (shared with entry intake)
# =============================================================================

def products_match(product_id: int | None, product_name: str | None, order_item: OrderItem) -> bool:
    """Same product id, or failing that the same name ignoring case."""
    if product_id is not None and product_id == order_item.product_id:
        return True
    if product_name and order_item.product_name:
        return product_name.strip().lower() == order_item.product_name.strip().lower()
    return False


def ensure_compatible(entry: MerchandiseEntry, entry_item: MerchandiseEntryItem, order_item: OrderItem) -> None:
    """Raise InvalidPairing unless order_item is a core debt this entry item can settle."""
    details = {"entry_item_id": entry_item.id, "order_item_id": order_item.id}

    if order_item.order.client_id != entry.client_id:
        raise InvalidPairing(
            f"Order item {order_item.id} belongs to another client",
            details=details,
        )
    if order_item.sale_type != SALE_TYPE_CORE_EXCHANGE:
        raise InvalidPairing(
            f"Order item {order_item.id} is not a core-exchange sale",
            details=details,
        )
    if not products_match(entry_item.product_id, entry_item.product_name, order_item):
        raise InvalidPairing(
            f"Product mismatch: entry item '{entry_item.product_name}' cannot settle "
            f"order item '{order_item.product_name}'",
            details=details,
        )


def link_entry_item(entry_item: MerchandiseEntryItem, order_item_id: int, quantity: int) -> MerchandiseEntryItem:
    """Set the one-time link of an entry item. Does not commit."""
    if entry_item.linked:
        raise InvalidPairing(
            f"Entry item {entry_item.id} is already linked to order item {entry_item.linked_order_item_id}",
            details={"entry_item_id": entry_item.id},
        )

    entry_item.linked = True
    entry_item.linked_order_item_id = order_item_id
    entry_item.linked_quantity = quantity
    entry_item.linked_at = utcnow()
    db.session.flush()
    return entry_item


# =============================================================================
# CANDIDATES
# =============================================================================

def get_link_candidates(entry_id: int) -> dict:
    """
    Unlinked items of an entry, each with the client's debts it could settle.

    Returns:
        - entry: entry details
        - unlinked_items: [{entry_item, candidates: [debt + max_quantity]}]
        - outstanding_debts: every outstanding debt of the entry's client
    """
    entry = db.session.get(MerchandiseEntry, entry_id)
    if not entry:
        raise NotFound(f"Merchandise entry {entry_id} not found")

    debts = ledger_service.get_outstanding_debts_by_client(entry.client_id)

    unlinked = []
    for entry_item in entry.items:
        if entry_item.linked:
            continue
        candidates = []
        for debt in debts:
            if not products_match(entry_item.product_id, entry_item.product_name, debt):
                continue
            row = ledger_service.outstanding_debt_to_dict(debt)
            row["max_quantity"] = min(entry_item.quantity, debt.core_debt)
            candidates.append(row)
        unlinked.append({"entry_item": entry_item.to_dict(), "candidates": candidates})

    return {
        "entry": entry.to_dict(),
        "unlinked_items": unlinked,
        "outstanding_debts": [ledger_service.outstanding_debt_to_dict(d) for d in debts],
    }


# =============================================================================
# CONFIRMATION
# =============================================================================

def _parse_pairings(pairings) -> list[Pairing]:
    if not isinstance(pairings, list) or not pairings:
        raise ValidationError("At least one pairing is required")

    parsed = []
    for idx, raw in enumerate(pairings):
        if isinstance(raw, Pairing):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError(f"pairings[{idx}] must be an object")
        parsed.append(Pairing(
            entry_item_id=parse_int(raw.get("entry_item_id"), f"pairings[{idx}].entry_item_id", minimum=1),
            order_item_id=parse_int(raw.get("order_item_id"), f"pairings[{idx}].order_item_id", minimum=1),
            quantity=parse_quantity(raw.get("quantity"), f"pairings[{idx}].quantity"),
        ))
    return parsed


def _validate_batch(entry: MerchandiseEntry, pairings: list[Pairing]) -> list[tuple[Pairing, MerchandiseEntryItem, OrderItem]]:
    items_by_id = {item.id: item for item in entry.items}
    seen_entry_items: set[int] = set()
    resolved = []

    for pairing in pairings:
        entry_item = items_by_id.get(pairing.entry_item_id)
        if entry_item is None:
            raise InvalidPairing(
                f"Entry item {pairing.entry_item_id} does not belong to entry {entry.id}",
                details={"entry_item_id": pairing.entry_item_id},
            )
        if entry_item.id in seen_entry_items:
            raise InvalidPairing(
                f"Entry item {entry_item.id} appears more than once in the batch",
                details={"entry_item_id": entry_item.id},
            )
        seen_entry_items.add(entry_item.id)

        if entry_item.linked:
            raise InvalidPairing(
                f"Entry item {entry_item.id} is already linked",
                details={"entry_item_id": entry_item.id},
            )

        # Debts may have moved since candidates were listed: read them again
        order_item = (
            lock_for_update(db.session.query(OrderItem).filter_by(id=pairing.order_item_id))
            .populate_existing()
            .first()
        )
        if order_item is None:
            raise NotFound(f"Order item {pairing.order_item_id} not found")

        ensure_compatible(entry, entry_item, order_item)
        resolved.append((pairing, entry_item, order_item))

    requested: dict[int, int] = {}
    violations = []
    for pairing, entry_item, order_item in resolved:
        requested[order_item.id] = requested.get(order_item.id, 0) + pairing.quantity
        if requested[order_item.id] > order_item.core_debt:
            violations.append({
                "entry_item_id": entry_item.id,
                "product_name": entry_item.product_name,
                "order_item_id": order_item.id,
                "order_number": order_item.order.order_number,
                "requested_quantity": pairing.quantity,
                "available_debt": order_item.core_debt,
            })

    if violations:
        raise ExceedsAvailableDebt(
            f"{len(violations)} pairing(s) exceed the available core debt; no links were applied",
            details={"violations": violations},
        )

    # Debt overflow wins over a count mismatch with the received goods
    for pairing, entry_item, _ in resolved:
        if pairing.quantity > entry_item.quantity:
            raise InvalidPairing(
                f"Quantity {pairing.quantity} exceeds the {entry_item.quantity} unit(s) received on entry item {entry_item.id}",
                details={"entry_item_id": entry_item.id, "quantity": pairing.quantity},
            )

    return resolved


def confirm_links(entry_id: int, pairings, *, actor: int | None = None) -> dict:
    """
    Validate then apply a batch of operator pairings for one entry.

    Raises:
        NotFound: entry or an order item does not exist
        InvalidState: entry is not PENDING
        InvalidPairing: structurally invalid pairing
        ExceedsAvailableDebt: any pairing asks for more than is owed
    """
    parsed = _parse_pairings(pairings)

    def _op() -> dict:
        entry = lock_for_update(db.session.query(MerchandiseEntry).filter_by(id=entry_id)).first()
        if not entry:
            raise NotFound(f"Merchandise entry {entry_id} not found")
        if entry.status != ENTRY_STATUS_PENDING:
            raise InvalidState(
                f"Only PENDING entries can be linked. Entry {entry.report_number} has status: {entry.status}",
                details={"entry_id": entry.id, "status": entry.status},
            )

        resolved = _validate_batch(entry, parsed)

        for pairing, entry_item, order_item in resolved:
            ledger_service._apply_return_locked(
                order_item.id,
                pairing.quantity,
                source=RETURN_SOURCE_MANUAL_LINK,
                entry_item_id=entry_item.id,
                actor=actor,
            )
            link_entry_item(entry_item, order_item.id, pairing.quantity)

        status_service.recompute_entry_status(entry.id)
        logger.info("Entry %s: %s manual link(s) applied", entry.report_number, len(resolved))
        return {"entry": entry, "linked_entry_item_ids": [entry_item.id for _, entry_item, _ in resolved]}

    return run_in_transaction(_op)
