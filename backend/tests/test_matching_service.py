# Overview: Pytest coverage for manual reconciliation of entries against core debts.

"""
Manual Matching Tests

SAFETY TESTS: A confirmed batch is validated in full before any debt moves.

Covers:
1. Candidate listing (same product, bounded quantity, other clients excluded)
2. Batch confirmation decrementing debts and linking entry items
3. All-or-nothing rejection when any pairing exceeds the debt
4. Structural pairing errors and entry state checks
"""

import pytest

from core_exchange.errors import ExceedsAvailableDebt, InvalidPairing, InvalidState, NotFound
from core_exchange.extensions import db
from core_exchange.models import CoreReturnEvent, MerchandiseEntry, MerchandiseEntryItem, OrderItem
from core_exchange.models.documents import RETURN_SOURCE_MANUAL_LINK
from core_exchange.models.entries import ENTRY_STATUS_COMPLETED, ENTRY_STATUS_PENDING
from core_exchange.models.sales import ORDER_STATUS_COMPLETED
from core_exchange.services import entry_service, ledger_service, matching_service
from core_exchange.services.matching_service import Pairing
from core_exchange.validation import ValidationError


@pytest.fixture
def pending_entry(db_session, acme, alternator, starter):
    return entry_service.create_entry(acme.id, "NF-10", None, [
        {"product_id": alternator.id, "quantity": 2},
        {"product_id": starter.id, "quantity": 1},
    ])


class TestProductsMatch:
    def test_same_id(self, db_session, acme, alternator, make_order):
        item = make_order(acme, [(alternator, 1)]).items[0]
        assert matching_service.products_match(alternator.id, None, item) is True

    def test_name_fallback_ignores_case(self, db_session, acme, alternator, make_order):
        item = make_order(acme, [(alternator, 1)]).items[0]
        assert matching_service.products_match(None, "  alternator 90a ", item) is True

    def test_different_product(self, db_session, acme, alternator, starter, make_order):
        item = make_order(acme, [(alternator, 1)]).items[0]
        assert matching_service.products_match(starter.id, "Starter Motor 12V", item) is False


class TestLinkCandidates:
    def test_candidates_filtered_and_bounded(self, db_session, acme, other_client, alternator, starter, make_order, pending_entry):
        small = make_order(acme, [(alternator, 1)])
        large = make_order(acme, [(alternator, 5)])
        make_order(other_client, [(alternator, 3)])

        result = matching_service.get_link_candidates(pending_entry.id)

        assert result["entry"]["id"] == pending_entry.id
        assert len(result["outstanding_debts"]) == 2
        alt_row, starter_row = result["unlinked_items"]

        assert [c["id"] for c in alt_row["candidates"]] == [
            small.items[0].id, large.items[0].id,
        ]
        assert [c["max_quantity"] for c in alt_row["candidates"]] == [1, 2]
        assert starter_row["candidates"] == []

    def test_linked_items_not_listed(self, db_session, acme, alternator, starter, make_order):
        order = make_order(acme, [(alternator, 2)])
        entry = entry_service.create_entry(acme.id, "NF-11", None, [
            {"product_id": alternator.id, "quantity": 2, "target_order_item_id": order.items[0].id},
            {"product_id": starter.id, "quantity": 1},
        ])

        result = matching_service.get_link_candidates(entry.id)
        assert [row["entry_item"]["product_id"] for row in result["unlinked_items"]] == [starter.id]

    def test_missing_entry(self, db_session):
        with pytest.raises(NotFound):
            matching_service.get_link_candidates(999999)


class TestConfirmLinks:
    def test_batch_applies_and_completes_entry(self, db_session, acme, alternator, starter, make_order, pending_entry):
        order = make_order(acme, [(alternator, 2), (starter, 1)])
        alt_item, starter_item = order.items
        alt_entry_item, starter_entry_item = pending_entry.items

        result = matching_service.confirm_links(pending_entry.id, [
            {"entry_item_id": alt_entry_item.id, "order_item_id": alt_item.id, "quantity": 2},
            {"entry_item_id": starter_entry_item.id, "order_item_id": starter_item.id, "quantity": 1},
        ], actor=4)

        assert result["linked_entry_item_ids"] == [alt_entry_item.id, starter_entry_item.id]
        assert result["entry"].status == ENTRY_STATUS_COMPLETED

        db_session.refresh(order)
        assert order.status == ORDER_STATUS_COMPLETED
        events = db_session.query(CoreReturnEvent).all()
        assert {(e.source, e.actor) for e in events} == {(RETURN_SOURCE_MANUAL_LINK, 4)}

    def test_partial_quantity_link(self, db_session, acme, alternator, make_order, pending_entry):
        order = make_order(acme, [(alternator, 5)])
        alt_entry_item = pending_entry.items[0]

        matching_service.confirm_links(pending_entry.id, [
            Pairing(entry_item_id=alt_entry_item.id, order_item_id=order.items[0].id, quantity=1),
        ])

        linked = db.session.get(MerchandiseEntryItem, alt_entry_item.id)
        assert linked.linked is True
        assert linked.linked_quantity == 1
        assert db.session.get(OrderItem, order.items[0].id).core_debt == 4
        assert db.session.get(MerchandiseEntry, pending_entry.id).status == ENTRY_STATUS_PENDING

    def test_exceeding_pairing_rejects_whole_batch(self, db_session, acme, alternator, starter, make_order, pending_entry):
        order = make_order(acme, [(alternator, 2)])
        short = make_order(acme, [(starter, 1)])
        starter_item = short.items[0]
        alt_entry_item, starter_entry_item = pending_entry.items

        # Debt moved after candidates were listed
        ledger_service.apply_return(starter_item.id, 1)

        with pytest.raises(ExceedsAvailableDebt) as exc:
            matching_service.confirm_links(pending_entry.id, [
                {"entry_item_id": alt_entry_item.id, "order_item_id": order.items[0].id, "quantity": 2},
                {"entry_item_id": starter_entry_item.id, "order_item_id": starter_item.id, "quantity": 1},
            ])

        violations = exc.value.details["violations"]
        assert len(violations) == 1
        assert violations[0]["order_item_id"] == starter_item.id
        assert violations[0]["available_debt"] == 0

        assert db.session.get(OrderItem, order.items[0].id).core_debt == 2
        assert db.session.get(MerchandiseEntryItem, alt_entry_item.id).linked is False

    def test_settled_debt_cannot_be_linked_again(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 2)])
        entry = entry_service.create_entry(acme.id, "NF-12", None, [
            {"product_id": alternator.id, "quantity": 2, "product_name": "Alternator 90A"},
        ])
        other = entry_service.create_entry(acme.id, "NF-13", None, [
            {"product_id": alternator.id, "quantity": 1},
        ])

        matching_service.confirm_links(entry.id, [
            {"entry_item_id": entry.items[0].id, "order_item_id": order.items[0].id, "quantity": 2},
        ])
        with pytest.raises(ExceedsAvailableDebt):
            matching_service.confirm_links(other.id, [
                {"entry_item_id": other.items[0].id, "order_item_id": order.items[0].id, "quantity": 1},
            ])

    def test_quantity_above_received_rejected(self, db_session, acme, alternator, make_order, pending_entry):
        order = make_order(acme, [(alternator, 5)])
        with pytest.raises(InvalidPairing):
            matching_service.confirm_links(pending_entry.id, [
                {"entry_item_id": pending_entry.items[0].id, "order_item_id": order.items[0].id, "quantity": 3},
            ])

    def test_debt_overflow_reported_before_received_count(self, db_session, acme, starter, make_order, pending_entry):
        order = make_order(acme, [(starter, 1)])
        starter_entry_item = pending_entry.items[1]

        with pytest.raises(ExceedsAvailableDebt) as exc:
            matching_service.confirm_links(pending_entry.id, [
                {"entry_item_id": starter_entry_item.id, "order_item_id": order.items[0].id, "quantity": 2},
            ])

        violations = exc.value.details["violations"]
        assert [(v["entry_item_id"], v["requested_quantity"], v["available_debt"]) for v in violations] == [
            (starter_entry_item.id, 2, 1),
        ]
        assert db.session.get(OrderItem, order.items[0].id).core_debt == 1

    def test_item_from_another_entry_rejected(self, db_session, acme, alternator, make_order, pending_entry):
        order = make_order(acme, [(alternator, 2)])
        other = entry_service.create_entry(acme.id, "NF-14", None, [{"product_id": alternator.id, "quantity": 1}])

        with pytest.raises(InvalidPairing):
            matching_service.confirm_links(pending_entry.id, [
                {"entry_item_id": other.items[0].id, "order_item_id": order.items[0].id, "quantity": 1},
            ])

    def test_duplicate_entry_item_rejected(self, db_session, acme, alternator, make_order, pending_entry):
        first = make_order(acme, [(alternator, 1)])
        second = make_order(acme, [(alternator, 1)])
        entry_item_id = pending_entry.items[0].id

        with pytest.raises(InvalidPairing):
            matching_service.confirm_links(pending_entry.id, [
                {"entry_item_id": entry_item_id, "order_item_id": first.items[0].id, "quantity": 1},
                {"entry_item_id": entry_item_id, "order_item_id": second.items[0].id, "quantity": 1},
            ])

    def test_product_mismatch_rejected(self, db_session, acme, starter, make_order, pending_entry):
        order = make_order(acme, [(starter, 3)])
        with pytest.raises(InvalidPairing):
            matching_service.confirm_links(pending_entry.id, [
                {"entry_item_id": pending_entry.items[0].id, "order_item_id": order.items[0].id, "quantity": 1},
            ])

    def test_completed_entry_rejected(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 3)])
        entry = entry_service.create_entry(acme.id, "NF-15", None, [
            {"product_id": alternator.id, "quantity": 1, "target_order_item_id": order.items[0].id},
        ])
        assert entry.status == ENTRY_STATUS_COMPLETED

        with pytest.raises(InvalidState):
            matching_service.confirm_links(entry.id, [
                {"entry_item_id": entry.items[0].id, "order_item_id": order.items[0].id, "quantity": 1},
            ])

    def test_missing_order_item(self, db_session, pending_entry):
        with pytest.raises(NotFound):
            matching_service.confirm_links(pending_entry.id, [
                {"entry_item_id": pending_entry.items[0].id, "order_item_id": 999999, "quantity": 1},
            ])

    def test_empty_batch_rejected(self, db_session, pending_entry):
        with pytest.raises(ValidationError):
            matching_service.confirm_links(pending_entry.id, [])
