# Overview: Pytest coverage for order/entry status propagation and the overdue label.

from datetime import timedelta

import pytest

from core_exchange.errors import InsufficientDebt, InvalidState, NotFound
from core_exchange.models import Order
from core_exchange.models.sales import (
    ORDER_STATUS_AWAITING_RETURN,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_OVERDUE,
    ORDER_STATUS_TOTAL_LOSS,
)
from core_exchange.services import ledger_service, status_service
from core_exchange.time_utils import parse_iso_datetime, utcnow


class TestRecomputeOrderStatus:
    def test_open_while_any_debt_remains(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 2)])
        result = status_service.recompute_order_status(order.id)
        db_session.commit()
        assert result.status == ORDER_STATUS_AWAITING_RETURN

    def test_completion_keeps_first_return_date(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 1)])
        ledger_service.apply_return(order.items[0].id, 1)
        db_session.refresh(order)
        stamped = order.return_date

        status_service.recompute_order_status(order.id, returned_at=utcnow() + timedelta(days=5))
        db_session.commit()
        db_session.refresh(order)
        assert order.status == ORDER_STATUS_COMPLETED
        assert order.return_date == stamped

    def test_missing_order(self, db_session):
        with pytest.raises(NotFound):
            status_service.recompute_order_status(999999)


class TestTotalLoss:
    def test_open_order_can_be_written_off(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 2)], notes="first note")
        status_service.mark_total_loss(order.id, note="client closed")

        db_session.refresh(order)
        assert order.status == ORDER_STATUS_TOTAL_LOSS
        assert order.notes == "first note\nclient closed"

    def test_total_loss_is_terminal(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 2)])
        item_id = order.items[0].id
        status_service.mark_total_loss(order.id)

        # A late core still decrements, but the order stays written off
        ledger_service.apply_return(item_id, 2)
        db_session.refresh(order)
        assert order.status == ORDER_STATUS_TOTAL_LOSS
        assert order.return_date is None

        with pytest.raises(InsufficientDebt):
            ledger_service.apply_return(item_id, 1)

    def test_completed_order_cannot_be_written_off(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 1)])
        ledger_service.apply_return(order.items[0].id, 1)

        with pytest.raises(InvalidState):
            status_service.mark_total_loss(order.id)


class TestDerivedStatus:
    def test_overdue_after_threshold(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 1)], sale_date="2026-01-01T00:00:00Z")

        day_30 = parse_iso_datetime("2026-01-31T00:00:00Z")
        day_31 = parse_iso_datetime("2026-02-01T00:00:00Z")

        assert status_service.derived_order_status(order, as_of=day_30) == ORDER_STATUS_AWAITING_RETURN
        assert status_service.derived_order_status(order, as_of=day_31) == ORDER_STATUS_OVERDUE

        # Never persisted
        assert db_session.get(Order, order.id).status == ORDER_STATUS_AWAITING_RETURN

    def test_threshold_override(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 1)], sale_date="2026-01-01T00:00:00Z")
        as_of = parse_iso_datetime("2026-01-09T00:00:00Z")

        assert status_service.derived_order_status(order, as_of=as_of, overdue_after_days=7) == ORDER_STATUS_OVERDUE

    def test_closed_orders_are_never_overdue(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 1)], sale_date="2026-01-01T00:00:00Z")
        ledger_service.apply_return(order.items[0].id, 1)
        db_session.refresh(order)

        as_of = parse_iso_datetime("2026-06-01T00:00:00Z")
        assert status_service.derived_order_status(order, as_of=as_of) == ORDER_STATUS_COMPLETED

    def test_days_pending(self, db_session, acme, alternator, make_order):
        order = make_order(acme, [(alternator, 1)], sale_date="2026-01-01T12:00:00Z")
        assert status_service.days_pending(order, parse_iso_datetime("2026-01-11T11:00:00Z")) == 9
        assert status_service.days_pending(order, parse_iso_datetime("2025-12-01T00:00:00Z")) == 0
