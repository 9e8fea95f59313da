# Overview: Flask API routes for core-debt queries and direct returns; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreExchangeError, NotFound
from ..extensions import db
from ..models import Client
from ..services import ledger_service, order_service
from ..validation import ValidationError, clean_text, parse_int, parse_quantity, require_fields

"""
Debt semantics:
- core_debt counts core units still owed, never money.
- Outstanding debts are CORE_EXCHANGE items with core_debt > 0, oldest sale first.
- Summaries only count orders that are still open (AWAITING_RETURN / OVERDUE).
"""

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")
sellers_bp = Blueprint("sellers", __name__, url_prefix="/api/sellers")
ledger_bp = Blueprint("ledger", __name__, url_prefix="/api/ledger")


@clients_bp.get("/<int:client_id>/outstanding-debts")
def outstanding_debts_route(client_id: int):
    try:
        if not db.session.get(Client, client_id):
            raise NotFound(f"Client {client_id} not found")

        debts = ledger_service.get_outstanding_debts_by_client(client_id)
        return jsonify({
            "client_id": client_id,
            "debts": [ledger_service.outstanding_debt_to_dict(d) for d in debts],
            "total_cores": sum(d.core_debt for d in debts),
        }), 200

    except CoreExchangeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list outstanding debts")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>/debt-summary")
def client_debt_summary_route(client_id: int):
    try:
        return jsonify({"summary": order_service.client_debt_summary(client_id)}), 200
    except CoreExchangeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build client debt summary")
        return jsonify({"error": "Internal server error"}), 500


@sellers_bp.get("/<int:seller_id>/debt-summary")
def seller_debt_summary_route(seller_id: int):
    try:
        return jsonify({"summary": order_service.seller_debt_summary(seller_id)}), 200
    except Exception:
        current_app.logger.exception("Failed to build seller debt summary")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.post("/order-items/<int:order_item_id>/returns")
def apply_return_route(order_item_id: int):
    """
    Record cores returned directly against an order item.

    Request body:
    {
        "quantity": 1,
        "actor": 7,     (optional)
        "note": "..."   (optional)
    }

    Returns:
        200: {"order_item_id", "core_debt", "order_status"}
        400: Invalid quantity
        404: Order item not found
        409: Quantity exceeds the current debt
    """
    try:
        data = require_fields(request.get_json(silent=True), "quantity")
        actor = data.get("actor")

        new_debt = ledger_service.apply_return(
            order_item_id,
            parse_quantity(data.get("quantity")),
            actor=parse_int(actor, "actor", minimum=1) if actor not in (None, "") else None,
            note=clean_text(data.get("note"), "note", max_length=2000),
        )

        item = ledger_service.get_order_item(order_item_id)
        return jsonify({
            "order_item_id": order_item_id,
            "core_debt": new_debt,
            "order_status": item.order.status,
        }), 200

    except (CoreExchangeError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply core return")
        return jsonify({"error": "Internal server error"}), 500


@ledger_bp.get("/order-items/<int:order_item_id>/events")
def return_events_route(order_item_id: int):
    try:
        item = ledger_service.get_order_item(order_item_id)
        events = ledger_service.get_return_events(order_item_id)
        return jsonify({
            "order_item": item.to_dict(),
            "events": [e.to_dict() for e in events],
        }), 200

    except CoreExchangeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list core return events")
        return jsonify({"error": "Internal server error"}), 500
