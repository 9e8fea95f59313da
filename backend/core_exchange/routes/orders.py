# Overview: Flask API routes for sales orders; parses input and returns JSON responses.

# backend/core_exchange/routes/orders.py
"""
Sales Order API Routes

WHY: Core-exchange sales create the core debts the rest of the API settles.

DESIGN:
- Create orders (CORE_EXCHANGE or NORMAL) with per-line discount clamping
- Look up orders by their PED-YYYY-NNNN number
- Register a full return or write an order off as a total loss
- Status in responses is the stored one; display_status adds OVERDUE by age
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreExchangeError
from ..services import order_service, status_service
from ..validation import (
    ConflictError,
    ValidationError,
    clean_text,
    parse_datetime,
    parse_int,
    require_fields,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# ORDER CREATION
# =============================================================================

@orders_bp.post("")
def create_order_route():
    """
    Create a sale and its initial core debts.

    Request body:
    {
        "client_id": 1,
        "seller_id": 7,                  (optional, default: client's seller)
        "sale_type": "CORE_EXCHANGE",    (optional, or "NORMAL")
        "sale_date": "2026-03-01T10:00:00Z",  (optional)
        "notes": "...",                  (optional)
        "origin_order_number": "...",    (optional)
        "items": [
            {"product_id": 3, "quantity": 2, "unit_price_cents": 50000, "discount_percent": "15"}
        ]
    }

    Returns:
        201: {"order": {...}, "adjustments": [...]}  adjustments lists clamped lines
        400: Invalid input
        404: Client or product not found
    """
    try:
        data = require_fields(request.get_json(silent=True), "client_id", "items")

        seller_id = data.get("seller_id")
        order, quotes = order_service.create_order(
            client_id=parse_int(data.get("client_id"), "client_id", minimum=1),
            seller_id=parse_int(seller_id, "seller_id", minimum=1) if seller_id not in (None, "") else None,
            items=data.get("items"),
            sale_type=data.get("sale_type") or "CORE_EXCHANGE",
            notes=data.get("notes"),
            origin_order_number=data.get("origin_order_number"),
            sale_date=data.get("sale_date"),
        )

        adjustments = [
            {
                "line": idx,
                "requested_discount_percent": str(quote.requested_discount_percent),
                "applied_discount_percent": str(quote.discount_percent),
            }
            for idx, quote in enumerate(quotes)
            if quote.clamped
        ]

        return jsonify({
            "order": order_service.order_to_dict(order),
            "adjustments": adjustments,
        }), 201

    except (CoreExchangeError, ValidationError, ConflictError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER QUERIES
# =============================================================================

@orders_bp.get("/overdue")
def list_overdue_orders_route():
    """
    Open orders past the overdue threshold, oldest first.

    Query params:
        days: threshold override (default: OVERDUE_AFTER_DAYS)
    """
    try:
        days = request.args.get("days")
        overdue_after_days = parse_int(days, "days", minimum=0) if days not in (None, "") else None

        orders = order_service.list_overdue_orders(overdue_after_days=overdue_after_days)
        return jsonify({
            "orders": [order_service.order_to_dict(o) for o in orders],
            "count": len(orders),
        }), 200

    except (CoreExchangeError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list overdue orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<string:order_number>")
def get_order_route(order_number: str):
    try:
        order = order_service.get_order_by_number(order_number)
        return jsonify({"order": order_service.order_to_dict(order)}), 200
    except CoreExchangeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/items")
def get_order_items_route(order_id: int):
    try:
        items = order_service.get_order_items_by_order(order_id)
        return jsonify({"items": [item.to_dict() for item in items]}), 200
    except CoreExchangeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order items")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER CLOSING
# =============================================================================

@orders_bp.post("/<int:order_id>/full-return")
def full_return_route(order_id: int):
    """
    Settle every remaining core of an order.

    Request body (optional):
    {
        "returned_at": "2026-03-20T15:00:00Z",
        "actor": 7
    }

    Returns:
        200: Order COMPLETED
        404: Order not found
        409: Order already closed
    """
    try:
        data = request.get_json(silent=True) or {}
        actor = data.get("actor")

        order = order_service.register_full_return(
            order_id,
            returned_at=parse_datetime(data.get("returned_at"), "returned_at"),
            actor=parse_int(actor, "actor", minimum=1) if actor not in (None, "") else None,
        )
        return jsonify({"order": order_service.order_to_dict(order)}), 200

    except (CoreExchangeError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register full return")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/total-loss")
def total_loss_route(order_id: int):
    """
    Write an open order off: its cores will never come back.

    Request body (optional):
    {
        "note": "Client closed the shop"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        order = status_service.mark_total_loss(
            order_id,
            note=clean_text(data.get("note"), "note", max_length=2000),
        )
        return jsonify({"order": order_service.order_to_dict(order)}), 200

    except (CoreExchangeError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark order as total loss")
        return jsonify({"error": "Internal server error"}), 500
