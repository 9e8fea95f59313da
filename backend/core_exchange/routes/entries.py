# Overview: Flask API routes for merchandise entries and core reconciliation; parses input and returns JSON responses.

# backend/core_exchange/routes/entries.py
"""
Merchandise Entry API Routes

WHY: Returned cores arrive as merchandise entries and must be reconciled
against the sales that created the debts.

DESIGN:
- Record an entry; lines with target_order_item_id are settled on the spot
- List candidate debts for the still-unlinked lines
- Confirm a batch of manual pairings, all-or-nothing
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreExchangeError
from ..services import entry_service, matching_service
from ..validation import ConflictError, ValidationError, parse_int, require_fields


entries_bp = Blueprint("entries", __name__, url_prefix="/api/entries")


# =============================================================================
# ENTRY INTAKE
# =============================================================================

@entries_bp.post("")
def create_entry_route():
    """
    Record received merchandise.

    Request body:
    {
        "client_id": 1,
        "report_number": "NF-1234",          (optional, default: ENT-YYYY-NNNN)
        "entry_date": "2026-03-10T09:00:00Z", (optional)
        "created_by": 7,                      (optional)
        "notes": "...",                       (optional)
        "items": [
            {"product_id": 3, "quantity": 2, "target_order_item_id": 12},
            {"product_id": 4, "product_name": "Alternator 90A", "quantity": 1}
        ]
    }

    Returns:
        201: Entry with items (COMPLETED when every line was auto-linked)
        400: Invalid input or invalid pairing
        404: Client, product or target order item not found
        409: Duplicate product, or quantity exceeds the target debt
    """
    try:
        data = require_fields(request.get_json(silent=True), "client_id", "items")
        created_by = data.get("created_by")

        entry = entry_service.create_entry(
            client_id=parse_int(data.get("client_id"), "client_id", minimum=1),
            report_number=data.get("report_number"),
            entry_date=data.get("entry_date"),
            items=data.get("items"),
            created_by=parse_int(created_by, "created_by", minimum=1) if created_by not in (None, "") else None,
            notes=data.get("notes"),
        )

        return jsonify({"entry": entry_service.entry_to_dict(entry)}), 201

    except (CoreExchangeError, ValidationError, ConflictError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create merchandise entry")
        return jsonify({"error": "Internal server error"}), 500


@entries_bp.get("")
def list_entries_route():
    """
    List merchandise entries, newest first.

    Query params:
        client_id: filter by client
        status: PENDING or COMPLETED
    """
    try:
        client_id = request.args.get("client_id")
        entries = entry_service.list_entries(
            client_id=parse_int(client_id, "client_id", minimum=1) if client_id not in (None, "") else None,
            status=request.args.get("status") or None,
        )
        return jsonify({
            "entries": [entry_service.entry_to_dict(e) for e in entries],
            "count": len(entries),
        }), 200

    except (CoreExchangeError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list merchandise entries")
        return jsonify({"error": "Internal server error"}), 500


@entries_bp.get("/<int:entry_id>")
def get_entry_route(entry_id: int):
    try:
        entry = entry_service.get_entry_with_items(entry_id)
        return jsonify({"entry": entry_service.entry_to_dict(entry)}), 200
    except CoreExchangeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get merchandise entry")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MANUAL RECONCILIATION
# =============================================================================

@entries_bp.get("/<int:entry_id>/link-candidates")
def link_candidates_route(entry_id: int):
    try:
        return jsonify(matching_service.get_link_candidates(entry_id)), 200
    except CoreExchangeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list link candidates")
        return jsonify({"error": "Internal server error"}), 500


@entries_bp.post("/<int:entry_id>/links")
def confirm_links_route(entry_id: int):
    """
    Apply a batch of manual pairings. Either every pairing is applied or none.

    Request body:
    {
        "actor": 7,   (optional)
        "pairings": [
            {"entry_item_id": 5, "order_item_id": 12, "quantity": 2}
        ]
    }

    Returns:
        200: Updated entry and the linked entry item ids
        400: Invalid pairing
        404: Entry or order item not found
        409: Entry not PENDING, or a pairing exceeds the available debt
             (details.violations lists every offending pairing)
    """
    try:
        data = require_fields(request.get_json(silent=True), "pairings")
        actor = data.get("actor")

        result = matching_service.confirm_links(
            entry_id,
            data.get("pairings"),
            actor=parse_int(actor, "actor", minimum=1) if actor not in (None, "") else None,
        )

        return jsonify({
            "entry": entry_service.entry_to_dict(result["entry"]),
            "linked_entry_item_ids": result["linked_entry_item_ids"],
        }), 200

    except (CoreExchangeError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm entry links")
        return jsonify({"error": "Internal server error"}), 500
