# Overview: Flask API routes for the core-exchange pricing calculator; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import CoreExchangeError, NotFound
from ..extensions import db
from ..models import Product
from ..services import pricing_service
from ..validation import ValidationError, parse_cents, parse_int, parse_quantity


pricing_bp = Blueprint("pricing", __name__, url_prefix="/api/pricing")


@pricing_bp.post("/quote")
def quote_route():
    """
    Price one line under the carcass-value ceiling. Read-only.

    Request body:
    {
        "unit_price_cents": 50000,
        "discount_percent": "15",
        "carcass_value_cents": 10000,   (or "product_id": 1)
        "quantity": 1                   (optional, default: 1)
    }

    When product_id is given, its carcass value is used, and unit_price_cents
    defaults to the product's base price.

    Returns:
        200: {"quote": {...}}  quote.clamped is true when the discount was reduced
        400: Invalid input or non-positive price
        404: Product not found
    """
    try:
        data = request.get_json(silent=True) or {}

        unit_price = data.get("unit_price_cents")
        carcass_value = data.get("carcass_value_cents")
        product_id = data.get("product_id")

        if product_id not in (None, ""):
            product_id = parse_int(product_id, "product_id", minimum=1)
            product = db.session.get(Product, product_id)
            if not product:
                raise NotFound(f"Product {product_id} not found")
            carcass_value = product.carcass_value_cents
            if unit_price in (None, ""):
                unit_price = product.base_price_cents
        elif carcass_value in (None, ""):
            return jsonify({"error": "carcass_value_cents or product_id required"}), 400

        if unit_price in (None, ""):
            return jsonify({"error": "unit_price_cents required"}), 400

        quote = pricing_service.quote_line(
            unit_price_cents=parse_int(unit_price, "unit_price_cents"),
            discount_percent=data.get("discount_percent", 0),
            carcass_value_cents=parse_cents(carcass_value, "carcass_value_cents"),
            quantity=parse_quantity(data.get("quantity", 1)),
        )

        return jsonify({"quote": quote.to_dict()}), 200

    except (CoreExchangeError, ValidationError) as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to quote line")
        return jsonify({"error": "Internal server error"}), 500
