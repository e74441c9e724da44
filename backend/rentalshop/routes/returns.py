# Overview: Flask API routes for rental returns; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import OrderError, error_response
from ..schemas import parse_expected_version, parse_item_returns, parse_optional_charge
from ..services import registry
from .orders import order_payload


returns_bp = Blueprint("returns", __name__, url_prefix="/api/orders")


@returns_bp.post("/<int:order_id>/returns")
@require_actor
def process_return_route(order_id: int):
    """
    Record returns for an order's items.

    Request body:
    {
        "items": [
            {"item_id": 10, "return_status": "returned", "returned_quantity": 2,
             "damage_cost": 500, "description": "stain on sleeve"},
            {"item_id": 11, "return_status": "missing", "missing_note": "not brought back"}
        ],
        "late_fee": 200,          (optional, replaces stored)
        "discount": 100,          (optional, replaces stored)
        "expected_version": 4     (optional)
    }

    Returns:
        200: Updated order (status resolved from all items)
        400: Invalid decision, quantity or amount
        404: Order or item not found
        409: Order changed since expected_version
    """
    try:
        payload = request.get_json(silent=True) or {}
        order = registry.return_processor().process_return(
            order_id,
            parse_item_returns(payload.get("items")),
            g.actor_id,
            late_fee=parse_optional_charge(payload.get("late_fee"), "late_fee"),
            discount=parse_optional_charge(payload.get("discount"), "discount"),
            expected_version=parse_expected_version(payload),
        )
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500
