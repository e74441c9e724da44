# Overview: Flask API routes for rental orders; parses input and returns JSON responses.

"""
Rental Order API Routes

DESIGN:
- Thin handlers: parse the body into a typed input, call OrderService,
  render order.to_dict()
- Typed service errors map to their HTTP status via error_response()
- Writes require X-Actor-Id (audit attribution)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import OrderError, ValidationError, error_response
from ..money import money_to_json
from ..schemas import OrderInput, parse_expected_version, parse_optional_charge
from ..services import registry
from ..services.lifecycle_service import can_cancel
from ..services.pricing_service import calculate_outstanding
from ..time_utils import parse_iso_datetime, utcnow


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def order_payload(order) -> dict:
    """Order with items plus the derived flags the counter screens need."""
    data = order.to_dict()
    data["outstanding_amount"] = money_to_json(calculate_outstanding(order))
    data["can_cancel"] = can_cancel(order, utcnow(), current_app.config["CANCEL_WINDOW_MINUTES"])
    return data


def _int_arg(name: str):
    value = request.args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


# =============================================================================
# CREATE / EDIT
# =============================================================================

@orders_bp.post("")
@require_actor
def create_order_route():
    """
    Create an order.

    Request body:
    {
        "branch_id": 1, "staff_id": 2, "customer_id": 3,
        "start_date": "2025-01-10", "end_date": "2025-01-12",
        "start_datetime": "...", "end_datetime": "...",   (optional)
        "items": [{"product_name": "Lehenga", "quantity": 1, "price_per_day": 1500}],
        "security_deposit_amount": 1000,                  (optional)
        "security_deposit_collected": true,               (optional)
        "discount_amount": 0,                             (optional)
        "invoice_number": "GLAORD-20250110-0001"          (optional)
    }

    Returns:
        201: Order created
        400: Invalid input
        404: Customer, branch or staff not found
    """
    try:
        data = OrderInput.from_dict(request.get_json(silent=True))
        order = registry.order_service().create_order(data, g.actor_id)
        return jsonify({"order": order_payload(order)}), 201
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>")
@require_actor
def update_order_route(order_id: int):
    """Replace an order's dates, charges and items (before any return)."""
    try:
        payload = request.get_json(silent=True) or {}
        data = OrderInput.from_dict(payload)
        order = registry.order_service().update_order(
            order_id, data, g.actor_id, expected_version=parse_expected_version(payload)
        )
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STATUS MOVES
# =============================================================================

@orders_bp.post("/<int:order_id>/start")
@require_actor
def start_rental_route(order_id: int):
    try:
        order = registry.order_service().start_rental(order_id, g.actor_id)
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to start rental")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/cancel")
@require_actor
def cancel_order_route(order_id: int):
    """
    Cancel an order.

    Scheduled orders can always be cancelled; active ones only within the
    configured window after they went active.
    """
    try:
        order = registry.order_service().cancel_order(order_id, g.actor_id)
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CHARGES AND ITEMS
# =============================================================================

@orders_bp.patch("/<int:order_id>/charges")
@require_actor
def update_charges_route(order_id: int):
    """
    Request body: {"late_fee": 200, "discount": 50, "expected_version": 3}
    Either amount may be omitted to keep the stored value.
    """
    try:
        payload = request.get_json(silent=True) or {}
        order = registry.order_service().update_charges(
            order_id,
            g.actor_id,
            late_fee=parse_optional_charge(payload.get("late_fee"), "late_fee"),
            discount=parse_optional_charge(payload.get("discount"), "discount"),
            expected_version=parse_expected_version(payload),
        )
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update charges")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/items/<int:item_id>/quantity")
@require_actor
def update_item_quantity_route(item_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        quantity = payload.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            return jsonify({"error": "quantity must be an integer"}), 400
        order = registry.order_service().update_item_quantity(item_id, quantity, g.actor_id)
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update item quantity")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/items/<int:item_id>/damage")
@require_actor
def update_item_damage_route(item_id: int):
    """Request body: {"damage_cost": 500, "damage_description": "torn hem"}"""
    try:
        payload = request.get_json(silent=True) or {}
        order = registry.order_service().update_item_damage(
            item_id,
            g.actor_id,
            damage_cost=parse_optional_charge(payload.get("damage_cost"), "damage_cost"),
            damage_description=payload.get("damage_description"),
        )
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update item damage")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# READS
# =============================================================================

@orders_bp.get("")
def list_orders_route():
    """
    Query params: branch_id, status, start, end (ISO datetimes on created_at),
    search (invoice number), limit, offset
    """
    try:
        orders = registry.order_service().list_orders(
            branch_id=_int_arg("branch_id"),
            status=request.args.get("status") or None,
            start=parse_iso_datetime(request.args.get("start")),
            end=parse_iso_datetime(request.args.get("end")),
            search=request.args.get("search") or None,
            limit=_int_arg("limit"),
            offset=_int_arg("offset"),
        )
        return jsonify({"orders": [o.to_dict(include_items=False) for o in orders]}), 200
    except OrderError as e:
        return error_response(e)
    except ValueError:
        return jsonify({"error": "start and end must be ISO-8601 datetimes"}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        order = registry.order_service().get_order(order_id)
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/timeline")
def order_timeline_route(order_id: int):
    try:
        events = registry.order_service().get_order_timeline(order_id)
        return jsonify({"events": events}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get order timeline")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/snapshot")
def order_snapshot_route(order_id: int):
    """Invoice renderer input: order, items, customer, staff, branch, billing."""
    try:
        snapshot = registry.order_service().build_order_snapshot(order_id)
        return jsonify(snapshot), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build order snapshot")
        return jsonify({"error": "Internal server error"}), 500
