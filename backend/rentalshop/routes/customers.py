# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor
from ..errors import OrderError, ValidationError, error_response
from ..schemas import CustomerInput
from ..services import registry


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _bool_arg(name: str) -> bool:
    return (request.args.get(name) or "").strip().lower() in ("1", "true", "yes")


def _positive_int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    if parsed < 1:
        raise ValidationError(f"{name} must be at least 1")
    return parsed


@customers_bp.post("")
@require_actor
def create_customer_route():
    """
    Request body:
    {
        "name": "Asha", "phone": "9876543210",
        "email": "...", "address": "...",                      (optional)
        "id_proof_type": "aadhar", "id_proof_number": "...",   (optional)
        "id_proof_front_url": "...", "id_proof_back_url": "..." (optional)
    }
    """
    try:
        data = CustomerInput.from_dict(request.get_json(silent=True))
        customer = registry.customer_service().create_customer(data)
        return jsonify({"customer": customer.to_dict()}), 201
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_actor
def update_customer_route(customer_id: int):
    try:
        data = CustomerInput.from_dict(request.get_json(silent=True))
        customer = registry.customer_service().update_customer(customer_id, data)
        return jsonify({"customer": customer.to_dict()}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("")
def list_customers_route():
    """Query params: search (name or phone), dues_only, page, page_size"""
    try:
        result = registry.customer_service().list_customers(
            search=request.args.get("search") or None,
            dues_only=_bool_arg("dues_only"),
            page=_positive_int_arg("page", 1),
            page_size=_positive_int_arg("page_size", 20),
        )
        return jsonify(result), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/stats")
def customer_stats_route():
    try:
        stats = registry.customer_service().customer_stats(search=request.args.get("search") or None)
        return jsonify(stats), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get customer stats")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer, due = registry.customer_service().get_customer(customer_id)
        return jsonify({"customer": customer.to_dict(due_amount=due)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/orders")
def customer_orders_route(customer_id: int):
    try:
        orders = registry.order_service().get_customer_orders(customer_id)
        return jsonify({"orders": [o.to_dict(include_items=False) for o in orders]}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list customer orders")
        return jsonify({"error": "Internal server error"}), 500
