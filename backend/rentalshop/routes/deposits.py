# Overview: Flask API routes for deposits and outstanding collections; parses input and returns JSON responses.

"""
Deposit / Outstanding API Routes

Request body for the money endpoints:
{
    "amount": 500,
    "method": "cash",            (optional: cash, upi, card, bank_transfer)
    "reference": "UPI-12345",    (optional)
    "notes": "...",              (optional)
    "expected_version": 4        (optional)
}
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import OrderError, error_response
from ..schemas import PaymentInput, parse_expected_version
from ..services import registry
from .orders import order_payload


deposits_bp = Blueprint("deposits", __name__, url_prefix="/api/orders")


@deposits_bp.post("/<int:order_id>/deposit/refund")
@require_actor
def refund_deposit_route(order_id: int):
    """
    Returns:
        200: Updated order
        400: amount <= 0 or above the available deposit balance
    """
    try:
        payload = request.get_json(silent=True) or {}
        payment = PaymentInput.from_dict(payload)
        order = registry.deposit_ledger().refund_security_deposit(
            order_id,
            payment.amount,
            g.actor_id,
            method=payment.method,
            reference=payment.reference,
            notes=payment.notes,
            expected_version=parse_expected_version(payload),
        )
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund deposit")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/<int:order_id>/deposit/collect")
@require_actor
def collect_deposit_route(order_id: int):
    """amount may be omitted to collect the rest of the agreed deposit."""
    try:
        payload = request.get_json(silent=True) or {}
        payment = PaymentInput.from_dict(payload, amount_required=False)
        order = registry.deposit_ledger().record_deposit_collection(
            order_id,
            g.actor_id,
            amount=payment.amount,
            method=payment.method,
            reference=payment.reference,
            notes=payment.notes,
            expected_version=parse_expected_version(payload),
        )
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record deposit collection")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.post("/<int:order_id>/outstanding/collect")
@require_actor
def collect_outstanding_route(order_id: int):
    """
    Returns:
        200: Updated order
        400: amount <= 0 or more than 0.01 above the outstanding amount
    """
    try:
        payload = request.get_json(silent=True) or {}
        payment = PaymentInput.from_dict(payload)
        order = registry.deposit_ledger().collect_outstanding_amount(
            order_id,
            payment.amount,
            g.actor_id,
            method=payment.method,
            reference=payment.reference,
            notes=payment.notes,
            expected_version=parse_expected_version(payload),
        )
        return jsonify({"order": order_payload(order)}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to collect outstanding amount")
        return jsonify({"error": "Internal server error"}), 500


@deposits_bp.get("/<int:order_id>/transactions")
def list_transactions_route(order_id: int):
    try:
        transactions = registry.deposit_ledger().get_transactions(order_id)
        return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list transactions")
        return jsonify({"error": "Internal server error"}), 500
