# Overview: Flask API routes for branches and staff profiles, including GST/invoice settings.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_actor
from ..errors import OrderError, ValidationError, error_response
from ..schemas import BranchInput, InvoiceSettingsInput, StaffInput
from ..services import registry


directory_bp = Blueprint("directory", __name__, url_prefix="/api")


# =============================================================================
# BRANCHES
# =============================================================================

@directory_bp.get("/branches")
def list_branches_route():
    try:
        branches = registry.directory_service().list_branches()
        return jsonify({"branches": [b.to_dict() for b in branches]}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list branches")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.post("/branches")
@require_actor
def create_branch_route():
    """Request body: {"name": "Main Branch", "address": "...", "phone": "..."}"""
    try:
        data = BranchInput.from_dict(request.get_json(silent=True))
        branch = registry.directory_service().create_branch(data)
        return jsonify({"branch": branch.to_dict()}), 201
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create branch")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.get("/branches/<int:branch_id>")
def get_branch_route(branch_id: int):
    try:
        branch = registry.directory_service().get_branch(branch_id)
        return jsonify({"branch": branch.to_dict()}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get branch")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.put("/branches/<int:branch_id>")
@require_actor
def update_branch_route(branch_id: int):
    try:
        data = BranchInput.from_dict(request.get_json(silent=True))
        branch = registry.directory_service().update_branch(branch_id, data)
        return jsonify({"branch": branch.to_dict()}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update branch")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.delete("/branches/<int:branch_id>")
@require_actor
def delete_branch_route(branch_id: int):
    try:
        registry.directory_service().delete_branch(branch_id)
        return jsonify({"deleted": branch_id}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete branch")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# STAFF
# =============================================================================

@directory_bp.get("/staff")
def list_staff_route():
    """Query params: branch_id"""
    try:
        raw = request.args.get("branch_id")
        try:
            branch_id = int(raw) if raw not in (None, "") else None
        except ValueError:
            raise ValidationError("branch_id must be an integer")
        staff = registry.directory_service().list_staff(branch_id=branch_id)
        return jsonify({"staff": [p.to_dict() for p in staff]}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list staff")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.post("/staff")
@require_actor
def create_staff_route():
    """
    Request body:
    {
        "username": "counter", "full_name": "Counter Staff", "phone": "...",
        "role": "staff",          (optional: super_admin, branch_admin, staff)
        "branch_id": 1            (optional)
    }
    """
    try:
        data = StaffInput.from_dict(request.get_json(silent=True))
        profile = registry.directory_service().create_staff(data)
        return jsonify({"staff": profile.to_dict()}), 201
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create staff profile")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.get("/staff/<int:profile_id>")
def get_staff_route(profile_id: int):
    try:
        profile = registry.directory_service().get_staff(profile_id)
        return jsonify({"staff": profile.to_dict()}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get staff profile")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.put("/staff/<int:profile_id>")
@require_actor
def update_staff_route(profile_id: int):
    try:
        data = StaffInput.from_dict(request.get_json(silent=True))
        profile = registry.directory_service().update_staff(profile_id, data)
        return jsonify({"staff": profile.to_dict()}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update staff profile")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.delete("/staff/<int:profile_id>")
@require_actor
def delete_staff_route(profile_id: int):
    try:
        registry.directory_service().delete_staff(profile_id)
        return jsonify({"deleted": profile_id}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete staff profile")
        return jsonify({"error": "Internal server error"}), 500


@directory_bp.put("/staff/<int:profile_id>/invoice-settings")
@require_actor
def update_invoice_settings_route(profile_id: int):
    """
    Request body:
    {
        "gst_enabled": true, "gst_rate": 5, "gst_included": false,
        "gst_number": "...", "upi_id": "...",
        "company_name": "...", "company_address": "...",       (optional)
        "show_invoice_terms": true, "show_invoice_qr": true     (optional)
    }
    """
    try:
        data = InvoiceSettingsInput.from_dict(request.get_json(silent=True))
        profile = registry.directory_service().update_invoice_settings(profile_id, data)
        return jsonify({"staff": profile.to_dict()}), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice settings")
        return jsonify({"error": "Internal server error"}), 500
