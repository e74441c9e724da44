# Overview: Flask API routes for reports; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import OrderError, ValidationError, error_response
from ..services import registry
from ..services.reporting_service import dashboard_stats
from ..time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/dashboard")
def dashboard_route():
    """
    Query params:
        branch_id   (optional)
        start, end  (optional, YYYY-MM-DD; both or neither)
    """
    try:
        branch_id = request.args.get("branch_id")
        try:
            branch_id = int(branch_id) if branch_id else None
            start = parse_iso_date(request.args.get("start"))
            end = parse_iso_date(request.args.get("end"))
        except ValueError:
            raise ValidationError("branch_id must be an integer and start/end YYYY-MM-DD dates")
        if (start is None) != (end is None):
            raise ValidationError("start and end must be given together")

        stats = dashboard_stats(registry.repository(), branch_id=branch_id, start=start, end=end)
        return jsonify(stats), 200
    except OrderError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build dashboard stats")
        return jsonify({"error": "Internal server error"}), 500
