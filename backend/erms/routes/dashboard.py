from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_auth
from ..services import counter_service


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("/counts")
@require_auth
def dashboard_counts_route():
    """Badge counts for the caller; badges outside their capabilities are 0."""
    try:
        counts = counter_service.get_dashboard_counts(g.current_user, g.business_unit_id)
        return jsonify({"success": "OK", "data": counts}), 200
    except Exception:
        current_app.logger.exception("Failed to compute dashboard counts")
        return jsonify({"error": "Internal server error"}), 500
