from flask import Blueprint, Response, jsonify, request, g, current_app

from ..decorators import require_auth, require_permission
from ..services import report_service
from erms.time_utils import today


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

EXPORTS = {
    "leave": report_service.leave_report_csv,
    "overtime": report_service.overtime_report_csv,
    "deployments": report_service.deployment_report_csv,
}


@reports_bp.get("/<name>.csv")
@require_auth
@require_permission("EXPORT_REPORTS")
def export_report(name: str):
    """
    CSV export for the caller's business unit.

    Query: start, end (YYYY-MM-DD, optional); status for deployments.
    """
    export = EXPORTS.get(name)
    if export is None:
        return jsonify({"error": f"Unknown report: {name}"}), 404

    kwargs = {
        "business_unit_id": g.business_unit_id,
        "start": request.args.get("start"),
        "end": request.args.get("end"),
    }
    if name == "deployments":
        kwargs["status"] = request.args.get("status")

    try:
        body = export(**kwargs)
    except report_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
    except Exception:
        current_app.logger.exception("Failed to export report")
        return jsonify({"error": "Internal server error"}), 500

    filename = f"{name}-report-{today().isoformat()}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
