# Overview: Pending-approval and coordinator queue listings.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..models import LeaveRequest, OvertimeRequest, MaterialRequest
from ..services import permission_service
from ..services.visibility_service import (
    QUEUE_CAPABILITIES,
    material_request_queue_query,
    pending_material_requests_query,
    pending_time_off_query,
)


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")

TIME_OFF_MODELS = {
    "leave": LeaveRequest,
    "overtime": OvertimeRequest,
}


def _page_args() -> tuple[int, int]:
    page = max(1, request.args.get("page", 1, type=int))
    per_page = max(1, min(request.args.get("per_page", 20, type=int), 100))
    return page, per_page


def _paginate(query, order_by):
    page, per_page = _page_args()
    total = query.count()
    rows = query.order_by(*order_by).offset((page - 1) * per_page).limit(per_page).all()
    return rows, total


@approvals_bp.get("/material-requests")
@require_auth
def pending_material_requests_route():
    """Material requests waiting on the caller as recommending or final approver."""
    try:
        query = pending_material_requests_query(g.current_user, g.business_unit_id)
        rows, total = _paginate(query, (MaterialRequest.created_at, MaterialRequest.id))
        return jsonify({
            "success": "OK",
            "data": {"items": [mr.to_dict() for mr in rows], "total": total},
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list pending material requests")
        return jsonify({"error": "Internal server error"}), 500


@approvals_bp.get("/queues/<queue>")
@require_auth
def material_request_queue_route(queue: str):
    """
    Coordinator queues: review, budget, serving, posting, acknowledgement.

    Each queue except acknowledgement needs its capability.
    """
    if queue not in QUEUE_CAPABILITIES:
        return jsonify({"error": f"Unknown queue: {queue}"}), 404

    capability = QUEUE_CAPABILITIES[queue]
    if capability and not permission_service.user_has_permission(g.current_user.id, capability):
        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=request.path,
            action=capability,
            reason=f"Missing permission: {capability}",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            business_unit_id=g.business_unit_id,
        )
        return jsonify({"error": "Permission denied", "required_permission": capability}), 403

    try:
        query = material_request_queue_query(queue, g.current_user, g.business_unit_id)
        rows, total = _paginate(query, (MaterialRequest.created_at, MaterialRequest.id))
        return jsonify({
            "success": "OK",
            "data": {"items": [mr.to_dict() for mr in rows], "total": total},
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list material request queue")
        return jsonify({"error": "Internal server error"}), 500


@approvals_bp.get("/<kind>")
@require_auth
def pending_time_off_route(kind: str):
    """Pending leave or overtime for the caller's role (ADMIN, HR or MANAGER)."""
    model = TIME_OFF_MODELS.get(kind)
    if model is None:
        return jsonify({"error": f"Unknown approval type: {kind}"}), 404

    try:
        query = pending_time_off_query(model, g.current_user, g.business_unit_id)
        rows, total = _paginate(query, (model.created_at, model.id))
        return jsonify({
            "success": "OK",
            "data": {"items": [row.to_dict() for row in rows], "total": total},
        }), 200
    except Exception:
        current_app.logger.exception("Failed to list pending time off")
        return jsonify({"error": "Internal server error"}), 500
