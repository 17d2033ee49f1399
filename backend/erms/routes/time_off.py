# Overview: Flask API routes for leave and overtime requests.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_permission
from ..models import LeaveRequest, OvertimeRequest
from ..services import hr_approval_service, leave_service, overtime_service
from ..services.concurrency import commit_with_retry
from ..validation import ActionError


time_off_bp = Blueprint("time_off", __name__, url_prefix="/api/time-off")

MODELS = {
    "leave": LeaveRequest,
    "overtime": OvertimeRequest,
}


def _error(e: ActionError):
    db.session.rollback()
    return jsonify({"error": str(e)}), e.status_code


@time_off_bp.post("/leave")
@require_auth
@require_permission("FILE_TIME_OFF")
def create_leave_route():
    """
    File a leave request.

    Request body:
    {"leave_type_id": int, "start_date": "YYYY-MM-DD", "end_date": "YYYY-MM-DD", "session"?: "FULL_DAY"|"AM"|"PM", "reason"?}
    """
    data = request.get_json() or {}
    try:
        leave = leave_service.create_leave_request(
            user_id=g.current_user.id,
            business_unit_id=g.business_unit_id,
            leave_type_id=data["leave_type_id"],
            start_date=data["start_date"],
            end_date=data["end_date"],
            session=data.get("session", leave_service.FULL_DAY),
            reason=data.get("reason"),
        )
        commit_with_retry()
        return jsonify({"success": "Leave request submitted", "data": leave.to_dict()}), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create leave request")
        return jsonify({"error": "Internal server error"}), 500


@time_off_bp.get("/leave")
@require_auth
def my_leave_route():
    try:
        rows = leave_service.list_leave_requests(
            g.business_unit_id, user_id=g.current_user.id, status=request.args.get("status"),
        )
        return jsonify({"success": "OK", "data": [row.to_dict() for row in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list leave requests")
        return jsonify({"error": "Internal server error"}), 500


@time_off_bp.get("/leave/balances")
@require_auth
def my_leave_balances_route():
    try:
        rows = leave_service.get_leave_balances(g.current_user.id, request.args.get("year", type=int))
        return jsonify({"success": "OK", "data": [row.to_dict() for row in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list leave balances")
        return jsonify({"error": "Internal server error"}), 500


@time_off_bp.post("/overtime")
@require_auth
@require_permission("FILE_TIME_OFF")
def create_overtime_route():
    """Request body: {"start_time": ISO-8601, "end_time": ISO-8601, "reason"?}"""
    data = request.get_json() or {}
    try:
        overtime = overtime_service.create_overtime_request(
            user_id=g.current_user.id,
            business_unit_id=g.business_unit_id,
            start_time=data["start_time"],
            end_time=data["end_time"],
            reason=data.get("reason"),
        )
        commit_with_retry()
        return jsonify({"success": "Overtime request submitted", "data": overtime.to_dict()}), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create overtime request")
        return jsonify({"error": "Internal server error"}), 500


@time_off_bp.get("/overtime")
@require_auth
def my_overtime_route():
    try:
        rows = overtime_service.list_overtime_requests(
            g.business_unit_id, user_id=g.current_user.id, status=request.args.get("status"),
        )
        return jsonify({"success": "OK", "data": [row.to_dict() for row in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list overtime requests")
        return jsonify({"error": "Internal server error"}), 500


@time_off_bp.post("/<kind>/<int:request_id>/approve")
@require_auth
@require_permission("APPROVE_TIME_OFF")
def approve_time_off_route(kind: str, request_id: int):
    model = MODELS.get(kind)
    if model is None:
        return jsonify({"error": f"Unknown request type: {kind}"}), 404

    data = request.get_json(silent=True) or {}
    try:
        row = hr_approval_service.approve_time_off(
            model, request_id, g.current_user.id, g.business_unit_id,
            comments=data.get("comments"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Request approved", "data": row.to_dict()}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve time off")
        return jsonify({"error": "Internal server error"}), 500


@time_off_bp.post("/<kind>/<int:request_id>/reject")
@require_auth
@require_permission("APPROVE_TIME_OFF")
def reject_time_off_route(kind: str, request_id: int):
    model = MODELS.get(kind)
    if model is None:
        return jsonify({"error": f"Unknown request type: {kind}"}), 404

    data = request.get_json(silent=True) or {}
    try:
        row = hr_approval_service.reject_time_off(
            model, request_id, g.current_user.id, g.business_unit_id,
            comments=data.get("comments"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Request rejected", "data": row.to_dict()}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject time off")
        return jsonify({"error": "Internal server error"}), 500


@time_off_bp.post("/<kind>/<int:request_id>/cancel")
@require_auth
def cancel_time_off_route(kind: str, request_id: int):
    model = MODELS.get(kind)
    if model is None:
        return jsonify({"error": f"Unknown request type: {kind}"}), 404

    data = request.get_json(silent=True) or {}
    try:
        row = hr_approval_service.cancel_time_off(
            model, request_id, g.current_user.id, data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Request cancelled", "data": row.to_dict()}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel time off")
        return jsonify({"error": "Internal server error"}), 500
