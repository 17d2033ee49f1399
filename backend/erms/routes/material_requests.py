# Overview: Flask API routes for material requests; parses input and returns JSON responses.

# backend/erms/routes/material_requests.py
"""
Material request API routes.

Every mutating endpoint accepts an optional "expected_version"; a stale
value returns 409 instead of silently overwriting another user's change.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_permission
from ..services import material_request_service
from ..services.concurrency import commit_with_retry
from ..validation import ActionError


material_requests_bp = Blueprint("material_requests", __name__, url_prefix="/api/material-requests")


def _payload(mr) -> dict:
    data = mr.to_dict()
    data["items"] = [item.to_dict() for item in mr.items]
    return data


def _error(e: ActionError):
    db.session.rollback()
    return jsonify({"error": str(e)}), e.status_code


@material_requests_bp.post("")
@require_auth
@require_permission("CREATE_MATERIAL_REQUEST")
def create_material_request_route():
    """
    Create a DRAFT material request.

    Request body:
    {
        "series": "PO" | "JO" | "OTHER",
        "items": [{"description", "uom", "quantity", "unit_price_cents"?, "item_code"?, "remarks"?}],
        "type": "ITEM" | "SERVICE" (optional),
        "purpose", "date_required", "is_store_use", "department_id",
        "rec_approver_id", "final_approver_id", "freight_cents", "discount_cents" (optional)
    }
    """
    data = request.get_json() or {}

    try:
        mr = material_request_service.create_material_request(
            business_unit_id=g.business_unit_id,
            requester_id=g.current_user.id,
            series=data["series"],
            items=data["items"],
            request_type=data.get("type", "ITEM"),
            purpose=data.get("purpose"),
            date_required=data.get("date_required"),
            is_store_use=bool(data.get("is_store_use", False)),
            department_id=data.get("department_id"),
            rec_approver_id=data.get("rec_approver_id"),
            final_approver_id=data.get("final_approver_id"),
            freight_cents=data.get("freight_cents", 0),
            discount_cents=data.get("discount_cents", 0),
        )
        commit_with_retry()
        return jsonify({"success": f"Material request {mr.document_number} created", "data": _payload(mr)}), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.get("")
@require_auth
def list_material_requests_route():
    """
    List material requests in the caller's business unit.

    Query: mine=true, status, search, page, per_page (max 100)
    """
    try:
        mine = request.args.get("mine", "false").lower() == "true"
        rows, total = material_request_service.list_material_requests(
            g.business_unit_id,
            requester_id=g.current_user.id if mine else None,
            status=request.args.get("status"),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify({
            "success": "OK",
            "data": {"items": [mr.to_dict() for mr in rows], "total": total},
        }), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list material requests")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.get("/<int:request_id>")
@require_auth
def get_material_request_route(request_id: int):
    try:
        mr = material_request_service.get_material_request(request_id, g.current_user.id, g.business_unit_id)
        return jsonify({"success": "OK", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.patch("/<int:request_id>")
@require_auth
@require_permission("CREATE_MATERIAL_REQUEST")
def update_material_request_route(request_id: int):
    """Edit a DRAFT request (requester only). Supplying "items" replaces all lines."""
    data = request.get_json() or {}
    expected_version = data.pop("expected_version", None)

    try:
        mr = material_request_service.update_material_request(
            request_id, g.current_user.id, g.business_unit_id, data, expected_version,
        )
        commit_with_retry()
        return jsonify({"success": "Material request updated", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.delete("/<int:request_id>")
@require_auth
@require_permission("CREATE_MATERIAL_REQUEST")
def delete_material_request_route(request_id: int):
    expected_version = request.args.get("expected_version", type=int)
    try:
        material_request_service.delete_material_request(
            request_id, g.current_user.id, g.business_unit_id, expected_version,
        )
        commit_with_retry()
        return jsonify({"success": "Material request deleted"}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/submit")
@require_auth
@require_permission("CREATE_MATERIAL_REQUEST")
def submit_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.submit_for_approval(
            request_id, g.current_user.id, g.business_unit_id, data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Material request submitted for approval", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to submit material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/cancel")
@require_auth
@require_permission("CREATE_MATERIAL_REQUEST")
def cancel_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.cancel_material_request(
            request_id, g.current_user.id, g.business_unit_id,
            reason=data.get("reason"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Material request cancelled", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/review")
@require_auth
@require_permission("STORE_USE_REVIEW")
def review_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.mark_as_reviewed(
            request_id, g.current_user.id, g.business_unit_id,
            remarks=data.get("remarks"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Material request reviewed", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to review material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/budget")
@require_auth
@require_permission("BUDGET_APPROVE")
def budget_route(request_id: int):
    """
    Record the budget check and release the request to recommending approval.

    Request body: {"is_within_budget": bool, "remarks"?: str, "expected_version"?: int}
    """
    data = request.get_json() or {}
    try:
        mr = material_request_service.approve_budget(
            request_id, g.current_user.id, g.business_unit_id,
            is_within_budget=bool(data["is_within_budget"]),
            remarks=data.get("remarks"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Budget approval recorded", "data": _payload(mr)}), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record budget approval")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/approve")
@require_auth
def approve_route(request_id: int):
    """Approve the current stage. Approver identity is checked by the service."""
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.approve(
            request_id, g.current_user.id, g.business_unit_id,
            comments=data.get("comments"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Material request approved", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/reject")
@require_auth
def reject_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.reject(
            request_id, g.current_user.id, g.business_unit_id,
            comments=data.get("comments"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Material request disapproved", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/serve")
@require_auth
@require_permission("SERVE_MATERIAL_REQUESTS")
def serve_route(request_id: int):
    """
    Record served quantities.

    Request body:
    {
        "items"?: [{"item_id": int, "quantity_served": int}],  // omitted = serve everything remaining
        "supplier_name"?, "purchase_order_number"?, "notes"?, "expected_version"?
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.mark_as_served(
            request_id, g.current_user.id, g.business_unit_id,
            served_items=data.get("items"),
            supplier_name=data.get("supplier_name"),
            purchase_order_number=data.get("purchase_order_number"),
            notes=data.get("notes"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Material request served", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to serve material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/post")
@require_auth
@require_permission("POST_MATERIAL_REQUESTS")
def post_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.mark_as_posted(
            request_id, g.current_user.id, g.business_unit_id,
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Material request posted", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to post material request")
        return jsonify({"error": "Internal server error"}), 500


@material_requests_bp.post("/<int:request_id>/acknowledge")
@require_auth
def acknowledge_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        mr = material_request_service.save_acknowledgement(
            request_id, g.current_user.id, g.business_unit_id,
            signature_data=data.get("signature_data"),
            expected_version=data.get("expected_version"),
        )
        commit_with_retry()
        return jsonify({"success": "Receipt acknowledged", "data": _payload(mr)}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to acknowledge material request")
        return jsonify({"error": "Internal server error"}), 500
