# Overview: Flask API routes for inventory verification campaigns.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_permission
from ..services import verification_service
from ..services.concurrency import commit_with_retry
from ..validation import ActionError


verifications_bp = Blueprint("verifications", __name__, url_prefix="/api/verifications")


def _error(e: ActionError):
    db.session.rollback()
    return jsonify({"error": str(e)}), e.status_code


@verifications_bp.post("")
@require_auth
@require_permission("MANAGE_VERIFICATIONS")
def create_verification_route():
    """
    Create a PLANNED campaign over the in-scope assets.

    Request body:
    {
        "name": str,
        "category_ids"?: [int], "locations"?: [str],
        "description"?, "start_date"?, "end_date"?
    }
    """
    data = request.get_json() or {}
    try:
        verification = verification_service.create_verification(
            name=data["name"],
            business_unit_id=g.business_unit_id,
            actor_id=g.current_user.id,
            category_ids=data.get("category_ids"),
            locations=data.get("locations"),
            description=data.get("description"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
        )
        commit_with_retry()
        return jsonify({"success": "Verification created", "data": verification.to_dict()}), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create verification")
        return jsonify({"error": "Internal server error"}), 500


@verifications_bp.get("")
@require_auth
@require_permission("VIEW_ASSETS")
def list_verifications_route():
    try:
        rows = verification_service.list_verifications(g.business_unit_id, request.args.get("status"))
        return jsonify({"success": "OK", "data": [v.to_dict() for v in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list verifications")
        return jsonify({"error": "Internal server error"}), 500


@verifications_bp.get("/<int:verification_id>")
@require_auth
@require_permission("VIEW_ASSETS")
def verification_summary_route(verification_id: int):
    """Campaign with stored counters, counters derived from items, and a consistency flag."""
    try:
        summary = verification_service.get_verification_summary(verification_id, g.business_unit_id)
        return jsonify({"success": "OK", "data": summary}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load verification")
        return jsonify({"error": "Internal server error"}), 500


@verifications_bp.get("/<int:verification_id>/items")
@require_auth
@require_permission("VIEW_ASSETS")
def verification_items_route(verification_id: int):
    try:
        items = verification_service.list_items(verification_id, g.business_unit_id, request.args.get("status"))
        return jsonify({"success": "OK", "data": [item.to_dict() for item in items]}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to list verification items")
        return jsonify({"error": "Internal server error"}), 500


def _lifecycle(action, verification_id: int, message: str):
    try:
        verification = action(verification_id, g.business_unit_id, g.current_user.id)
        commit_with_retry()
        return jsonify({"success": message, "data": verification.to_dict()}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to change verification status")
        return jsonify({"error": "Internal server error"}), 500


@verifications_bp.post("/<int:verification_id>/start")
@require_auth
@require_permission("MANAGE_VERIFICATIONS")
def start_verification_route(verification_id: int):
    return _lifecycle(verification_service.start_verification, verification_id, "Verification started")


@verifications_bp.post("/<int:verification_id>/complete")
@require_auth
@require_permission("MANAGE_VERIFICATIONS")
def complete_verification_route(verification_id: int):
    return _lifecycle(verification_service.complete_verification, verification_id, "Verification completed")


@verifications_bp.post("/<int:verification_id>/cancel")
@require_auth
@require_permission("MANAGE_VERIFICATIONS")
def cancel_verification_route(verification_id: int):
    return _lifecycle(verification_service.cancel_verification, verification_id, "Verification cancelled")


@verifications_bp.post("/<int:verification_id>/recount")
@require_auth
@require_permission("MANAGE_VERIFICATIONS")
def recount_verification_route(verification_id: int):
    try:
        verification = verification_service.recount_verification(verification_id, g.business_unit_id)
        commit_with_retry()
        return jsonify({"success": "Counters recomputed", "data": verification.to_dict()}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to recount verification")
        return jsonify({"error": "Internal server error"}), 500


@verifications_bp.post("/<int:verification_id>/scan")
@require_auth
@require_permission("SCAN_ASSETS")
def scan_asset_route(verification_id: int):
    """
    Record a scan.

    Request body:
    {"asset_id": int, "scanned_code": str, "actual_location"?, "actual_assignee"?, "notes"?}
    """
    data = request.get_json() or {}
    try:
        item = verification_service.scan_asset(
            verification_id,
            data["asset_id"],
            data["scanned_code"],
            g.business_unit_id,
            actor_id=g.current_user.id,
            actual_location=data.get("actual_location"),
            actual_assignee=data.get("actual_assignee"),
            notes=data.get("notes"),
        )
        commit_with_retry()
        message = (
            "Asset verified successfully"
            if item.status == verification_service.ITEM_VERIFIED
            else "Asset scanned with discrepancy noted"
        )
        return jsonify({"success": message, "data": item.to_dict()}), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to scan asset")
        return jsonify({"error": "Internal server error"}), 500


@verifications_bp.post("/<int:verification_id>/not-found")
@require_auth
@require_permission("SCAN_ASSETS")
def mark_not_found_route(verification_id: int):
    data = request.get_json() or {}
    try:
        item = verification_service.mark_asset_not_found(
            verification_id, data["asset_id"], g.business_unit_id,
            actor_id=g.current_user.id, notes=data.get("notes"),
        )
        commit_with_retry()
        return jsonify({"success": "Asset marked as not found", "data": item.to_dict()}), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to mark asset not found")
        return jsonify({"error": "Internal server error"}), 500


@verifications_bp.post("/<int:verification_id>/discrepancy")
@require_auth
@require_permission("SCAN_ASSETS")
def report_discrepancy_route(verification_id: int):
    data = request.get_json() or {}
    try:
        item = verification_service.report_discrepancy(
            verification_id, data["asset_id"], g.business_unit_id,
            discrepancy_type=data["discrepancy_type"],
            actor_id=g.current_user.id, notes=data.get("notes"),
        )
        commit_with_retry()
        return jsonify({"success": "Discrepancy reported successfully", "data": item.to_dict()}), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to report discrepancy")
        return jsonify({"error": "Internal server error"}), 500
