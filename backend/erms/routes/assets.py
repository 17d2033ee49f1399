# Overview: Flask API routes for assets, deployments and depreciation; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_permission
from ..services import asset_service, depreciation_service
from ..services.concurrency import commit_with_retry
from ..validation import ActionError, PartialStateError


assets_bp = Blueprint("assets", __name__, url_prefix="/api/assets")


def _error(e: ActionError):
    db.session.rollback()
    body = {"error": str(e)}
    if isinstance(e, PartialStateError):
        body["invalid_ids"] = e.invalid_ids
    return jsonify(body), e.status_code


@assets_bp.get("")
@require_auth
@require_permission("VIEW_ASSETS")
def list_assets_route():
    try:
        rows, total = asset_service.list_assets(
            g.business_unit_id,
            status=request.args.get("status"),
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify({"success": "OK", "data": {"items": [a.to_dict() for a in rows], "total": total}}), 200
    except Exception:
        current_app.logger.exception("Failed to list assets")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("/categories")
@require_auth
@require_permission("MANAGE_ASSETS")
def create_category_route():
    data = request.get_json() or {}
    try:
        category = asset_service.create_category(g.business_unit_id, data["name"], data.get("code"))
        commit_with_retry()
        return jsonify({"success": "Category created", "data": category.to_dict()}), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create asset category")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("")
@require_auth
@require_permission("MANAGE_ASSETS")
def create_asset_route():
    """
    Register an asset.

    Request body:
    {
        "item_code": str, "description": str,
        "category_id"?, "serial_number"?, "location"?, "purchase_date"?,
        "purchase_price_cents"?, "salvage_value_cents"?, "useful_life_months"?,
        "depreciation_method"?, "depreciation_rate_bps"?, "depreciation_start_date"?
    }
    """
    data = request.get_json() or {}
    try:
        asset = asset_service.create_asset(
            business_unit_id=g.business_unit_id,
            item_code=data["item_code"],
            description=data["description"],
            actor_id=g.current_user.id,
            category_id=data.get("category_id"),
            serial_number=data.get("serial_number"),
            location=data.get("location"),
            purchase_date=data.get("purchase_date"),
            purchase_price_cents=data.get("purchase_price_cents", 0),
            salvage_value_cents=data.get("salvage_value_cents", 0),
            useful_life_months=data.get("useful_life_months"),
            depreciation_method=data.get("depreciation_method"),
            depreciation_rate_bps=data.get("depreciation_rate_bps"),
            depreciation_start_date=data.get("depreciation_start_date"),
        )
        commit_with_retry()
        return jsonify({"success": f"Asset {asset.item_code} created", "data": asset.to_dict()}), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create asset")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.get("/<int:asset_id>")
@require_auth
@require_permission("VIEW_ASSETS")
def get_asset_route(asset_id: int):
    try:
        asset = asset_service.get_asset(asset_id, g.business_unit_id)
        data = asset.to_dict()
        data["history"] = [h.to_dict() for h in asset.history]
        data["depreciations"] = [
            d.to_dict() for d in depreciation_service.list_depreciation_entries(asset.id, g.business_unit_id)
        ]
        return jsonify({"success": "OK", "data": data}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        current_app.logger.exception("Failed to load asset")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("/deploy")
@require_auth
@require_permission("DEPLOY_ASSETS")
def deploy_assets_route():
    """
    Deploy a batch of assets to one employee.

    Request body:
    {
        "asset_ids": [int], "employee_id": int,
        "deployed_date"?, "expected_return_date"?, "deployment_condition"?, "notes"?
    }
    """
    data = request.get_json() or {}
    try:
        deployments = asset_service.deploy_assets(
            data["asset_ids"],
            data["employee_id"],
            g.business_unit_id,
            actor_id=g.current_user.id,
            deployed_date=data.get("deployed_date"),
            expected_return_date=data.get("expected_return_date"),
            deployment_condition=data.get("deployment_condition"),
            notes=data.get("notes"),
        )
        commit_with_retry()
        return jsonify({
            "success": f"{len(deployments)} asset(s) deployed",
            "data": [d.to_dict() for d in deployments],
        }), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deploy assets")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.get("/deployments")
@require_auth
@require_permission("VIEW_ASSETS")
def list_deployments_route():
    try:
        rows = asset_service.list_deployments(
            g.business_unit_id,
            status=request.args.get("status"),
            employee_id=request.args.get("employee_id", type=int),
        )
        return jsonify({"success": "OK", "data": [d.to_dict() for d in rows]}), 200
    except Exception:
        current_app.logger.exception("Failed to list deployments")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("/deployments/approve")
@require_auth
@require_permission("APPROVE_DEPLOYMENTS")
def approve_deployments_route():
    data = request.get_json() or {}
    try:
        deployments = asset_service.approve_deployments(data["deployment_ids"], g.current_user.id, g.business_unit_id)
        commit_with_retry()
        return jsonify({
            "success": f"{len(deployments)} deployment(s) approved",
            "data": [d.to_dict() for d in deployments],
        }), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve deployments")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("/return")
@require_auth
@require_permission("DEPLOY_ASSETS")
def return_assets_route():
    """
    Return deployed assets. All or nothing: one ineligible id fails the batch.

    Request body: {"asset_ids": [int], "returned_date"?, "notes"?, "return_condition"?}
    """
    data = request.get_json() or {}
    try:
        assets = asset_service.return_assets(
            data["asset_ids"],
            data.get("returned_date"),
            data.get("notes"),
            g.business_unit_id,
            actor_id=g.current_user.id,
            return_condition=data.get("return_condition"),
        )
        commit_with_retry()
        return jsonify({
            "success": f"{len(assets)} asset(s) returned",
            "data": [a.to_dict() for a in assets],
        }), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to return assets")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("/<int:asset_id>/damage")
@require_auth
@require_permission("MANAGE_ASSETS")
def report_damage_route(asset_id: int):
    data = request.get_json(silent=True) or {}
    try:
        asset = asset_service.report_damage(asset_id, g.business_unit_id, g.current_user.id, data.get("notes"))
        commit_with_retry()
        return jsonify({"success": "Damage reported", "data": asset.to_dict()}), 200
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to report asset damage")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("/dispose")
@require_auth
@require_permission("DISPOSE_ASSETS")
def dispose_assets_route():
    data = request.get_json() or {}
    try:
        assets = asset_service.dispose_assets(data["asset_ids"], g.business_unit_id, g.current_user.id, data.get("reason"))
        commit_with_retry()
        return jsonify({
            "success": f"{len(assets)} asset(s) disposed",
            "data": [a.to_dict() for a in assets],
        }), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to dispose assets")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.get("/depreciation/due")
@require_auth
@require_permission("RUN_DEPRECIATION")
def depreciation_due_route():
    try:
        assets = depreciation_service.get_assets_due_for_depreciation(g.business_unit_id, request.args.get("as_of"))
        return jsonify({"success": "OK", "data": [a.to_dict() for a in assets]}), 200
    except ValueError:
        return jsonify({"error": "as_of must be YYYY-MM-DD"}), 400
    except Exception:
        current_app.logger.exception("Failed to list assets due for depreciation")
        return jsonify({"error": "Internal server error"}), 500


@assets_bp.post("/depreciation")
@require_auth
@require_permission("RUN_DEPRECIATION")
def calculate_depreciation_route():
    """
    Depreciate assets for one business date.

    Request body: {"asset_ids": [int], "calculation_date": "YYYY-MM-DD"}
    """
    data = request.get_json() or {}
    try:
        entries = depreciation_service.calculate_depreciation(
            data["asset_ids"],
            data["calculation_date"],
            g.business_unit_id,
            g.current_user.id,
        )
        commit_with_retry()
        return jsonify({
            "success": f"Depreciation calculated for {len(entries)} asset(s)",
            "data": [entry.to_dict() for entry in entries],
        }), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError:
        db.session.rollback()
        return jsonify({"error": "calculation_date must be YYYY-MM-DD"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to calculate depreciation")
        return jsonify({"error": "Internal server error"}), 500
