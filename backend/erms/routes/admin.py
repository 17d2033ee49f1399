# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/erms/routes/admin.py
"""
Admin routes for employees, capability overrides, leave setup and the audit log.

All endpoints require authentication and appropriate capabilities. Users
and overrides are always scoped to the caller's business unit.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import User
from ..services import auth_service, audit_service, leave_service, permission_service, session_service
from ..services.concurrency import commit_with_retry
from ..decorators import require_auth, require_permission
from ..permissions import (
    PERMISSION_DEFINITIONS,
    get_permission_definition,
    get_permissions_by_category,
    get_role_permissions,
)
from ..validation import ActionError

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


def _get_user_in_current_unit(user_id: int) -> User | None:
    return db.session.query(User).filter_by(id=user_id, business_unit_id=g.business_unit_id).first()


def _error(e: ActionError):
    db.session.rollback()
    return jsonify({"error": str(e)}), e.status_code


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users():
    """List employees of the caller's business unit."""
    try:
        users = db.session.query(User).filter_by(business_unit_id=g.business_unit_id).order_by(User.employee_id).all()
        return jsonify({"success": "OK", "data": [u.to_dict() for u in users]}), 200
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Create an employee in the caller's business unit.

    Request body:
    - employee_id, name, email, password: str (required)
    - role: str (optional, default USER)
    - department_id, approver_id: int (optional)
    - is_rdh_mrs: bool (optional)
    """
    data = request.get_json() or {}
    try:
        user = auth_service.create_user(
            employee_id=data["employee_id"],
            name=data["name"],
            email=data["email"],
            password=data["password"],
            business_unit_id=g.business_unit_id,
            role=data.get("role", "USER"),
            department_id=data.get("department_id"),
            approver_id=data.get("approver_id"),
            is_rdh_mrs=bool(data.get("is_rdh_mrs", False)),
        )
        commit_with_retry()

        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="USER_CREATED",
            success=True,
            resource="/api/admin/users",
            action=f"Created user: {user.employee_id}",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            business_unit_id=g.business_unit_id,
        )
        return jsonify({"success": "User created successfully", "data": user.to_dict()}), 201

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user(user_id: int):
    """Deactivate an employee and revoke every session they hold."""
    try:
        user = _get_user_in_current_unit(user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404
        if user.id == g.current_user.id:
            return jsonify({"error": "You cannot deactivate your own account"}), 400

        user.is_active = False
        commit_with_retry()
        revoked = session_service.revoke_all_user_sessions(user.id, reason="User deactivated")
        return jsonify({
            "success": "User deactivated",
            "data": {"user": user.to_dict(), "sessions_revoked": revoked},
        }), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate user")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CAPABILITIES
# =============================================================================

@admin_bp.get("/permissions")
@require_auth
@require_permission("MANAGE_PERMISSIONS")
def list_permissions():
    """Capability catalogue; ?category=ASSETS narrows it to one category."""
    category = request.args.get("category")
    definitions = get_permissions_by_category(category) if category else PERMISSION_DEFINITIONS
    return jsonify({
        "success": "OK",
        "data": [get_permission_definition(perm[0]) for perm in definitions],
    }), 200


@admin_bp.get("/users/<int:user_id>/permissions")
@require_auth
@require_permission("MANAGE_PERMISSIONS")
def get_user_permissions(user_id: int):
    """Effective capabilities with the role defaults and overrides behind them."""
    try:
        user = _get_user_in_current_unit(user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404

        overrides = permission_service.list_user_overrides(user.id, include_revoked=True)
        return jsonify({
            "success": "OK",
            "data": {
                "role": user.role,
                "role_permissions": sorted(get_role_permissions(user.role)),
                "effective_permissions": sorted(permission_service.get_user_permissions(user.id)),
                "overrides": [o.to_dict() for o in overrides],
            },
        }), 200
    except Exception:
        current_app.logger.exception("Failed to load user permissions")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.post("/users/<int:user_id>/permissions")
@require_auth
@require_permission("MANAGE_PERMISSIONS")
def set_user_permission_override(user_id: int):
    """
    Grant or deny one capability for one employee.

    Request body: {"permission_code": str, "override_type": "GRANT"|"DENY", "reason"?: str}
    """
    data = request.get_json() or {}
    try:
        user = _get_user_in_current_unit(user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404

        override = permission_service.grant_permission_override(
            user_id=user.id,
            permission_code=data["permission_code"],
            granted_by_user_id=g.current_user.id,
            override_type=data["override_type"],
            reason=data.get("reason"),
        )
        commit_with_retry()

        permission_service.log_security_event(
            user_id=g.current_user.id,
            event_type="PERMISSION_OVERRIDE_CHANGED",
            success=True,
            resource=f"/api/admin/users/{user.id}/permissions",
            action=f"{override.override_type}:{override.permission_code}",
            reason=override.reason,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
            business_unit_id=g.business_unit_id,
        )
        return jsonify({"success": "Permission override saved", "data": override.to_dict()}), 200

    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save permission override")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.delete("/users/<int:user_id>/permissions/<permission_code>")
@require_auth
@require_permission("MANAGE_PERMISSIONS")
def revoke_user_permission_override(user_id: int, permission_code: str):
    try:
        user = _get_user_in_current_unit(user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404

        override = permission_service.revoke_permission_override(
            user_id=user.id,
            permission_code=permission_code,
            revoked_by_user_id=g.current_user.id,
        )
        if not override:
            return jsonify({"error": "No active override"}), 404
        commit_with_retry()
        return jsonify({"success": "Permission override revoked", "data": override.to_dict()}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to revoke permission override")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LEAVE SETUP
# =============================================================================

@admin_bp.post("/leave-types")
@require_auth
@require_permission("MANAGE_USERS")
def create_leave_type():
    data = request.get_json() or {}
    try:
        leave_type = leave_service.create_leave_type(
            g.business_unit_id,
            data["name"],
            data.get("code"),
            data.get("default_allocation_days", 0),
        )
        commit_with_retry()
        return jsonify({"success": "Leave type created", "data": leave_type.to_dict()}), 201
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create leave type")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/users/<int:user_id>/leave-balances")
@require_auth
@require_permission("MANAGE_USERS")
def set_leave_balance(user_id: int):
    """Request body: {"leave_type_id": int, "year": int, "allocated_days": number}"""
    data = request.get_json() or {}
    try:
        user = _get_user_in_current_unit(user_id)
        if not user:
            return jsonify({"error": "User not found"}), 404

        balance = leave_service.set_leave_balance(
            user.id, data["leave_type_id"], int(data["year"]), data["allocated_days"],
        )
        commit_with_retry()
        return jsonify({"success": "Leave balance saved", "data": balance.to_dict()}), 200
    except KeyError as e:
        db.session.rollback()
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ActionError as e:
        return _error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save leave balance")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# AUDIT LOG
# =============================================================================

@admin_bp.get("/audit-events")
@require_auth
@require_permission("VIEW_AUDIT_LOG")
def list_audit_events():
    try:
        events = audit_service.list_audit_events(
            business_unit_id=g.business_unit_id,
            entity_type=request.args.get("entity_type"),
            entity_id=request.args.get("entity_id", type=int),
            event_category=request.args.get("category"),
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"success": "OK", "data": [e.to_dict() for e in events]}), 200
    except Exception:
        current_app.logger.exception("Failed to list audit events")
        return jsonify({"error": "Internal server error"}), 500
