# Overview: Service-layer operations for capabilities; resolves role defaults plus per-user overrides.

"""
Capability Checking and Security Event Logging

A user's capabilities are the defaults of their role (erms.permissions.roles)
with active per-user overrides applied on top: GRANT adds a code, DENY
removes it. Special identities (cross-unit approver, store-use reviewer,
budget approver, queue-hidden accounts) are capabilities granted this way
rather than employee codes compared in handlers.

DESIGN PRINCIPLES:
- Fail closed: unknown roles and unknown codes grant nothing
- Log denials only: granted checks are not logged
- Protected codes can only come from the role, never from an override
"""

from __future__ import annotations

from sqlalchemy import select

from ..extensions import db
from ..models import User, SecurityEvent, UserPermissionOverride
from ..permissions import get_role_permissions, validate_permission_code
from ..validation import UnauthorizedError, ValidationError, NotFoundError
from erms.time_utils import utcnow


# Admin-level capabilities cannot be altered by per-user overrides.
PROTECTED_PERMISSIONS = {
    "MANAGE_PERMISSIONS",
}

OVERRIDE_GRANT = "GRANT"
OVERRIDE_DENY = "DENY"


class PermissionDeniedError(UnauthorizedError):
    """Raised when user lacks required capability."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    business_unit_id: int | None = None,
) -> SecurityEvent:
    """
    Log security event to the append-only security trail.

    The event is committed immediately so it survives the rollback of the
    request that triggered it.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - CROSS_UNIT_ACCESS_DENIED
    - PERMISSION_OVERRIDE_CHANGED
    """
    event = SecurityEvent(
        user_id=user_id,
        business_unit_id=business_unit_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all capability codes for a user.

    Returns set of codes (e.g., {"CREATE_MATERIAL_REQUEST", "BUDGET_APPROVE"}).
    Inactive or missing users have none.
    """
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or not user.is_active:
        return set()

    permission_codes = get_role_permissions(user.role)

    overrides = db.session.query(UserPermissionOverride).filter_by(
        user_id=user_id,
        is_active=True,
    ).all()

    for override in overrides:
        # Never allow overrides to change protected permissions
        if override.permission_code in PROTECTED_PERMISSIONS:
            continue
        if override.override_type == OVERRIDE_GRANT:
            permission_codes.add(override.permission_code)
        elif override.override_type == OVERRIDE_DENY:
            permission_codes.discard(override.permission_code)

    return permission_codes


def user_has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    business_unit_id: int | None = None,
) -> None:
    """
    Require user to have a capability, raise PermissionDeniedError if not.

    Denials are written to security_events with the business unit context.

    Usage:
        require_permission(user.id, "SERVE_MATERIAL_REQUESTS", business_unit_id=g.business_unit_id)
    """
    if user_has_permission(user_id, permission_code):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
        business_unit_id=business_unit_id,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}")


def hidden_user_ids_subquery():
    """User ids holding an active GRANT of HIDDEN_FROM_QUEUES, for use in NOT IN filters."""
    return select(UserPermissionOverride.user_id).where(
        UserPermissionOverride.permission_code == "HIDDEN_FROM_QUEUES",
        UserPermissionOverride.override_type == OVERRIDE_GRANT,
        UserPermissionOverride.is_active.is_(True),
    )


def grant_permission_override(
    *,
    user_id: int,
    permission_code: str,
    granted_by_user_id: int | None,
    override_type: str,
    reason: str | None = None,
) -> UserPermissionOverride:
    """
    Grant or deny a capability via per-user override.

    override_type must be "GRANT" or "DENY". An existing override row for
    the same (user, code) is reactivated and rewritten.
    """
    if permission_code in PROTECTED_PERMISSIONS:
        raise ValidationError("Permission overrides cannot modify admin permissions")

    if override_type not in {OVERRIDE_GRANT, OVERRIDE_DENY}:
        raise ValidationError("override_type must be GRANT or DENY")

    if not validate_permission_code(permission_code):
        raise ValidationError(f"Permission '{permission_code}' not found")

    user = db.session.query(User).filter_by(id=user_id).first()
    if not user:
        raise NotFoundError("User not found")

    override = db.session.query(UserPermissionOverride).filter_by(
        user_id=user_id,
        permission_code=permission_code,
    ).first()

    if override:
        override.override_type = override_type
        override.granted_by_user_id = granted_by_user_id
        override.granted_at = utcnow()
        override.reason = reason
        override.is_active = True
        override.revoked_by_user_id = None
        override.revoked_at = None
    else:
        override = UserPermissionOverride(
            user_id=user_id,
            permission_code=permission_code,
            override_type=override_type,
            granted_by_user_id=granted_by_user_id,
            granted_at=utcnow(),
            reason=reason,
            is_active=True,
        )
        db.session.add(override)

    db.session.flush()
    return override


def revoke_permission_override(
    *,
    user_id: int,
    permission_code: str,
    revoked_by_user_id: int | None,
) -> UserPermissionOverride | None:
    """Soft-revoke an active override; returns None when there was nothing to revoke."""
    override = db.session.query(UserPermissionOverride).filter_by(
        user_id=user_id,
        permission_code=permission_code,
        is_active=True,
    ).first()

    if not override:
        return None

    override.is_active = False
    override.revoked_by_user_id = revoked_by_user_id
    override.revoked_at = utcnow()

    db.session.flush()
    return override


def list_user_overrides(user_id: int, include_revoked: bool = False) -> list[UserPermissionOverride]:
    query = db.session.query(UserPermissionOverride).filter_by(user_id=user_id)
    if not include_revoked:
        query = query.filter(UserPermissionOverride.is_active.is_(True))
    return query.order_by(UserPermissionOverride.permission_code).all()
