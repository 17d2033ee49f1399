# Overview: Business unit scoping helpers shared by services and routes.

"""
Tenant Validation and Scoping Helpers

Every request is scoped to the business unit captured in the session.
Crossing into another business unit is allowed only for ADMINs and holders
of the CROSS_UNIT_APPROVE capability; any other attempt is denied and
logged as a CROSS_UNIT_ACCESS_DENIED security event.
"""

from __future__ import annotations

from flask import has_request_context, request

from ..extensions import db
from ..models import BusinessUnit, User
from ..models.auth import ROLE_ADMIN
from ..validation import UnauthorizedError, NotFoundError
from .permission_service import log_security_event, user_has_permission


class TenantAccessError(UnauthorizedError):
    """Raised when cross-business-unit access is attempted."""
    pass


def can_cross_business_units(user: User) -> bool:
    return user.role == ROLE_ADMIN or user_has_permission(user.id, "CROSS_UNIT_APPROVE")


def _log_cross_unit_attempt(user_id: int | None, business_unit_id: int | None, resource: str, reason: str) -> None:
    log_security_event(
        user_id=user_id,
        event_type="CROSS_UNIT_ACCESS_DENIED",
        success=False,
        resource=resource,
        action=request.method if has_request_context() else None,
        reason=reason,
        ip_address=request.remote_addr if has_request_context() else None,
        user_agent=request.headers.get("User-Agent") if has_request_context() else None,
        business_unit_id=business_unit_id,
    )


def require_business_unit_access(user: User, target_business_unit_id: int, resource: str = "business_unit") -> None:
    """
    Allow access to another business unit's records only for the same
    business unit, ADMINs, or CROSS_UNIT_APPROVE holders.

    Raises TenantAccessError otherwise.
    """
    if user.business_unit_id == target_business_unit_id:
        return
    if can_cross_business_units(user):
        return

    _log_cross_unit_attempt(
        user.id,
        user.business_unit_id,
        resource,
        f"User from business unit {user.business_unit_id} attempted to access business unit {target_business_unit_id}",
    )
    raise TenantAccessError("Access denied to this business unit")


def require_business_unit(business_unit_id: int) -> BusinessUnit:
    bu = db.session.query(BusinessUnit).filter_by(id=business_unit_id).first()
    if not bu:
        raise NotFoundError("Business unit not found")
    return bu


def require_user_in_business_unit(user_id: int, business_unit_id: int, label: str = "Employee") -> User:
    """Validate that a client-supplied user id belongs to the business unit."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if not user or user.business_unit_id != business_unit_id:
        raise NotFoundError(f"{label} not found in this business unit")
    return user