# backend/erms/services/hr_approval_service.py
"""
Two-stage approval shared by leave and overtime requests.

PENDING_MANAGER -> PENDING_HR -> APPROVED, with REJECTED reachable from
either pending stage and CANCELLED reachable by the requester.

Stage actors:
- PENDING_MANAGER: the requester's approver, or an ADMIN of the request's business unit
- PENDING_HR: an HR or ADMIN user of the request's business unit
"""
from __future__ import annotations

import logging

from ..extensions import db
from ..models import LeaveBalance, LeaveRequest, OvertimeRequest, User
from ..models.auth import ROLE_ADMIN, ROLE_HR
from ..signals import publish_approval_views_changed
from ..validation import (
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
    check_expected_version,
    optional_text,
)
from erms.time_utils import utcnow
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .visibility_service import PENDING_MANAGER, PENDING_HR

logger = logging.getLogger(__name__)

APPROVED = "APPROVED"
REJECTED = "REJECTED"
CANCELLED = "CANCELLED"
PENDING_STATUSES = (PENDING_MANAGER, PENDING_HR)

_ENTITY_TYPES = {
    LeaveRequest: "leave_request",
    OvertimeRequest: "overtime_request",
}


def _entity_type(model) -> str:
    try:
        return _ENTITY_TYPES[model]
    except KeyError:
        raise ValueError(f"Unsupported time-off model: {model}") from None


def _load(model, request_id: int):
    request = lock_for_update(db.session.query(model).filter_by(id=request_id)).first()
    if not request:
        raise NotFoundError("Request not found")
    return request


def _require_stage_actor(request, actor: User, business_unit_id: int) -> None:
    same_unit = request.business_unit_id == business_unit_id == actor.business_unit_id

    if request.status == PENDING_MANAGER:
        if request.user.approver_id == actor.id:
            return
        if actor.role == ROLE_ADMIN and same_unit:
            return
    elif request.status == PENDING_HR:
        if actor.role in (ROLE_HR, ROLE_ADMIN) and same_unit:
            return
    else:
        raise InvalidStateError(f"Request is already {request.status}")

    raise UnauthorizedError("You are not authorized to act on this request")


def _load_actor(actor_id: int) -> User:
    actor = db.session.query(User).filter_by(id=actor_id, is_active=True).first()
    if not actor:
        raise UnauthorizedError("Unauthorized")
    return actor


def _publish(model, request, business_unit_id: int, event: str, actor_id: int) -> None:
    entity_type = _entity_type(model)
    append_audit_event(
        business_unit_id=request.business_unit_id,
        event_type=f"{entity_type}.{event}",
        event_category="time_off",
        entity_type=entity_type,
        entity_id=request.id,
        actor_user_id=actor_id,
        payload={"status": request.status},
    )
    publish_approval_views_changed(
        "hr_approval_service",
        {business_unit_id, request.business_unit_id},
        reason=f"{entity_type}.{event}",
    )


def approve_time_off(
    model,
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    comments: str | None = None,
    expected_version: int | None = None,
):
    """
    Advance a leave/overtime request one stage.

    An approved leave request deducts its days from the matching
    LeaveBalance in the same transaction.
    """
    _entity_type(model)
    comments = optional_text(comments)

    def _op():
        request = _load(model, request_id)
        check_expected_version(request, expected_version, "Request")
        actor = _load_actor(actor_id)
        _require_stage_actor(request, actor, business_unit_id)

        now = utcnow()
        if request.status == PENDING_MANAGER:
            request.status = PENDING_HR
            request.manager_action_by_id = actor.id
            request.manager_action_at = now
            request.manager_comments = comments
            event = "manager_approved"
        else:
            request.status = APPROVED
            request.hr_action_by_id = actor.id
            request.hr_action_at = now
            request.hr_comments = comments
            event = "approved"
            if model is LeaveRequest:
                _deduct_leave_balance(request)

        db.session.flush()
        _publish(model, request, business_unit_id, event, actor.id)
        return request

    return run_with_retry(_op)


def _deduct_leave_balance(request: LeaveRequest) -> None:
    balance = lock_for_update(
        db.session.query(LeaveBalance).filter_by(
            user_id=request.user_id,
            leave_type_id=request.leave_type_id,
            year=request.start_date.year,
        )
    ).first()
    if not balance:
        raise ValidationError("No leave balance for this leave type and year")
    if balance.remaining_days < request.days:
        raise ValidationError(
            f"Insufficient leave balance: {balance.remaining_days} day(s) remaining, {request.days} requested"
        )
    balance.used_days = balance.used_days + request.days
    logger.info(
        "Leave balance %s deducted %.1f day(s) for request %s",
        balance.id, request.days, request.id,
    )


def reject_time_off(
    model,
    request_id: int,
    actor_id: int,
    business_unit_id: int,
    comments: str | None,
    expected_version: int | None = None,
):
    """Reject at the current stage; comments are mandatory."""
    _entity_type(model)
    comments = optional_text(comments)
    if not comments:
        raise ValidationError("Comments is required")

    def _op():
        request = _load(model, request_id)
        check_expected_version(request, expected_version, "Request")
        actor = _load_actor(actor_id)
        _require_stage_actor(request, actor, business_unit_id)

        now = utcnow()
        if request.status == PENDING_MANAGER:
            request.manager_action_by_id = actor.id
            request.manager_action_at = now
            request.manager_comments = comments
            request.hr_action_by_id = None
            request.hr_action_at = None
            request.hr_comments = None
        else:
            request.hr_action_by_id = actor.id
            request.hr_action_at = now
            request.hr_comments = comments
        request.status = REJECTED

        db.session.flush()
        _publish(model, request, business_unit_id, "rejected", actor.id)
        return request

    return run_with_retry(_op)


def cancel_time_off(model, request_id: int, actor_id: int, expected_version: int | None = None):
    """Requester-only withdrawal while the request is still pending."""
    _entity_type(model)

    def _op():
        request = _load(model, request_id)
        check_expected_version(request, expected_version, "Request")
        if request.user_id != actor_id:
            raise UnauthorizedError("Only the requester can cancel this request")
        if request.status not in PENDING_STATUSES:
            raise InvalidStateError(f"Cannot cancel a request in status {request.status}")

        request.status = CANCELLED
        db.session.flush()
        _publish(model, request, request.business_unit_id, "cancelled", actor_id)
        return request

    return run_with_retry(_op)
