# backend/erms/services/leave_service.py
from __future__ import annotations

from ..extensions import db
from ..models import LeaveBalance, LeaveRequest, LeaveType, User
from ..signals import publish_approval_views_changed
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    optional_text,
    require_text,
)
from erms.time_utils import parse_iso_date
from .audit_service import append_audit_event
from .concurrency import run_with_retry
from .hr_approval_service import cancel_time_off
from .visibility_service import PENDING_MANAGER

FULL_DAY = "FULL_DAY"
HALF_DAY_AM = "AM"
HALF_DAY_PM = "PM"
LEAVE_SESSIONS = (FULL_DAY, HALF_DAY_AM, HALF_DAY_PM)


def _parse_date(value, field: str):
    try:
        parsed = parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{field} must be YYYY-MM-DD") from None
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed


def compute_leave_days(start_date, end_date, session: str = FULL_DAY) -> float:
    """Inclusive calendar days, halved for AM/PM sessions."""
    if session not in LEAVE_SESSIONS:
        raise ValidationError(f"session must be one of {', '.join(LEAVE_SESSIONS)}")
    if end_date < start_date:
        raise ValidationError("end_date must be on or after start_date")
    days = (end_date - start_date).days + 1
    return float(days) if session == FULL_DAY else days * 0.5


def create_leave_type(business_unit_id: int, name: str, code: str | None = None, default_allocation_days: float = 0) -> LeaveType:
    leave_type = LeaveType(
        business_unit_id=business_unit_id,
        name=require_text(name, "name"),
        code=optional_text(code),
        default_allocation_days=float(default_allocation_days or 0),
        is_active=True,
    )
    db.session.add(leave_type)
    db.session.flush()
    return leave_type


def set_leave_balance(user_id: int, leave_type_id: int, year: int, allocated_days: float) -> LeaveBalance:
    """Create or update the allocation for (user, type, year). used_days is preserved."""
    if allocated_days is None or float(allocated_days) < 0:
        raise ValidationError("allocated_days must be >= 0")

    balance = db.session.query(LeaveBalance).filter_by(
        user_id=user_id, leave_type_id=leave_type_id, year=year,
    ).first()
    if balance:
        if float(allocated_days) < balance.used_days:
            raise ConflictError("allocated_days cannot be less than days already used")
        balance.allocated_days = float(allocated_days)
    else:
        balance = LeaveBalance(
            user_id=user_id,
            leave_type_id=leave_type_id,
            year=year,
            allocated_days=float(allocated_days),
            used_days=0,
        )
        db.session.add(balance)
    db.session.flush()
    return balance


def get_leave_balances(user_id: int, year: int | None = None) -> list[LeaveBalance]:
    query = db.session.query(LeaveBalance).filter_by(user_id=user_id)
    if year is not None:
        query = query.filter(LeaveBalance.year == year)
    return query.order_by(LeaveBalance.year.desc(), LeaveBalance.leave_type_id).all()


def create_leave_request(
    *,
    user_id: int,
    business_unit_id: int,
    leave_type_id: int,
    start_date,
    end_date,
    session: str = FULL_DAY,
    reason: str | None = None,
) -> LeaveRequest:
    """
    File a leave request for manager approval.

    The balance is checked here and deducted only on HR approval, so
    several pending requests can together exceed the remaining days; the
    HR approval re-checks.
    """
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    days = compute_leave_days(start, end, session)

    def _op():
        user = db.session.query(User).filter_by(id=user_id, business_unit_id=business_unit_id).first()
        if not user:
            raise NotFoundError("Employee not found")

        leave_type = db.session.query(LeaveType).filter_by(
            id=leave_type_id, business_unit_id=business_unit_id, is_active=True,
        ).first()
        if not leave_type:
            raise NotFoundError("Leave type not found")

        balance = db.session.query(LeaveBalance).filter_by(
            user_id=user_id, leave_type_id=leave_type_id, year=start.year,
        ).first()
        if not balance:
            raise ValidationError(f"No {leave_type.name} balance for {start.year}")
        if balance.remaining_days < days:
            raise ValidationError(
                f"Insufficient leave balance: {balance.remaining_days} day(s) remaining, {days} requested"
            )

        request = LeaveRequest(
            business_unit_id=business_unit_id,
            user_id=user_id,
            leave_type_id=leave_type_id,
            start_date=start,
            end_date=end,
            session=session,
            days=days,
            reason=optional_text(reason),
            status=PENDING_MANAGER,
        )
        db.session.add(request)
        db.session.flush()

        append_audit_event(
            business_unit_id=business_unit_id,
            event_type="leave_request.created",
            event_category="time_off",
            entity_type="leave_request",
            entity_id=request.id,
            actor_user_id=user_id,
            payload={"days": days, "leave_type_id": leave_type_id},
        )
        publish_approval_views_changed("leave_service", {business_unit_id}, reason="leave_request.created")
        return request

    return run_with_retry(_op)


def cancel_leave_request(request_id: int, actor_id: int, expected_version: int | None = None) -> LeaveRequest:
    return cancel_time_off(LeaveRequest, request_id, actor_id, expected_version)


def list_leave_requests(business_unit_id: int, *, user_id: int | None = None, status: str | None = None) -> list[LeaveRequest]:
    query = db.session.query(LeaveRequest).filter_by(business_unit_id=business_unit_id)
    if user_id is not None:
        query = query.filter(LeaveRequest.user_id == user_id)
    if status:
        query = query.filter(LeaveRequest.status == status)
    return query.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()
