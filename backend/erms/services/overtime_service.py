# backend/erms/services/overtime_service.py
from __future__ import annotations

from ..extensions import db
from ..models import OvertimeRequest, User
from ..signals import publish_approval_views_changed
from ..validation import NotFoundError, ValidationError, optional_text
from erms.time_utils import parse_iso_datetime
from .audit_service import append_audit_event
from .concurrency import run_with_retry
from .hr_approval_service import cancel_time_off
from .visibility_service import PENDING_MANAGER


def _parse_datetime(value, field: str):
    try:
        parsed = parse_iso_datetime(value) if isinstance(value, str) else value
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime") from None
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed


def compute_overtime_hours(start_time, end_time) -> float:
    hours = (end_time - start_time).total_seconds() / 3600
    if hours <= 0:
        raise ValidationError("end_time must be after start_time")
    return round(hours, 2)


def create_overtime_request(
    *,
    user_id: int,
    business_unit_id: int,
    start_time,
    end_time,
    reason: str | None = None,
) -> OvertimeRequest:
    start = _parse_datetime(start_time, "start_time")
    end = _parse_datetime(end_time, "end_time")
    hours = compute_overtime_hours(start, end)

    def _op():
        user = db.session.query(User).filter_by(id=user_id, business_unit_id=business_unit_id).first()
        if not user:
            raise NotFoundError("Employee not found")

        request = OvertimeRequest(
            business_unit_id=business_unit_id,
            user_id=user_id,
            start_time=start,
            end_time=end,
            hours=hours,
            reason=optional_text(reason),
            status=PENDING_MANAGER,
        )
        db.session.add(request)
        db.session.flush()

        append_audit_event(
            business_unit_id=business_unit_id,
            event_type="overtime_request.created",
            event_category="time_off",
            entity_type="overtime_request",
            entity_id=request.id,
            actor_user_id=user_id,
            payload={"hours": hours},
        )
        publish_approval_views_changed("overtime_service", {business_unit_id}, reason="overtime_request.created")
        return request

    return run_with_retry(_op)


def cancel_overtime_request(request_id: int, actor_id: int, expected_version: int | None = None) -> OvertimeRequest:
    return cancel_time_off(OvertimeRequest, request_id, actor_id, expected_version)


def list_overtime_requests(business_unit_id: int, *, user_id: int | None = None, status: str | None = None) -> list[OvertimeRequest]:
    query = db.session.query(OvertimeRequest).filter_by(business_unit_id=business_unit_id)
    if user_id is not None:
        query = query.filter(OvertimeRequest.user_id == user_id)
    if status:
        query = query.filter(OvertimeRequest.status == status)
    return query.order_by(OvertimeRequest.created_at.desc(), OvertimeRequest.id.desc()).all()
