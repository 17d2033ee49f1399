# Overview: Pytest coverage for leave and overtime requests and their two-stage approval.

"""
Time-off tests.

Leave and overtime share one approval flow: the requester's approver (or an
ADMIN of the same business unit) acts first, then HR. Leave balances are
checked when filing and deducted when HR approves.
"""

from datetime import date

import pytest

from erms.extensions import db
from erms.models import AuditEvent, LeaveBalance, LeaveRequest, OvertimeRequest
from erms.services import hr_approval_service, leave_service, overtime_service
from erms.time_utils import today
from erms.validation import (
    ConflictError,
    InvalidStateError,
    UnauthorizedError,
    ValidationError,
)


YEAR = today().year


@pytest.fixture
def vacation(staff, head_office):
    leave_type = leave_service.create_leave_type(head_office.id, "Vacation Leave", "VL", 15)
    leave_service.set_leave_balance(staff["requester"].id, leave_type.id, YEAR, 5)
    db.session.commit()
    return leave_type


def _file_leave(staff, leave_type, start=f"{YEAR}-03-02", end=f"{YEAR}-03-03", session="FULL_DAY"):
    requester = staff["requester"]
    leave = leave_service.create_leave_request(
        user_id=requester.id,
        business_unit_id=requester.business_unit_id,
        leave_type_id=leave_type.id,
        start_date=start,
        end_date=end,
        session=session,
        reason="Family trip",
    )
    db.session.commit()
    return leave


def _balance(staff, leave_type):
    return db.session.query(LeaveBalance).filter_by(
        user_id=staff["requester"].id, leave_type_id=leave_type.id, year=YEAR,
    ).one()


class TestLeaveDays:
    def test_full_days_inclusive(self):
        assert leave_service.compute_leave_days(date(2026, 3, 2), date(2026, 3, 4)) == 3.0

    def test_half_day_session(self):
        assert leave_service.compute_leave_days(date(2026, 3, 2), date(2026, 3, 2), "AM") == 0.5

    def test_end_before_start(self):
        with pytest.raises(ValidationError):
            leave_service.compute_leave_days(date(2026, 3, 4), date(2026, 3, 2))

    def test_unknown_session(self):
        with pytest.raises(ValidationError):
            leave_service.compute_leave_days(date(2026, 3, 2), date(2026, 3, 2), "NIGHT")


class TestFiling:
    def test_leave_starts_with_manager(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        assert leave.status == "PENDING_MANAGER"
        assert leave.days == 2.0

    def test_insufficient_balance(self, staff, vacation):
        with pytest.raises(ValidationError):
            _file_leave(staff, vacation, end=f"{YEAR}-03-10")

    def test_no_balance_for_year(self, staff, vacation):
        with pytest.raises(ValidationError):
            _file_leave(staff, vacation, start=f"{YEAR + 1}-01-05", end=f"{YEAR + 1}-01-05")

    def test_bad_date(self, staff, vacation):
        with pytest.raises(ValidationError):
            _file_leave(staff, vacation, start="03/02/2026")

    def test_overtime_hours(self, staff):
        requester = staff["requester"]
        overtime = overtime_service.create_overtime_request(
            user_id=requester.id,
            business_unit_id=requester.business_unit_id,
            start_time=f"{YEAR}-03-02T17:00:00Z",
            end_time=f"{YEAR}-03-02T20:30:00Z",
        )
        assert overtime.hours == 3.5
        assert overtime.status == "PENDING_MANAGER"

    def test_overtime_must_end_after_start(self, staff):
        requester = staff["requester"]
        with pytest.raises(ValidationError):
            overtime_service.create_overtime_request(
                user_id=requester.id,
                business_unit_id=requester.business_unit_id,
                start_time=f"{YEAR}-03-02T20:00:00",
                end_time=f"{YEAR}-03-02T17:00:00",
            )


class TestTwoStageApproval:
    def test_manager_then_hr_deducts_balance(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        bu = leave.business_unit_id

        leave = hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["manager"].id, bu, comments="ok")
        db.session.commit()
        assert leave.status == "PENDING_HR"
        assert leave.manager_action_by_id == staff["manager"].id
        assert _balance(staff, vacation).used_days == 0

        leave = hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["hr"].id, bu)
        db.session.commit()
        assert leave.status == "APPROVED"
        assert leave.hr_action_by_id == staff["hr"].id
        assert _balance(staff, vacation).used_days == 2.0
        assert _balance(staff, vacation).remaining_days == 3.0

    def test_hr_cannot_act_at_manager_stage(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        with pytest.raises(UnauthorizedError):
            hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["hr"].id, leave.business_unit_id)

    def test_manager_cannot_act_at_hr_stage(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["manager"].id, leave.business_unit_id)
        db.session.commit()
        with pytest.raises(UnauthorizedError):
            hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["manager"].id, leave.business_unit_id)

    def test_admin_can_act_at_both_stages(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        admin = staff["admin"]
        hr_approval_service.approve_time_off(LeaveRequest, leave.id, admin.id, admin.business_unit_id)
        leave = hr_approval_service.approve_time_off(LeaveRequest, leave.id, admin.id, admin.business_unit_id)
        assert leave.status == "APPROVED"

    def test_other_unit_hr_denied(self, staff, vacation, branch_staff):
        leave = _file_leave(staff, vacation)
        hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["manager"].id, leave.business_unit_id)
        db.session.commit()
        other_hr = branch_staff["hr"]
        with pytest.raises(UnauthorizedError):
            hr_approval_service.approve_time_off(LeaveRequest, leave.id, other_hr.id, other_hr.business_unit_id)

    def test_hr_approval_rechecks_balance(self, staff, vacation):
        first = _file_leave(staff, vacation, start=f"{YEAR}-03-02", end=f"{YEAR}-03-04")
        second = _file_leave(staff, vacation, start=f"{YEAR}-04-06", end=f"{YEAR}-04-08")
        bu = first.business_unit_id
        for leave in (first, second):
            hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["manager"].id, bu)
        hr_approval_service.approve_time_off(LeaveRequest, first.id, staff["hr"].id, bu)
        db.session.commit()

        with pytest.raises(ValidationError):
            hr_approval_service.approve_time_off(LeaveRequest, second.id, staff["hr"].id, bu)
        db.session.rollback()
        assert db.session.get(LeaveRequest, second.id).status == "PENDING_HR"

    def test_overtime_follows_same_flow(self, staff):
        requester = staff["requester"]
        overtime = overtime_service.create_overtime_request(
            user_id=requester.id,
            business_unit_id=requester.business_unit_id,
            start_time=f"{YEAR}-03-02T17:00:00",
            end_time=f"{YEAR}-03-02T19:00:00",
        )
        db.session.commit()
        bu = overtime.business_unit_id
        hr_approval_service.approve_time_off(OvertimeRequest, overtime.id, staff["manager"].id, bu)
        overtime = hr_approval_service.approve_time_off(OvertimeRequest, overtime.id, staff["hr"].id, bu)
        db.session.commit()
        assert overtime.status == "APPROVED"

        events = [
            e.event_type for e in db.session.query(AuditEvent).filter_by(entity_type="overtime_request").order_by(AuditEvent.id)
        ]
        assert events == ["overtime_request.created", "overtime_request.manager_approved", "overtime_request.approved"]


class TestRejectAndCancel:
    def test_reject_requires_comments(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        with pytest.raises(ValidationError):
            hr_approval_service.reject_time_off(LeaveRequest, leave.id, staff["manager"].id, leave.business_unit_id, "")

    def test_manager_rejection_is_final(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        leave = hr_approval_service.reject_time_off(
            LeaveRequest, leave.id, staff["manager"].id, leave.business_unit_id, "Peak season",
        )
        db.session.commit()
        assert leave.status == "REJECTED"
        assert leave.manager_comments == "Peak season"

        with pytest.raises(InvalidStateError):
            hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["hr"].id, leave.business_unit_id)

    def test_requester_cancels_pending(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        leave = leave_service.cancel_leave_request(leave.id, staff["requester"].id)
        assert leave.status == "CANCELLED"

    def test_others_cannot_cancel(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        with pytest.raises(UnauthorizedError):
            leave_service.cancel_leave_request(leave.id, staff["manager"].id)

    def test_requester_cancels_overtime(self, staff):
        requester = staff["requester"]
        overtime = overtime_service.create_overtime_request(
            user_id=requester.id,
            business_unit_id=requester.business_unit_id,
            start_time=f"{YEAR}-03-02T17:00:00Z",
            end_time=f"{YEAR}-03-02T19:00:00Z",
        )
        db.session.commit()
        overtime = overtime_service.cancel_overtime_request(overtime.id, requester.id)
        assert overtime.status == "CANCELLED"

    def test_cannot_cancel_approved(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        bu = leave.business_unit_id
        hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["manager"].id, bu)
        hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["hr"].id, bu)
        db.session.commit()
        with pytest.raises(InvalidStateError):
            leave_service.cancel_leave_request(leave.id, staff["requester"].id)

    def test_stale_version(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        with pytest.raises(ConflictError):
            hr_approval_service.approve_time_off(
                LeaveRequest, leave.id, staff["manager"].id, leave.business_unit_id,
                expected_version=leave.version_id + 1,
            )


class TestBalances:
    def test_allocation_cannot_drop_below_used(self, staff, vacation):
        leave = _file_leave(staff, vacation)
        bu = leave.business_unit_id
        hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["manager"].id, bu)
        hr_approval_service.approve_time_off(LeaveRequest, leave.id, staff["hr"].id, bu)
        db.session.commit()

        with pytest.raises(ConflictError):
            leave_service.set_leave_balance(staff["requester"].id, vacation.id, YEAR, 1)

    def test_unknown_model_rejected(self, staff):
        with pytest.raises(ValueError):
            hr_approval_service.approve_time_off(LeaveBalance, 1, staff["hr"].id, staff["hr"].business_unit_id)
