from __future__ import annotations

from ..extensions import db
from erms.time_utils import to_utc_z, to_iso_date


class LeaveType(db.Model):
    __tablename__ = "leave_types"
    __table_args__ = (
        db.UniqueConstraint("business_unit_id", "name", name="uq_leave_types_bu_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    code = db.Column(db.String(16), nullable=True)
    default_allocation_days = db.Column(db.Float, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "name": self.name,
            "code": self.code,
            "default_allocation_days": self.default_allocation_days,
            "is_active": self.is_active,
        }


class LeaveBalance(db.Model):
    """Per-employee, per-type, per-year allocation. Days may be halves."""
    __tablename__ = "leave_balances"
    __table_args__ = (
        db.UniqueConstraint("user_id", "leave_type_id", "year", name="uq_leave_balances_user_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = db.Column(db.Integer, db.ForeignKey("leave_types.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    allocated_days = db.Column(db.Float, nullable=False, default=0)
    used_days = db.Column(db.Float, nullable=False, default=0)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    leave_type = db.relationship("LeaveType")

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def remaining_days(self) -> float:
        return self.allocated_days - self.used_days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "leave_type_id": self.leave_type_id,
            "year": self.year,
            "allocated_days": self.allocated_days,
            "used_days": self.used_days,
            "remaining_days": self.remaining_days,
        }


class _TimeOffApprovalMixin:
    """
    Two-stage approval columns shared by leave and overtime.

    LIFECYCLE: PENDING_MANAGER -> PENDING_HR -> APPROVED,
    REJECTED from either pending stage, CANCELLED by the requester.
    """
    status = db.Column(db.String(16), nullable=False, default="PENDING_MANAGER", index=True)

    manager_action_at = db.Column(db.DateTime(timezone=True), nullable=True)
    manager_comments = db.Column(db.Text, nullable=True)
    hr_action_at = db.Column(db.DateTime(timezone=True), nullable=True)
    hr_comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def _approval_dict(self) -> dict:
        return {
            "status": self.status,
            "manager_action_by_id": self.manager_action_by_id,
            "manager_action_at": to_utc_z(self.manager_action_at),
            "manager_comments": self.manager_comments,
            "hr_action_by_id": self.hr_action_by_id,
            "hr_action_at": to_utc_z(self.hr_action_at),
            "hr_comments": self.hr_comments,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class LeaveRequest(_TimeOffApprovalMixin, db.Model):
    __tablename__ = "leave_requests"
    __table_args__ = (
        db.Index("ix_leave_requests_bu_status", "business_unit_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    leave_type_id = db.Column(db.Integer, db.ForeignKey("leave_types.id"), nullable=False)

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    session = db.Column(db.String(8), nullable=False, default="FULL_DAY")  # FULL_DAY, AM, PM
    days = db.Column(db.Float, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    manager_action_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    hr_action_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    leave_type = db.relationship("LeaveType")
    manager_action_by = db.relationship("User", foreign_keys=[manager_action_by_id])
    hr_action_by = db.relationship("User", foreign_keys=[hr_action_by_id])

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "user_id": self.user_id,
            "leave_type_id": self.leave_type_id,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "session": self.session,
            "days": self.days,
            "reason": self.reason,
            **self._approval_dict(),
        }


class OvertimeRequest(_TimeOffApprovalMixin, db.Model):
    __tablename__ = "overtime_requests"
    __table_args__ = (
        db.Index("ix_overtime_requests_bu_status", "business_unit_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    start_time = db.Column(db.DateTime(timezone=True), nullable=False)
    end_time = db.Column(db.DateTime(timezone=True), nullable=False)
    hours = db.Column(db.Float, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    manager_action_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    hr_action_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id])
    manager_action_by = db.relationship("User", foreign_keys=[manager_action_by_id])
    hr_action_by = db.relationship("User", foreign_keys=[hr_action_by_id])

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "user_id": self.user_id,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time),
            "hours": self.hours,
            "reason": self.reason,
            **self._approval_dict(),
        }
