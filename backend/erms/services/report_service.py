# Overview: CSV exports for approved leave, approved overtime and asset deployments.

from __future__ import annotations

import csv
import io
from datetime import date, datetime, time

from ..extensions import db
from ..models import AssetDeployment, LeaveRequest, OvertimeRequest, User
from erms.time_utils import parse_iso_date, to_iso_date, to_utc_z
from .hr_approval_service import APPROVED


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


LEAVE_COLUMNS = (
    "Employee ID", "Employee Name", "Department", "Leave Type", "Start Date", "End Date",
    "Days", "Session", "Reason", "Manager Approved By", "Manager Approved At",
    "HR Approved By", "HR Approved At", "Request Date",
)

OVERTIME_COLUMNS = (
    "Employee ID", "Employee Name", "Department", "Start Time", "End Time", "Hours",
    "Reason", "Manager Approved By", "Manager Approved At", "HR Approved By",
    "HR Approved At", "Request Date",
)

DEPLOYMENT_COLUMNS = (
    "Transmittal Number", "Asset Code", "Asset Description", "Serial Number",
    "Employee Name", "Employee ID", "Department", "Deployed Date", "Expected Return",
    "Returned Date", "Status", "Asset Value", "Deployment Condition", "Return Condition",
)


def _parse_range(start: str | None, end: str | None) -> tuple[date | None, date | None]:
    try:
        start_d = parse_iso_date(start)
        end_d = parse_iso_date(end)
    except ValueError:
        raise ReportError("start and end must be YYYY-MM-DD") from None
    if start_d and end_d and end_d < start_d:
        raise ReportError("end must be on or after start")
    return start_d, end_d


def _to_csv(columns, rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def _name(user: User | None) -> str:
    return user.name if user else ""


def _department(user: User | None) -> str:
    return user.department.name if user and user.department else ""


def _money(cents: int | None) -> str:
    if cents is None:
        return ""
    return f"{cents / 100:.2f}"


def leave_report_csv(*, business_unit_id: int, start: str | None = None, end: str | None = None) -> str:
    """Approved leave overlapping [start, end]."""
    start_d, end_d = _parse_range(start, end)

    query = db.session.query(LeaveRequest).filter(
        LeaveRequest.business_unit_id == business_unit_id,
        LeaveRequest.status == APPROVED,
    )
    if start_d:
        query = query.filter(LeaveRequest.end_date >= start_d)
    if end_d:
        query = query.filter(LeaveRequest.start_date <= end_d)

    rows = []
    for leave in query.order_by(LeaveRequest.start_date, LeaveRequest.id):
        rows.append((
            leave.user.employee_id,
            leave.user.name,
            _department(leave.user),
            leave.leave_type.name if leave.leave_type else "",
            to_iso_date(leave.start_date),
            to_iso_date(leave.end_date),
            leave.days,
            leave.session,
            leave.reason,
            _name(leave.manager_action_by),
            to_utc_z(leave.manager_action_at),
            _name(leave.hr_action_by),
            to_utc_z(leave.hr_action_at),
            to_utc_z(leave.created_at),
        ))
    return _to_csv(LEAVE_COLUMNS, rows)


def overtime_report_csv(*, business_unit_id: int, start: str | None = None, end: str | None = None) -> str:
    start_d, end_d = _parse_range(start, end)

    query = db.session.query(OvertimeRequest).filter(
        OvertimeRequest.business_unit_id == business_unit_id,
        OvertimeRequest.status == APPROVED,
    )
    if start_d:
        query = query.filter(OvertimeRequest.start_time >= datetime.combine(start_d, time.min))
    if end_d:
        query = query.filter(OvertimeRequest.start_time <= datetime.combine(end_d, time.max))

    rows = []
    for overtime in query.order_by(OvertimeRequest.start_time, OvertimeRequest.id):
        rows.append((
            overtime.user.employee_id,
            overtime.user.name,
            _department(overtime.user),
            to_utc_z(overtime.start_time),
            to_utc_z(overtime.end_time),
            overtime.hours,
            overtime.reason,
            _name(overtime.manager_action_by),
            to_utc_z(overtime.manager_action_at),
            _name(overtime.hr_action_by),
            to_utc_z(overtime.hr_action_at),
            to_utc_z(overtime.created_at),
        ))
    return _to_csv(OVERTIME_COLUMNS, rows)


def deployment_report_csv(
    *,
    business_unit_id: int,
    start: str | None = None,
    end: str | None = None,
    status: str | None = None,
) -> str:
    """Deployments with deployed_date in [start, end]."""
    start_d, end_d = _parse_range(start, end)

    query = db.session.query(AssetDeployment).filter(AssetDeployment.business_unit_id == business_unit_id)
    if status:
        query = query.filter(AssetDeployment.status == status)
    if start_d:
        query = query.filter(AssetDeployment.deployed_date >= start_d)
    if end_d:
        query = query.filter(AssetDeployment.deployed_date <= end_d)

    rows = []
    for deployment in query.order_by(AssetDeployment.deployed_date, AssetDeployment.id):
        asset = deployment.asset
        employee = deployment.employee
        rows.append((
            deployment.transmittal_number,
            asset.item_code,
            asset.description,
            asset.serial_number,
            _name(employee),
            employee.employee_id if employee else "",
            _department(employee),
            to_iso_date(deployment.deployed_date),
            to_iso_date(deployment.expected_return_date),
            to_iso_date(deployment.returned_date),
            deployment.status,
            _money(asset.purchase_price_cents),
            deployment.deployment_condition,
            deployment.return_condition,
        ))
    return _to_csv(DEPLOYMENT_COLUMNS, rows)
