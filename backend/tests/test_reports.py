# Overview: Pytest coverage for CSV report exports.

"""
CSV export tests: headers, quoting, and which rows are included.
"""

import csv
import io

import pytest

from erms.extensions import db
from erms.models import LeaveRequest
from erms.services import asset_service, hr_approval_service, leave_service, report_service


def _rows(body):
    return list(csv.reader(io.StringIO(body)))


@pytest.fixture
def approved_leave(staff, head_office):
    leave_type = leave_service.create_leave_type(head_office.id, "Sick Leave", "SL", 10)
    leave_service.set_leave_balance(staff["requester"].id, leave_type.id, 2026, 10)
    db.session.commit()

    def file(start, end, reason):
        leave = leave_service.create_leave_request(
            user_id=staff["requester"].id,
            business_unit_id=head_office.id,
            leave_type_id=leave_type.id,
            start_date=start,
            end_date=end,
            reason=reason,
        )
        db.session.commit()
        return leave

    approved = file("2026-05-04", "2026-05-05", 'Flu, "bad" case')
    pending = file("2026-05-11", "2026-05-11", "Check-up")
    for actor in (staff["manager"], staff["hr"]):
        hr_approval_service.approve_time_off(LeaveRequest, approved.id, actor.id, head_office.id)
    db.session.commit()
    return {"approved": approved, "pending": pending}


class TestLeaveReport:
    def test_header_and_quoting(self, approved_leave, head_office):
        body = report_service.leave_report_csv(business_unit_id=head_office.id)
        lines = body.splitlines()

        assert lines[0] == ",".join(f'"{c}"' for c in report_service.LEAVE_COLUMNS)
        assert '"Flu, ""bad"" case"' in lines[1]
        assert all(line.startswith('"') for line in lines)

    def test_only_approved_rows(self, approved_leave, head_office):
        rows = _rows(report_service.leave_report_csv(business_unit_id=head_office.id))
        assert len(rows) == 2
        row = dict(zip(rows[0], rows[1]))
        assert row["Employee ID"] == "E-1001"
        assert row["Department"] == "Operations"
        assert row["Leave Type"] == "Sick Leave"
        assert row["Start Date"] == "2026-05-04"
        assert row["Manager Approved By"] == "Manager E-MGR"
        assert row["HR Approved By"] == "Hr E-HR"

    def test_range_filters_by_overlap(self, approved_leave, head_office):
        inside = _rows(report_service.leave_report_csv(business_unit_id=head_office.id, start="2026-05-05", end="2026-05-31"))
        outside = _rows(report_service.leave_report_csv(business_unit_id=head_office.id, start="2026-06-01", end="2026-06-30"))
        assert len(inside) == 2
        assert len(outside) == 1

    def test_other_unit_empty(self, approved_leave, branch):
        assert len(_rows(report_service.leave_report_csv(business_unit_id=branch.id))) == 1

    def test_bad_range(self, head_office):
        with pytest.raises(report_service.ReportError):
            report_service.leave_report_csv(business_unit_id=head_office.id, start="2026-05-10", end="2026-05-01")
        with pytest.raises(report_service.ReportError):
            report_service.leave_report_csv(business_unit_id=head_office.id, start="May 1")


class TestDeploymentReport:
    def test_asset_value_and_transmittal(self, staff, head_office):
        asset = asset_service.create_asset(
            business_unit_id=head_office.id,
            item_code="PH-001",
            description="Phone",
            serial_number="SN-1",
            purchase_price_cents=1234550,
        )
        asset_service.deploy_assets([asset.id], staff["requester"].id, head_office.id, deployed_date="2026-07-01")
        db.session.commit()

        rows = _rows(report_service.deployment_report_csv(business_unit_id=head_office.id, start="2026-07-01", end="2026-07-31"))
        assert rows[0] == list(report_service.DEPLOYMENT_COLUMNS)
        row = dict(zip(rows[0], rows[1]))
        assert row["Transmittal Number"] == "HO-202607-001-01"
        assert row["Asset Value"] == "12345.50"
        assert row["Status"] == "DEPLOYED"
        assert row["Returned Date"] == ""

        returned_only = _rows(report_service.deployment_report_csv(business_unit_id=head_office.id, status="RETURNED"))
        assert len(returned_only) == 1
