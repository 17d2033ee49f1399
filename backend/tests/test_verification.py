# Overview: Pytest coverage for inventory verification campaigns.

"""
Verification tests.

Stored counters must always equal what a recount of the items gives:
scanned = verified + discrepancy + not found.
"""

import pytest

from erms.extensions import db
from erms.models import InventoryVerification
from erms.services import asset_service, verification_service as vs
from erms.validation import InvalidStateError, NotFoundError, ValidationError


@pytest.fixture
def inventory(staff, head_office):
    """Four assets: two in the store room, one deployed, one disposed."""
    def make(code, location=None):
        return asset_service.create_asset(
            business_unit_id=head_office.id,
            item_code=code,
            description=f"Monitor {code}",
            location=location,
        )

    shelf_a = make("MN-001", "Store Room")
    shelf_b = make("MN-002", "Store Room")
    deployed = make("MN-003")
    disposed = make("MN-004", "Store Room")
    db.session.flush()
    asset_service.deploy_assets([deployed.id], staff["requester"].id, head_office.id)
    asset_service.dispose_assets([disposed.id], head_office.id)
    db.session.commit()
    return {"shelf_a": shelf_a, "shelf_b": shelf_b, "deployed": deployed, "disposed": disposed}


@pytest.fixture
def running(inventory, head_office):
    verification = vs.create_verification(name="Q4 count", business_unit_id=head_office.id)
    vs.start_verification(verification.id, head_office.id)
    db.session.commit()
    return verification


def _summary(verification, bu):
    db.session.commit()
    return vs.get_verification_summary(verification.id, bu.id)


class TestCreation:
    def test_snapshot(self, inventory, head_office):
        verification = vs.create_verification(name="Q4 count", business_unit_id=head_office.id)
        db.session.commit()

        assert verification.status == "PLANNED"
        assert verification.total_assets == 3
        items = {item.asset_id: item for item in vs.list_items(verification.id, head_office.id)}
        assert inventory["disposed"].id not in items
        assert items[inventory["shelf_a"].id].expected_location == "Store Room"
        assert items[inventory["deployed"].id].expected_location == "Unknown"
        assert items[inventory["deployed"].id].expected_assignee == "E-1001"
        assert all(item.status == "PENDING" for item in items.values())

    def test_location_scope(self, inventory, head_office):
        verification = vs.create_verification(name="Store room", business_unit_id=head_office.id, locations=["Store Room"])
        assert verification.total_assets == 2

    def test_empty_scope(self, inventory, head_office):
        with pytest.raises(ValidationError):
            vs.create_verification(name="Nothing", business_unit_id=head_office.id, locations=["Roof"])


class TestScanning:
    def test_matching_scan_verifies(self, running, inventory, head_office):
        item = vs.scan_asset(running.id, inventory["shelf_a"].id, "mn-001", head_office.id, actual_location="Store Room")
        assert item.status == "VERIFIED"
        assert item.discrepancy_type is None

        summary = _summary(running, head_office)
        assert summary["counters"]["scanned_assets"] == 1
        assert summary["counters"]["verified_assets"] == 1
        assert summary["counters_consistent"] is True

    def test_location_mismatch(self, running, inventory, head_office):
        item = vs.scan_asset(running.id, inventory["shelf_a"].id, "MN-001", head_office.id, actual_location="Lobby")
        assert item.status == "DISCREPANCY"
        assert item.discrepancy_type == "LOCATION_MISMATCH"

    def test_several_mismatches(self, running, inventory, head_office):
        item = vs.scan_asset(
            running.id, inventory["deployed"].id, "MN-999", head_office.id, actual_assignee="E-1002",
        )
        assert item.discrepancy_type == "MULTIPLE"

    def test_double_scan_rejected(self, running, inventory, head_office):
        vs.scan_asset(running.id, inventory["shelf_a"].id, "MN-001", head_office.id)
        db.session.commit()
        with pytest.raises(InvalidStateError):
            vs.scan_asset(running.id, inventory["shelf_a"].id, "MN-001", head_office.id)
        db.session.rollback()

        assert _summary(running, head_office)["counters"]["scanned_assets"] == 1

    def test_asset_outside_campaign(self, running, inventory, head_office):
        with pytest.raises(NotFoundError):
            vs.scan_asset(running.id, inventory["disposed"].id, "MN-004", head_office.id)

    def test_planned_campaign_cannot_scan(self, inventory, head_office):
        verification = vs.create_verification(name="Later", business_unit_id=head_office.id)
        with pytest.raises(InvalidStateError):
            vs.scan_asset(verification.id, inventory["shelf_a"].id, "MN-001", head_office.id)

    def test_other_unit_cannot_see_campaign(self, running, inventory, branch):
        with pytest.raises(NotFoundError):
            vs.scan_asset(running.id, inventory["shelf_a"].id, "MN-001", branch.id)


class TestCounters:
    def test_counters_match_recount(self, running, inventory, head_office):
        vs.scan_asset(running.id, inventory["shelf_a"].id, "MN-001", head_office.id)
        vs.mark_asset_not_found(running.id, inventory["shelf_b"].id, head_office.id, notes="Not on shelf")
        vs.report_discrepancy(running.id, inventory["deployed"].id, head_office.id, "DAMAGED")

        summary = _summary(running, head_office)
        assert summary["counters"] == {
            "verified_assets": 1,
            "discrepancy_assets": 1,
            "not_found_assets": 1,
            "scanned_assets": 3,
            "total_assets": 3,
        }
        assert summary["counters"] == summary["derived"]
        assert summary["progress"] == 100

    def test_recount_repairs_drift(self, running, inventory, head_office):
        vs.scan_asset(running.id, inventory["shelf_a"].id, "MN-001", head_office.id)
        db.session.commit()
        db.session.query(InventoryVerification).filter_by(id=running.id).update({"scanned_assets": 7})
        db.session.commit()
        assert _summary(running, head_office)["counters_consistent"] is False

        verification = vs.recount_verification(running.id, head_office.id)
        db.session.commit()
        assert verification.scanned_assets == 1
        assert _summary(running, head_office)["counters_consistent"] is True


class TestLifecycle:
    def test_complete_requires_every_item(self, running, inventory, head_office):
        vs.scan_asset(running.id, inventory["shelf_a"].id, "MN-001", head_office.id)
        with pytest.raises(InvalidStateError):
            vs.complete_verification(running.id, head_office.id)

    def test_complete(self, running, inventory, head_office):
        for key in ("shelf_a", "shelf_b", "deployed"):
            vs.mark_asset_not_found(running.id, inventory[key].id, head_office.id)
        verification = vs.complete_verification(running.id, head_office.id)
        db.session.commit()
        assert verification.status == "COMPLETED"
        assert verification.completed_at is not None

        with pytest.raises(InvalidStateError):
            vs.cancel_verification(running.id, head_office.id)

    def test_cancel_planned(self, inventory, head_office):
        verification = vs.create_verification(name="Oops", business_unit_id=head_office.id)
        verification = vs.cancel_verification(verification.id, head_office.id)
        assert verification.status == "CANCELLED"

    def test_start_twice(self, running, head_office):
        with pytest.raises(InvalidStateError):
            vs.start_verification(running.id, head_office.id)
