# Overview: Pytest coverage for asset registration, deployment, return and disposal.

"""
Asset lifecycle tests.

Deployments and returns are all-or-nothing: one ineligible asset fails the
whole batch and nothing is written.
"""

import pytest

from erms.extensions import db
from erms.models import Asset, AssetDeployment, AssetHistory
from erms.services import asset_service
from erms.validation import ConflictError, InvalidStateError, NotFoundError, PartialStateError, ValidationError


def _asset(bu, code, **kwargs):
    asset = asset_service.create_asset(
        business_unit_id=bu.id,
        item_code=code,
        description=kwargs.pop("description", f"Laptop {code}"),
        purchase_price_cents=kwargs.pop("purchase_price_cents", 6000000),
        location=kwargs.pop("location", "HQ 3F"),
        **kwargs,
    )
    db.session.commit()
    return asset


@pytest.fixture
def laptops(head_office):
    return [_asset(head_office, f"LT-{n:03d}") for n in range(1, 4)]


def _history_actions(asset):
    return [
        row.action for row in db.session.query(AssetHistory).filter_by(asset_id=asset.id).order_by(AssetHistory.id)
    ]


class TestRegistration:
    def test_new_asset_is_available(self, head_office):
        asset = _asset(head_office, "LT-100")
        assert asset.status == "AVAILABLE"
        assert asset.current_book_value_cents == asset.purchase_price_cents
        assert _history_actions(asset) == ["CREATED"]

    def test_duplicate_item_code(self, head_office):
        _asset(head_office, "LT-100")
        with pytest.raises(ConflictError):
            _asset(head_office, "LT-100")

    def test_same_code_in_another_unit(self, head_office, branch):
        _asset(head_office, "LT-100")
        assert _asset(branch, "LT-100").business_unit_id == branch.id

    def test_salvage_above_price(self, head_office):
        with pytest.raises(ValidationError):
            _asset(head_office, "LT-100", purchase_price_cents=1000, salvage_value_cents=2000)

    def test_straight_line_needs_life(self, head_office):
        with pytest.raises(ValidationError):
            _asset(head_office, "LT-100", depreciation_method="STRAIGHT_LINE")

    def test_straight_line_schedule(self, head_office):
        asset = _asset(
            head_office, "LT-100",
            purchase_price_cents=120000, salvage_value_cents=12000,
            useful_life_months=36, depreciation_method="straight_line",
            purchase_date="2026-01-15",
        )
        assert asset.depreciation_method == "STRAIGHT_LINE"
        assert asset.monthly_depreciation_cents == 3000
        assert asset.next_depreciation_date.isoformat() == "2026-02-01"


class TestDeploy:
    def test_batch_gets_transmittal_suffixes(self, staff, laptops):
        ids = [a.id for a in laptops]
        deployments = asset_service.deploy_assets(
            ids, staff["requester"].id, laptops[0].business_unit_id,
            actor_id=staff["purchaser"].id, deployed_date="2026-10-05",
        )
        db.session.commit()

        assert [d.transmittal_number for d in deployments] == [
            "HO-202610-001-01", "HO-202610-001-02", "HO-202610-001-03",
        ]
        for asset in laptops:
            assert asset.status == "DEPLOYED"
            assert asset.assigned_to_id == staff["requester"].id
            assert _history_actions(asset) == ["CREATED", "DEPLOYED"]

    def test_next_batch_gets_next_base(self, staff, laptops):
        bu = laptops[0].business_unit_id
        asset_service.deploy_assets([laptops[0].id], staff["requester"].id, bu, deployed_date="2026-10-05")
        second = asset_service.deploy_assets([laptops[1].id], staff["requester"].id, bu, deployed_date="2026-10-20")
        assert second[0].transmittal_number == "HO-202610-002-01"

    def test_one_unavailable_asset_fails_batch(self, staff, laptops):
        bu = laptops[0].business_unit_id
        asset_service.deploy_assets([laptops[0].id], staff["requester"].id, bu)
        db.session.commit()

        with pytest.raises(PartialStateError) as exc:
            asset_service.deploy_assets([laptops[1].id, laptops[0].id, 9999], staff["rdh_requester"].id, bu)
        db.session.rollback()

        assert exc.value.invalid_ids == [laptops[0].id, 9999]
        assert db.session.get(Asset, laptops[1].id).status == "AVAILABLE"
        assert db.session.query(AssetDeployment).count() == 1

    def test_employee_must_be_in_unit(self, staff, laptops, branch_staff):
        with pytest.raises(NotFoundError):
            asset_service.deploy_assets([laptops[0].id], branch_staff["requester"].id, laptops[0].business_unit_id)

    def test_return_date_before_deploy(self, staff, laptops):
        with pytest.raises(ValidationError):
            asset_service.deploy_assets(
                [laptops[0].id], staff["requester"].id, laptops[0].business_unit_id,
                deployed_date="2026-10-05", expected_return_date="2026-10-01",
            )

    def test_accounting_approval_mode(self, app, staff, laptops, monkeypatch):
        monkeypatch.setitem(app.config, "DEPLOYMENT_REQUIRES_ACCOUNTING_APPROVAL", True)
        bu = laptops[0].business_unit_id
        deployments = asset_service.deploy_assets([laptops[0].id], staff["requester"].id, bu)
        db.session.commit()

        assert deployments[0].status == "PENDING_ACCOUNTING_APPROVAL"
        assert laptops[0].status == "AVAILABLE"
        assert asset_service.pending_deployment_approvals_query(bu).count() == 1

        # Reserved while pending
        with pytest.raises(PartialStateError):
            asset_service.deploy_assets([laptops[0].id], staff["rdh_requester"].id, bu)
        db.session.rollback()

        approved = asset_service.approve_deployments([deployments[0].id], staff["acctg"].id, bu)
        db.session.commit()
        assert approved[0].status == "DEPLOYED"
        assert db.session.get(Asset, laptops[0].id).status == "DEPLOYED"
        assert asset_service.pending_deployment_approvals_query(bu).count() == 0


class TestReturn:
    def test_return_releases_assets(self, staff, laptops):
        bu = laptops[0].business_unit_id
        ids = [a.id for a in laptops[:2]]
        asset_service.deploy_assets(ids, staff["requester"].id, bu)
        db.session.commit()

        returned = asset_service.return_assets(ids, "2026-11-01", "End of project", bu, actor_id=staff["purchaser"].id)
        db.session.commit()

        for asset in returned:
            assert asset.status == "AVAILABLE"
            assert asset.assigned_to_id is None
            assert _history_actions(asset)[-1] == "RETURNED"
        for deployment in db.session.query(AssetDeployment).all():
            assert deployment.status == "RETURNED"
            assert deployment.returned_date.isoformat() == "2026-11-01"

    def test_return_is_all_or_nothing(self, staff, laptops):
        bu = laptops[0].business_unit_id
        asset_service.deploy_assets([laptops[0].id], staff["requester"].id, bu)
        db.session.commit()

        with pytest.raises(PartialStateError) as exc:
            asset_service.return_assets([laptops[0].id, laptops[1].id], None, None, bu)
        db.session.rollback()

        assert exc.value.invalid_ids == [laptops[1].id]
        assert db.session.get(Asset, laptops[0].id).status == "DEPLOYED"
        assert _history_actions(laptops[0]) == ["CREATED", "DEPLOYED"]


class TestDamageAndDisposal:
    def test_damage_closes_deployment(self, staff, laptops):
        bu = laptops[0].business_unit_id
        asset_service.deploy_assets([laptops[0].id], staff["requester"].id, bu)
        db.session.commit()

        asset = asset_service.report_damage(laptops[0].id, bu, staff["purchaser"].id, "Cracked screen")
        db.session.commit()
        assert asset.status == "DAMAGED"
        assert asset_service.get_active_deployment(asset.id) is None

    def test_dispose(self, staff, laptops):
        bu = laptops[0].business_unit_id
        disposed = asset_service.dispose_assets([laptops[2].id], bu, staff["admin"].id, "Obsolete")
        db.session.commit()
        assert disposed[0].status == "DISPOSED"

        with pytest.raises(InvalidStateError):
            asset_service.report_damage(laptops[2].id, bu)

    def test_cannot_dispose_deployed(self, staff, laptops):
        bu = laptops[0].business_unit_id
        asset_service.deploy_assets([laptops[0].id], staff["requester"].id, bu)
        db.session.commit()
        with pytest.raises(PartialStateError):
            asset_service.dispose_assets([laptops[0].id], bu)
