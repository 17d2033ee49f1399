# Overview: Pytest coverage for monthly asset depreciation.

"""
Depreciation tests: amounts per method, salvage capping, due dates and
duplicate protection.
"""

from datetime import date

import pytest

from erms.extensions import db
from erms.models import AssetDepreciation, AuditEvent
from erms.services import asset_service, depreciation_service
from erms.validation import ConflictError, NotFoundError


def _asset(bu, code, **kwargs):
    asset = asset_service.create_asset(
        business_unit_id=bu.id,
        item_code=code,
        description=f"Asset {code}",
        purchase_date=kwargs.pop("purchase_date", "2026-01-15"),
        **kwargs,
    )
    db.session.commit()
    return asset


def _straight_line(bu, code="PR-001", price=120000, salvage=12000, life=36):
    return _asset(
        bu, code,
        purchase_price_cents=price,
        salvage_value_cents=salvage,
        useful_life_months=life,
        depreciation_method="STRAIGHT_LINE",
    )


class TestAmounts:
    def test_straight_line_entry(self, head_office):
        asset = _straight_line(head_office)
        entries = depreciation_service.calculate_depreciation([asset.id], "2026-02-01", head_office.id)
        db.session.commit()

        entry = entries[0]
        assert entry.depreciation_amount_cents == 3000
        assert entry.book_value_start_cents == 120000
        assert entry.book_value_end_cents == 117000
        assert entry.accumulated_depreciation_cents == 3000
        assert asset.current_book_value_cents == 117000
        assert asset.last_depreciation_date == date(2026, 2, 1)
        assert asset.next_depreciation_date == date(2026, 3, 1)

    def test_declining_balance(self, head_office):
        asset = _asset(
            head_office, "DB-001",
            purchase_price_cents=100000,
            depreciation_method="DECLINING_BALANCE",
            depreciation_rate_bps=2400,
        )
        entries = depreciation_service.calculate_depreciation([asset.id], "2026-02-01", head_office.id)
        assert entries[0].depreciation_amount_cents == 2000

        entries = depreciation_service.calculate_depreciation([asset.id], "2026-03-01", head_office.id)
        assert entries[0].depreciation_amount_cents == 98000 * 2400 // 10000 // 12

    def test_units_of_production_records_zero(self, head_office):
        asset = _asset(head_office, "UP-001", purchase_price_cents=50000, depreciation_method="UNITS_OF_PRODUCTION")
        entries = depreciation_service.calculate_depreciation([asset.id], "2026-02-01", head_office.id)
        assert entries[0].depreciation_amount_cents == 0
        assert asset.current_book_value_cents == 50000


class TestSalvageCap:
    def test_amount_capped_at_salvage(self, head_office):
        asset = _straight_line(head_office, price=10000, salvage=9000, life=1)
        asset.current_book_value_cents = 9500
        db.session.commit()

        entries = depreciation_service.calculate_depreciation([asset.id], "2026-02-01", head_office.id)
        db.session.commit()

        assert entries[0].depreciation_amount_cents == 500
        assert asset.current_book_value_cents == 9000
        assert asset.is_fully_depreciated is True
        assert asset.next_depreciation_date is None

    def test_never_below_salvage(self, head_office):
        asset = _straight_line(head_office, price=10000, salvage=8500, life=2)
        for month in ("2026-02-01", "2026-03-01"):
            depreciation_service.calculate_depreciation([asset.id], month, head_office.id)
            db.session.commit()

        assert asset.current_book_value_cents == 8500
        assert asset.is_fully_depreciated is True

        with pytest.raises(NotFoundError):
            depreciation_service.calculate_depreciation([asset.id], "2026-04-01", head_office.id)


class TestGuards:
    def test_duplicate_date_conflicts(self, head_office):
        asset = _straight_line(head_office)
        depreciation_service.calculate_depreciation([asset.id], "2026-02-01", head_office.id)
        db.session.commit()

        with pytest.raises(ConflictError):
            depreciation_service.calculate_depreciation([asset.id], "2026-02-01", head_office.id)
        db.session.rollback()
        assert db.session.query(AssetDepreciation).count() == 1

    def test_batch_fails_when_one_asset_is_ineligible(self, head_office):
        good = _straight_line(head_office)
        plain = _asset(head_office, "NO-DEP", purchase_price_cents=5000)

        with pytest.raises(NotFoundError):
            depreciation_service.calculate_depreciation([good.id, plain.id], "2026-02-01", head_office.id)
        db.session.rollback()
        assert db.session.query(AssetDepreciation).count() == 0

    def test_other_unit_asset_not_found(self, head_office, branch):
        asset = _straight_line(head_office)
        with pytest.raises(NotFoundError):
            depreciation_service.calculate_depreciation([asset.id], "2026-02-01", branch.id)

    def test_run_is_audited(self, head_office):
        asset = _straight_line(head_office)
        depreciation_service.calculate_depreciation([asset.id], "2026-02-01", head_office.id)
        db.session.commit()
        assert db.session.query(AuditEvent).filter_by(event_type="asset.depreciation_calculated").count() == 1


class TestDue:
    def test_due_list(self, head_office):
        due = _straight_line(head_office, "PR-001")
        _asset(head_office, "NO-DEP", purchase_price_cents=5000)
        later = _straight_line(head_office, "PR-002")
        later.next_depreciation_date = date(2026, 6, 1)
        db.session.commit()

        ids = [a.id for a in depreciation_service.get_assets_due_for_depreciation(head_office.id, "2026-02-15")]
        assert ids == [due.id]

    def test_run_due(self, head_office):
        asset = _straight_line(head_office)
        entries = depreciation_service.run_due_depreciation(head_office.id, "2026-02-15")
        db.session.commit()
        assert [e.asset_id for e in entries] == [asset.id]
        assert entries[0].depreciation_date == date(2026, 2, 15)
        assert depreciation_service.get_assets_due_for_depreciation(head_office.id, "2026-02-15") == []

    def test_run_due_with_nothing_due(self, head_office):
        assert depreciation_service.run_due_depreciation(head_office.id, "2026-01-01") == []
