# backend/erms/services/depreciation_service.py
"""
Monthly depreciation runs.

One run writes one AssetDepreciation row per asset for a calculation date,
moves book value down by the month's amount (never below salvage), and
schedules the next run for the first day of the following month. A second
run for the same (asset, date) is a ConflictError, so reruns are safe to
retry but never double-count.
"""
from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import Asset, AssetDepreciation
from ..signals import publish_approval_views_changed
from ..validation import ConflictError, NotFoundError, ValidationError, require_id_list
from erms.time_utils import today, parse_iso_date, first_day_of_next_month
from .asset_service import (
    ASSET_DISPOSED,
    STRAIGHT_LINE,
    DECLINING_BALANCE,
    SUM_OF_YEARS_DIGITS,
    record_history,
)
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def monthly_amount_cents(asset: Asset) -> int:
    """
    The month's depreciation before capping.

    UNITS_OF_PRODUCTION has no usage tracking and always yields 0.
    """
    method = asset.depreciation_method
    if method in (STRAIGHT_LINE, SUM_OF_YEARS_DIGITS):
        return asset.monthly_depreciation_cents or 0
    if method == DECLINING_BALANCE:
        return (asset.current_book_value_cents * (asset.depreciation_rate_bps or 0)) // 10000 // 12
    return 0


def _eligible_filter():
    return db.and_(
        Asset.is_active.is_(True),
        Asset.status != ASSET_DISPOSED,
        Asset.is_fully_depreciated.is_(False),
        Asset.depreciation_method.is_not(None),
    )


def assets_due_query(business_unit_id: int, as_of: date):
    return db.session.query(Asset).filter(
        Asset.business_unit_id == business_unit_id,
        _eligible_filter(),
        db.or_(Asset.monthly_depreciation_cents > 0, Asset.depreciation_method == DECLINING_BALANCE),
        Asset.next_depreciation_date.is_not(None),
        Asset.next_depreciation_date <= as_of,
    )


def get_assets_due_for_depreciation(business_unit_id: int, as_of=None) -> list[Asset]:
    as_of = parse_iso_date(as_of) or today()
    return assets_due_query(business_unit_id, as_of).order_by(Asset.next_depreciation_date, Asset.id).all()


def calculate_depreciation(
    asset_ids,
    calculation_date,
    business_unit_id: int,
    actor_id: int | None = None,
) -> list[AssetDepreciation]:
    """
    Depreciate the given assets for calculation_date.

    Args:
        asset_ids: Assets to depreciate (same business unit)
        calculation_date: Business date of the run
        business_unit_id: Tenant scope
        actor_id: User running the calculation (None for CLI runs)

    Returns:
        list[AssetDepreciation]: One entry per asset, in input order

    Raises:
        NotFoundError: An id is not an eligible asset in the business unit
        ConflictError: An asset was already depreciated for that date
    """
    ids = require_id_list(asset_ids, "asset_ids")
    on = parse_iso_date(calculation_date)
    if on is None:
        raise ValidationError("calculation_date is required")

    def _op():
        assets = {
            asset.id: asset
            for asset in lock_for_update(
                db.session.query(Asset).filter(
                    Asset.id.in_(ids),
                    Asset.business_unit_id == business_unit_id,
                    _eligible_filter(),
                )
            ).all()
        }
        missing = [asset_id for asset_id in ids if asset_id not in assets]
        if missing:
            raise NotFoundError(f"Assets not eligible for depreciation: {missing}")

        already = [
            row.asset_id
            for row in db.session.query(AssetDepreciation.asset_id).filter(
                AssetDepreciation.asset_id.in_(ids),
                AssetDepreciation.depreciation_date == on,
            )
        ]
        if already:
            raise ConflictError(f"Depreciation already recorded for {on.isoformat()} on assets {sorted(already)}")

        entries = []
        for asset_id in ids:
            asset = assets[asset_id]
            book_start = asset.current_book_value_cents
            headroom = max(book_start - asset.salvage_value_cents, 0)
            amount = max(min(monthly_amount_cents(asset), headroom), 0)
            book_end = book_start - amount
            accumulated = asset.accumulated_depreciation_cents + amount
            fully = book_end <= asset.salvage_value_cents

            entry = AssetDepreciation(
                asset_id=asset.id,
                business_unit_id=business_unit_id,
                depreciation_date=on,
                method=asset.depreciation_method,
                book_value_start_cents=book_start,
                depreciation_amount_cents=amount,
                book_value_end_cents=book_end,
                accumulated_depreciation_cents=accumulated,
                calculated_by_id=actor_id,
            )
            db.session.add(entry)

            asset.current_book_value_cents = book_end
            asset.accumulated_depreciation_cents = accumulated
            asset.last_depreciation_date = on
            asset.is_fully_depreciated = fully
            asset.next_depreciation_date = None if fully else first_day_of_next_month(on)

            record_history(
                asset,
                "DEPRECIATION_CALCULATED",
                previous_status=asset.status,
                new_status=asset.status,
                actor_id=actor_id,
                notes=f"{asset.depreciation_method}: {amount} cents, book value {book_start} -> {book_end}",
            )
            entries.append(entry)

        db.session.flush()
        append_audit_event(
            business_unit_id=business_unit_id,
            event_type="asset.depreciation_calculated",
            event_category="assets",
            entity_type="asset",
            entity_id=ids[0],
            actor_user_id=actor_id,
            payload={"asset_ids": ids, "calculation_date": on, "total_cents": sum(e.depreciation_amount_cents for e in entries)},
        )
        logger.info("Depreciated %d asset(s) for %s in business unit %s", len(entries), on, business_unit_id)
        publish_approval_views_changed("depreciation_service", {business_unit_id}, reason="asset.depreciation_calculated")
        return entries

    return run_with_retry(_op)


def run_due_depreciation(business_unit_id: int, as_of=None, actor_id: int | None = None) -> list[AssetDepreciation]:
    """Depreciate every asset due on or before as_of, dated as_of."""
    as_of = parse_iso_date(as_of) or today()
    due = get_assets_due_for_depreciation(business_unit_id, as_of)
    if not due:
        return []
    return calculate_depreciation([asset.id for asset in due], as_of, business_unit_id, actor_id)


def list_depreciation_entries(asset_id: int, business_unit_id: int) -> list[AssetDepreciation]:
    return (
        db.session.query(AssetDepreciation)
        .filter_by(asset_id=asset_id, business_unit_id=business_unit_id)
        .order_by(AssetDepreciation.depreciation_date)
        .all()
    )
