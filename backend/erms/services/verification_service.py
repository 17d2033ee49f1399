# backend/erms/services/verification_service.py
"""
Inventory Verification Campaigns

A campaign snapshots the in-scope assets into VerificationItems when it is
created. Each item resolves once, PENDING -> VERIFIED | DISCREPANCY | NOT_FOUND.

Counter invariants:
- scanned_assets = items not PENDING
- verified_assets / discrepancy_assets / not_found_assets = items in that status
- Counters only move through _increment(), a single UPDATE ... SET col = col + 1
  issued in the same transaction as the item write. A stale in-memory copy of
  the verification can never overwrite a concurrent increment.
- recount_verification() rebuilds the counters from the items.
"""
from __future__ import annotations

import logging

from sqlalchemy import func, update

from ..extensions import db
from ..models import Asset, AssetDeployment, InventoryVerification, VerificationItem
from ..validation import (
    ValidationError,
    NotFoundError,
    InvalidStateError,
    require_text,
    optional_text,
)
from erms.time_utils import utcnow, parse_iso_date
from .asset_service import (
    ASSET_AVAILABLE,
    ASSET_DEPLOYED,
    ASSET_IN_MAINTENANCE,
    active_deployment_filter,
)
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


VERIFICATION_PLANNED = "PLANNED"
VERIFICATION_IN_PROGRESS = "IN_PROGRESS"
VERIFICATION_COMPLETED = "COMPLETED"
VERIFICATION_CANCELLED = "CANCELLED"

ITEM_PENDING = "PENDING"
ITEM_VERIFIED = "VERIFIED"
ITEM_DISCREPANCY = "DISCREPANCY"
ITEM_NOT_FOUND = "NOT_FOUND"

SNAPSHOT_ASSET_STATUSES = (ASSET_AVAILABLE, ASSET_DEPLOYED, ASSET_IN_MAINTENANCE)

COUNTER_FOR_STATUS = {
    ITEM_VERIFIED: "verified_assets",
    ITEM_DISCREPANCY: "discrepancy_assets",
    ITEM_NOT_FOUND: "not_found_assets",
}


def _get_verification(verification_id: int, business_unit_id: int, *, lock: bool = False) -> InventoryVerification:
    query = db.session.query(InventoryVerification).filter_by(id=verification_id, business_unit_id=business_unit_id)
    if lock:
        query = lock_for_update(query)
    verification = query.first()
    if not verification:
        raise NotFoundError("Verification not found")
    return verification


def _audit(verification: InventoryVerification, event: str, actor_id: int | None, payload: dict | None = None) -> None:
    append_audit_event(
        business_unit_id=verification.business_unit_id,
        event_type=f"verification.{event}",
        event_category="assets",
        entity_type="inventory_verification",
        entity_id=verification.id,
        actor_user_id=actor_id,
        payload=payload,
    )


def _increment(verification_id: int, *columns: str) -> None:
    values = {name: getattr(InventoryVerification, name) + 1 for name in columns}
    db.session.execute(
        update(InventoryVerification)
        .where(InventoryVerification.id == verification_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )


def create_verification(
    *,
    name: str,
    business_unit_id: int,
    actor_id: int | None = None,
    category_ids=None,
    locations=None,
    description: str | None = None,
    start_date=None,
    end_date=None,
) -> InventoryVerification:
    """
    Create a PLANNED campaign with one PENDING item per in-scope asset.

    Scope: active assets of the business unit in AVAILABLE, DEPLOYED or
    IN_MAINTENANCE, narrowed by category_ids and locations when given.

    Raises:
        ValidationError: name missing, bad date range, or nothing in scope
    """
    name = require_text(name, "name")
    start = parse_iso_date(start_date)
    end = parse_iso_date(end_date)
    if start and end and end < start:
        raise ValidationError("end_date must be on or after start_date")

    def _op():
        query = db.session.query(Asset).filter(
            Asset.business_unit_id == business_unit_id,
            Asset.is_active.is_(True),
            Asset.status.in_(SNAPSHOT_ASSET_STATUSES),
        )
        if category_ids:
            query = query.filter(Asset.category_id.in_(list(category_ids)))
        if locations:
            query = query.filter(Asset.location.in_(list(locations)))
        assets = query.order_by(Asset.item_code).all()

        if not assets:
            raise ValidationError("No assets found matching the verification scope")

        assignees = {
            deployment.asset_id: deployment.employee.employee_id
            for deployment in db.session.query(AssetDeployment).filter(
                AssetDeployment.asset_id.in_([asset.id for asset in assets]),
                active_deployment_filter(),
            )
        }

        verification = InventoryVerification(
            business_unit_id=business_unit_id,
            name=name,
            description=optional_text(description),
            status=VERIFICATION_PLANNED,
            start_date=start,
            end_date=end,
            total_assets=len(assets),
            created_by_id=actor_id,
        )
        db.session.add(verification)
        db.session.flush()

        for asset in assets:
            db.session.add(VerificationItem(
                verification_id=verification.id,
                asset_id=asset.id,
                status=ITEM_PENDING,
                expected_location=asset.location or "Unknown",
                expected_assignee=assignees.get(asset.id),
            ))

        db.session.flush()
        _audit(verification, "created", actor_id, {"total_assets": len(assets)})
        return verification

    return run_with_retry(_op)


def _change_status(verification_id, business_unit_id, actor_id, allowed, target, stamp_field, event):
    def _op():
        verification = _get_verification(verification_id, business_unit_id, lock=True)
        if verification.status not in allowed:
            raise InvalidStateError(f"Cannot {event} a verification in status {verification.status}")

        if target == VERIFICATION_COMPLETED:
            pending = db.session.query(func.count(VerificationItem.id)).filter_by(
                verification_id=verification.id, status=ITEM_PENDING,
            ).scalar()
            if pending:
                raise InvalidStateError(f"{pending} asset(s) have not been scanned yet")

        verification.status = target
        setattr(verification, stamp_field, utcnow())
        db.session.flush()
        _audit(verification, event, actor_id)
        return verification

    return run_with_retry(_op)


def start_verification(verification_id: int, business_unit_id: int, actor_id: int | None = None) -> InventoryVerification:
    return _change_status(
        verification_id, business_unit_id, actor_id,
        (VERIFICATION_PLANNED,), VERIFICATION_IN_PROGRESS, "started_at", "start",
    )


def complete_verification(verification_id: int, business_unit_id: int, actor_id: int | None = None) -> InventoryVerification:
    return _change_status(
        verification_id, business_unit_id, actor_id,
        (VERIFICATION_IN_PROGRESS,), VERIFICATION_COMPLETED, "completed_at", "complete",
    )


def cancel_verification(verification_id: int, business_unit_id: int, actor_id: int | None = None) -> InventoryVerification:
    return _change_status(
        verification_id, business_unit_id, actor_id,
        (VERIFICATION_PLANNED, VERIFICATION_IN_PROGRESS), VERIFICATION_CANCELLED, "cancelled_at", "cancel",
    )


def _pending_item(verification_id: int, asset_id: int, business_unit_id: int) -> VerificationItem:
    verification = _get_verification(verification_id, business_unit_id)
    if verification.status != VERIFICATION_IN_PROGRESS:
        raise InvalidStateError("Verification is not in progress")

    item = lock_for_update(
        db.session.query(VerificationItem).filter_by(verification_id=verification_id, asset_id=asset_id)
    ).first()
    if not item:
        raise NotFoundError("Asset not found in this verification")
    if item.status != ITEM_PENDING:
        raise InvalidStateError("Asset has already been scanned")
    return item


def _resolve(item: VerificationItem, status: str, actor_id: int | None) -> None:
    item.status = status
    item.scanned_at = utcnow()
    item.scanned_by_id = actor_id
    db.session.flush()
    _increment(item.verification_id, "scanned_assets", COUNTER_FOR_STATUS[status])


def scan_asset(
    verification_id: int,
    asset_id: int,
    scanned_code: str,
    business_unit_id: int,
    actor_id: int | None = None,
    actual_location: str | None = None,
    actual_assignee: str | None = None,
    notes: str | None = None,
) -> VerificationItem:
    """
    Resolve a PENDING item from a scan.

    VERIFIED only when the scanned code equals the asset's item code
    (case-insensitive) and any supplied location or assignee matches the
    snapshot. Anything else is a DISCREPANCY.
    """
    scanned_code = require_text(scanned_code, "scanned_code")
    actual_location = optional_text(actual_location)
    actual_assignee = optional_text(actual_assignee)

    def _op():
        item = _pending_item(verification_id, asset_id, business_unit_id)

        mismatches = []
        if scanned_code.lower() != item.asset.item_code.lower():
            mismatches.append("CODE_MISMATCH")
        if actual_location and actual_location != item.expected_location:
            mismatches.append("LOCATION_MISMATCH")
        if actual_assignee and actual_assignee != item.expected_assignee:
            mismatches.append("ASSIGNEE_MISMATCH")

        item.scanned_code = scanned_code
        item.actual_location = actual_location
        item.actual_assignee = actual_assignee
        item.notes = optional_text(notes)
        if not mismatches:
            item.discrepancy_type = None
        elif len(mismatches) == 1:
            item.discrepancy_type = mismatches[0]
        else:
            item.discrepancy_type = "MULTIPLE"

        _resolve(item, ITEM_DISCREPANCY if mismatches else ITEM_VERIFIED, actor_id)
        return item

    return run_with_retry(_op)


def mark_asset_not_found(
    verification_id: int,
    asset_id: int,
    business_unit_id: int,
    actor_id: int | None = None,
    notes: str | None = None,
) -> VerificationItem:
    def _op():
        item = _pending_item(verification_id, asset_id, business_unit_id)
        item.notes = optional_text(notes)
        _resolve(item, ITEM_NOT_FOUND, actor_id)
        return item

    return run_with_retry(_op)


def report_discrepancy(
    verification_id: int,
    asset_id: int,
    business_unit_id: int,
    discrepancy_type: str,
    actor_id: int | None = None,
    notes: str | None = None,
) -> VerificationItem:
    discrepancy_type = require_text(discrepancy_type, "discrepancy_type")[:32]

    def _op():
        item = _pending_item(verification_id, asset_id, business_unit_id)
        item.discrepancy_type = discrepancy_type
        item.notes = optional_text(notes)
        _resolve(item, ITEM_DISCREPANCY, actor_id)
        return item

    return run_with_retry(_op)


def _item_status_counts(verification_id: int) -> dict[str, int]:
    rows = (
        db.session.query(VerificationItem.status, func.count(VerificationItem.id))
        .filter(VerificationItem.verification_id == verification_id)
        .group_by(VerificationItem.status)
        .all()
    )
    return {status: count for status, count in rows}


def _derived_counters(verification_id: int) -> dict[str, int]:
    counts = _item_status_counts(verification_id)
    derived = {column: counts.get(status, 0) for status, column in COUNTER_FOR_STATUS.items()}
    derived["scanned_assets"] = sum(derived.values())
    derived["total_assets"] = sum(counts.values())
    return derived


def recount_verification(verification_id: int, business_unit_id: int) -> InventoryVerification:
    """Rewrite the counters from the item statuses."""
    def _op():
        verification = _get_verification(verification_id, business_unit_id, lock=True)
        # Counters move through bulk UPDATEs the identity map does not see
        db.session.refresh(verification)
        derived = _derived_counters(verification.id)
        drifted = {
            column: (getattr(verification, column), value)
            for column, value in derived.items()
            if getattr(verification, column) != value
        }
        if drifted:
            logger.warning("Verification %s counters drifted: %s", verification.id, drifted)
        for column, value in derived.items():
            setattr(verification, column, value)
        db.session.flush()
        return verification

    return run_with_retry(_op)


def get_verification_summary(verification_id: int, business_unit_id: int) -> dict:
    verification = _get_verification(verification_id, business_unit_id)
    db.session.refresh(verification)
    derived = _derived_counters(verification.id)
    stored = {column: getattr(verification, column) for column in derived}
    total = verification.total_assets
    return {
        "verification": verification.to_dict(),
        "counters": stored,
        "derived": derived,
        "counters_consistent": stored == derived,
        "progress": (verification.scanned_assets / total * 100) if total else 0,
    }


def list_verifications(business_unit_id: int, status: str | None = None) -> list[InventoryVerification]:
    query = db.session.query(InventoryVerification).filter_by(business_unit_id=business_unit_id)
    if status:
        query = query.filter(InventoryVerification.status == status)
    return query.order_by(InventoryVerification.created_at.desc(), InventoryVerification.id.desc()).all()


def list_items(verification_id: int, business_unit_id: int, status: str | None = None) -> list[VerificationItem]:
    _get_verification(verification_id, business_unit_id)
    query = db.session.query(VerificationItem).filter_by(verification_id=verification_id)
    if status:
        query = query.filter(VerificationItem.status == status)
    return query.order_by(VerificationItem.id).all()
