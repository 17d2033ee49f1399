# backend/erms/services/asset_service.py
"""
Asset lifecycle service: intake, deployment, return, damage and disposal.

LIFECYCLE:
1. AVAILABLE: In stock (possibly reserved by a deployment awaiting accounting)
2. DEPLOYED: Assigned to an employee through an active deployment
3. DAMAGED / IN_MAINTENANCE / LOST: Out of circulation
4. DISPOSED: Retired, inactive, terminal

An asset has at most one active deployment, where active means status
PENDING_ACCOUNTING_APPROVAL or DEPLOYED with no returned_date.

Batch operations are all-or-nothing: every id is validated first and a
single bad id raises PartialStateError listing the offenders before any
row is touched.
"""
from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Asset, AssetCategory, AssetDeployment, AssetHistory
from ..signals import publish_approval_views_changed
from ..validation import (
    ValidationError,
    NotFoundError,
    ConflictError,
    InvalidStateError,
    PartialStateError,
    require_text,
    optional_text,
    require_int,
    require_amount_cents,
    require_id_list,
)
from erms.time_utils import utcnow, today, parse_iso_date, first_day_of_next_month
from .audit_service import append_audit_event
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_transmittal_base
from .tenant_service import require_user_in_business_unit

logger = logging.getLogger(__name__)


# Asset status constants
ASSET_AVAILABLE = "AVAILABLE"
ASSET_DEPLOYED = "DEPLOYED"
ASSET_IN_MAINTENANCE = "IN_MAINTENANCE"
ASSET_DAMAGED = "DAMAGED"
ASSET_DISPOSED = "DISPOSED"

# Deployment status constants
DEPLOYMENT_PENDING_APPROVAL = "PENDING_ACCOUNTING_APPROVAL"
DEPLOYMENT_DEPLOYED = "DEPLOYED"
DEPLOYMENT_RETURNED = "RETURNED"
ACTIVE_DEPLOYMENT_STATUSES = (DEPLOYMENT_PENDING_APPROVAL, DEPLOYMENT_DEPLOYED)

# Depreciation methods
STRAIGHT_LINE = "STRAIGHT_LINE"
DECLINING_BALANCE = "DECLINING_BALANCE"
SUM_OF_YEARS_DIGITS = "SUM_OF_YEARS_DIGITS"
UNITS_OF_PRODUCTION = "UNITS_OF_PRODUCTION"
DEPRECIATION_METHODS = (STRAIGHT_LINE, DECLINING_BALANCE, SUM_OF_YEARS_DIGITS, UNITS_OF_PRODUCTION)


def record_history(
    asset: Asset,
    action: str,
    *,
    previous_status: str | None,
    new_status: str | None,
    actor_id: int | None,
    employee_id: int | None = None,
    deployment_id: int | None = None,
    notes: str | None = None,
) -> AssetHistory:
    entry = AssetHistory(
        asset_id=asset.id,
        business_unit_id=asset.business_unit_id,
        action=action,
        previous_status=previous_status,
        new_status=new_status,
        employee_id=employee_id,
        deployment_id=deployment_id,
        notes=notes,
        performed_by_id=actor_id,
        performed_at=utcnow(),
    )
    db.session.add(entry)
    return entry


def active_deployment_filter():
    return db.and_(
        AssetDeployment.status.in_(ACTIVE_DEPLOYMENT_STATUSES),
        AssetDeployment.returned_date.is_(None),
    )


def get_active_deployment(asset_id: int) -> AssetDeployment | None:
    return (
        db.session.query(AssetDeployment)
        .filter(AssetDeployment.asset_id == asset_id, active_deployment_filter())
        .order_by(AssetDeployment.id.desc())
        .first()
    )


def _lock_assets(asset_ids: list[int], business_unit_id: int) -> dict[int, Asset]:
    rows = lock_for_update(
        db.session.query(Asset).filter(
            Asset.id.in_(asset_ids),
            Asset.business_unit_id == business_unit_id,
        )
    ).all()
    return {asset.id: asset for asset in rows}


# =============================================================================
# Intake
# =============================================================================

def create_category(business_unit_id: int, name: str, code: str | None = None) -> AssetCategory:
    name = require_text(name, "name")
    existing = db.session.query(AssetCategory).filter_by(business_unit_id=business_unit_id, name=name).first()
    if existing:
        raise ConflictError("Category already exists")
    category = AssetCategory(business_unit_id=business_unit_id, name=name, code=optional_text(code))
    db.session.add(category)
    db.session.flush()
    return category


def compute_monthly_depreciation(
    method: str | None,
    purchase_price_cents: int,
    salvage_value_cents: int,
    useful_life_months: int | None,
) -> int:
    """Fixed monthly amount for methods that have one; 0 otherwise."""
    if method not in (STRAIGHT_LINE, SUM_OF_YEARS_DIGITS) or not useful_life_months:
        return 0
    return (purchase_price_cents - salvage_value_cents) // useful_life_months


def create_asset(
    *,
    business_unit_id: int,
    item_code: str,
    description: str,
    actor_id: int | None = None,
    category_id: int | None = None,
    serial_number: str | None = None,
    location: str | None = None,
    purchase_date=None,
    purchase_price_cents=0,
    salvage_value_cents=0,
    useful_life_months=None,
    depreciation_method: str | None = None,
    depreciation_rate_bps=None,
    depreciation_start_date=None,
) -> Asset:
    """
    Register a new AVAILABLE asset.

    Book value starts at the purchase price. When a depreciation method is
    given, the first run is due on the first day of the month after the
    start date (purchase date, or today).
    """
    item_code = require_text(item_code, "item_code")
    description = require_text(description, "description")
    price = require_amount_cents(purchase_price_cents or 0, "purchase_price_cents")
    salvage = require_amount_cents(salvage_value_cents or 0, "salvage_value_cents")
    if salvage > price:
        raise ValidationError("salvage_value_cents cannot exceed purchase_price_cents")

    method = optional_text(depreciation_method)
    if method is not None:
        method = method.upper()
        if method not in DEPRECIATION_METHODS:
            raise ValidationError(f"depreciation_method must be one of {', '.join(DEPRECIATION_METHODS)}")

    life = require_int(useful_life_months, "useful_life_months", minimum=1) if useful_life_months is not None else None
    rate_bps = require_int(depreciation_rate_bps, "depreciation_rate_bps", minimum=1) if depreciation_rate_bps is not None else None
    if method in (STRAIGHT_LINE, SUM_OF_YEARS_DIGITS) and life is None:
        raise ValidationError("useful_life_months is required for this depreciation method")
    if method == DECLINING_BALANCE and rate_bps is None:
        raise ValidationError("depreciation_rate_bps is required for declining balance")

    bought = parse_iso_date(purchase_date)
    start = parse_iso_date(depreciation_start_date) or bought or today()

    def _op():
        duplicate = db.session.query(Asset.id).filter_by(business_unit_id=business_unit_id, item_code=item_code).first()
        if duplicate:
            raise ConflictError(f"Asset with item code {item_code} already exists")

        if category_id is not None:
            category = db.session.query(AssetCategory).filter_by(id=category_id).first()
            if not category or category.business_unit_id != business_unit_id:
                raise NotFoundError("Category not found")

        asset = Asset(
            business_unit_id=business_unit_id,
            category_id=category_id,
            item_code=item_code,
            description=description,
            serial_number=optional_text(serial_number),
            location=optional_text(location),
            status=ASSET_AVAILABLE,
            purchase_date=bought,
            purchase_price_cents=price,
            salvage_value_cents=salvage,
            current_book_value_cents=price,
            accumulated_depreciation_cents=0,
            depreciation_method=method,
            useful_life_months=life,
            depreciation_rate_bps=rate_bps,
            monthly_depreciation_cents=compute_monthly_depreciation(method, price, salvage, life),
            next_depreciation_date=first_day_of_next_month(start) if method else None,
            is_fully_depreciated=False,
            is_active=True,
            created_by_id=actor_id,
        )
        db.session.add(asset)
        db.session.flush()

        record_history(asset, "CREATED", previous_status=None, new_status=ASSET_AVAILABLE, actor_id=actor_id)
        db.session.flush()
        return asset

    return run_with_retry(_op)


# =============================================================================
# Deployment
# =============================================================================

def deploy_assets(
    asset_ids,
    employee_id: int,
    business_unit_id: int,
    actor_id: int | None = None,
    deployed_date=None,
    expected_return_date=None,
    deployment_condition: str | None = None,
    notes: str | None = None,
) -> list[AssetDeployment]:
    """
    Deploy a batch of assets to one employee under one transmittal.

    Each deployment gets the transmittal base plus a two-digit suffix
    (HO-202610-001-01, -02, ...). When DEPLOYMENT_REQUIRES_ACCOUNTING_APPROVAL
    is set, deployments wait for accounting and the assets stay AVAILABLE.
    """
    ids = require_id_list(asset_ids, "asset_ids")
    on = parse_iso_date(deployed_date) or today()
    expected_return = parse_iso_date(expected_return_date)
    if expected_return is not None and expected_return < on:
        raise ValidationError("expected_return_date cannot be before deployed_date")
    needs_approval = bool(current_app.config.get("DEPLOYMENT_REQUIRES_ACCOUNTING_APPROVAL"))

    def _op():
        employee = require_user_in_business_unit(employee_id, business_unit_id)
        assets = _lock_assets(ids, business_unit_id)

        reserved = {
            row.asset_id
            for row in db.session.query(AssetDeployment.asset_id).filter(
                AssetDeployment.asset_id.in_(ids), active_deployment_filter()
            )
        }
        invalid = [
            asset_id for asset_id in ids
            if asset_id not in assets
            or assets[asset_id].status != ASSET_AVAILABLE
            or not assets[asset_id].is_active
            or asset_id in reserved
        ]
        if invalid:
            raise PartialStateError(
                f"{len(invalid)} asset(s) are not available for deployment",
                invalid_ids=invalid,
            )

        base = next_transmittal_base(business_unit_id, on)
        deployments = []
        for index, asset_id in enumerate(ids, start=1):
            asset = assets[asset_id]
            deployment = AssetDeployment(
                asset_id=asset.id,
                employee_id=employee.id,
                business_unit_id=business_unit_id,
                transmittal_number=f"{base}-{index:02d}",
                status=DEPLOYMENT_PENDING_APPROVAL if needs_approval else DEPLOYMENT_DEPLOYED,
                deployed_date=on,
                expected_return_date=expected_return,
                deployment_condition=optional_text(deployment_condition),
                deployment_notes=optional_text(notes),
                created_by_id=actor_id,
            )
            db.session.add(deployment)
            db.session.flush()

            previous = asset.status
            if not needs_approval:
                asset.status = ASSET_DEPLOYED
                asset.assigned_to_id = employee.id
                asset.last_assigned_date = on

            record_history(
                asset,
                "DEPLOYED",
                previous_status=previous,
                new_status=asset.status,
                actor_id=actor_id,
                employee_id=employee.id,
                deployment_id=deployment.id,
                notes=f"Transmittal {deployment.transmittal_number}",
            )
            deployments.append(deployment)

        db.session.flush()
        append_audit_event(
            business_unit_id=business_unit_id,
            event_type="asset.deployed",
            event_category="assets",
            entity_type="transmittal",
            entity_id=deployments[0].id,
            actor_user_id=actor_id,
            payload={"transmittal": base, "asset_ids": ids, "employee_id": employee.id, "pending_approval": needs_approval},
        )
        if needs_approval:
            publish_approval_views_changed("asset_service", {business_unit_id}, reason="asset.deployment_pending")
        return deployments

    return run_with_retry(_op)


def approve_deployments(deployment_ids, actor_id: int, business_unit_id: int) -> list[AssetDeployment]:
    """PENDING_ACCOUNTING_APPROVAL -> DEPLOYED for a batch; all or nothing."""
    ids = require_id_list(deployment_ids, "deployment_ids")

    def _op():
        rows = lock_for_update(
            db.session.query(AssetDeployment).filter(
                AssetDeployment.id.in_(ids),
                AssetDeployment.business_unit_id == business_unit_id,
            )
        ).all()
        by_id = {row.id: row for row in rows}
        invalid = [
            dep_id for dep_id in ids
            if dep_id not in by_id or by_id[dep_id].status != DEPLOYMENT_PENDING_APPROVAL
        ]
        if invalid:
            raise PartialStateError(
                f"{len(invalid)} deployment(s) are not awaiting accounting approval",
                invalid_ids=invalid,
            )

        now = utcnow()
        for dep_id in ids:
            deployment = by_id[dep_id]
            deployment.status = DEPLOYMENT_DEPLOYED
            deployment.accounting_approver_id = actor_id
            deployment.accounting_approved_at = now

            asset = deployment.asset
            previous = asset.status
            asset.status = ASSET_DEPLOYED
            asset.assigned_to_id = deployment.employee_id
            asset.last_assigned_date = deployment.deployed_date

            record_history(
                asset,
                "DEPLOYMENT_APPROVED",
                previous_status=previous,
                new_status=ASSET_DEPLOYED,
                actor_id=actor_id,
                employee_id=deployment.employee_id,
                deployment_id=deployment.id,
            )

        db.session.flush()
        publish_approval_views_changed("asset_service", {business_unit_id}, reason="asset.deployment_approved")
        return [by_id[dep_id] for dep_id in ids]

    return run_with_retry(_op)


def return_assets(
    asset_ids,
    returned_date,
    notes: str | None,
    business_unit_id: int,
    actor_id: int | None = None,
    return_condition: str | None = None,
) -> list[Asset]:
    """
    Return deployed assets to stock.

    Every asset must be DEPLOYED with an active deployment; otherwise
    nothing is returned and PartialStateError lists the offending ids.
    On success each deployment is RETURNED, each asset is AVAILABLE and
    unassigned, and one history row is written per asset.
    """
    ids = require_id_list(asset_ids, "asset_ids")
    on = parse_iso_date(returned_date) or today()
    note = optional_text(notes)

    def _op():
        assets = _lock_assets(ids, business_unit_id)
        deployments = {}
        invalid = []
        for asset_id in ids:
            asset = assets.get(asset_id)
            deployment = get_active_deployment(asset_id) if asset is not None else None
            if asset is None or asset.status != ASSET_DEPLOYED or deployment is None:
                invalid.append(asset_id)
            else:
                deployments[asset_id] = deployment
        if invalid:
            raise PartialStateError(
                f"{len(invalid)} asset(s) cannot be returned",
                invalid_ids=invalid,
            )

        for asset_id in ids:
            asset = assets[asset_id]
            deployment = deployments[asset_id]
            employee = deployment.employee

            deployment.status = DEPLOYMENT_RETURNED
            deployment.returned_date = on
            deployment.return_notes = note
            deployment.return_condition = optional_text(return_condition)

            asset.status = ASSET_AVAILABLE
            asset.assigned_to_id = None

            record_history(
                asset,
                "RETURNED",
                previous_status=ASSET_DEPLOYED,
                new_status=ASSET_AVAILABLE,
                actor_id=actor_id,
                employee_id=deployment.employee_id,
                deployment_id=deployment.id,
                notes=f"Returned from {employee.name} ({employee.employee_id}) via transmittal {deployment.transmittal_number}",
            )

        db.session.flush()
        append_audit_event(
            business_unit_id=business_unit_id,
            event_type="asset.returned",
            event_category="assets",
            entity_type="asset",
            entity_id=ids[0],
            actor_user_id=actor_id,
            note=note,
            payload={"asset_ids": ids, "returned_date": on},
        )
        return [assets[asset_id] for asset_id in ids]

    return run_with_retry(_op)


def report_damage(asset_id: int, business_unit_id: int, actor_id: int | None = None, notes: str | None = None) -> Asset:
    """
    Mark an asset DAMAGED. A deployed asset has its active deployment
    closed first with return condition DAMAGED.
    """
    def _op():
        asset = _lock_assets([asset_id], business_unit_id).get(asset_id)
        if asset is None:
            raise NotFoundError("Asset not found")
        if asset.status == ASSET_DISPOSED:
            raise InvalidStateError("Disposed assets cannot be reported damaged")

        previous = asset.status
        deployment = get_active_deployment(asset.id)
        if deployment is not None:
            deployment.status = DEPLOYMENT_RETURNED
            deployment.returned_date = today()
            deployment.return_condition = ASSET_DAMAGED
            deployment.return_notes = optional_text(notes)
            asset.assigned_to_id = None

        asset.status = ASSET_DAMAGED
        record_history(
            asset,
            "DAMAGED",
            previous_status=previous,
            new_status=ASSET_DAMAGED,
            actor_id=actor_id,
            employee_id=deployment.employee_id if deployment else None,
            deployment_id=deployment.id if deployment else None,
            notes=optional_text(notes),
        )
        db.session.flush()
        return asset

    return run_with_retry(_op)


def dispose_assets(asset_ids, business_unit_id: int, actor_id: int | None = None, reason: str | None = None) -> list[Asset]:
    """Retire a batch of assets that are neither deployed nor already disposed."""
    ids = require_id_list(asset_ids, "asset_ids")

    def _op():
        assets = _lock_assets(ids, business_unit_id)
        invalid = [
            asset_id for asset_id in ids
            if asset_id not in assets
            or assets[asset_id].status in (ASSET_DEPLOYED, ASSET_DISPOSED)
            or get_active_deployment(asset_id) is not None
        ]
        if invalid:
            raise PartialStateError(
                f"{len(invalid)} asset(s) cannot be disposed",
                invalid_ids=invalid,
            )

        for asset_id in ids:
            asset = assets[asset_id]
            previous = asset.status
            asset.status = ASSET_DISPOSED
            asset.is_active = False
            asset.next_depreciation_date = None
            record_history(
                asset,
                "DISPOSED",
                previous_status=previous,
                new_status=ASSET_DISPOSED,
                actor_id=actor_id,
                notes=optional_text(reason),
            )

        db.session.flush()
        logger.info("Disposed %d asset(s) in business unit %s", len(ids), business_unit_id)
        return [assets[asset_id] for asset_id in ids]

    return run_with_retry(_op)


# =============================================================================
# Reads
# =============================================================================

def get_asset(asset_id: int, business_unit_id: int) -> Asset:
    asset = db.session.query(Asset).filter_by(id=asset_id, business_unit_id=business_unit_id).first()
    if not asset:
        raise NotFoundError("Asset not found")
    return asset


def list_assets(
    business_unit_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[Asset], int]:
    page = max(1, page)
    per_page = max(1, min(per_page, 100))

    query = db.session.query(Asset).filter(Asset.business_unit_id == business_unit_id)
    if status:
        query = query.filter(Asset.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Asset.item_code.ilike(pattern),
            Asset.description.ilike(pattern),
            Asset.serial_number.ilike(pattern),
        ))

    total = query.count()
    rows = query.order_by(Asset.item_code).offset((page - 1) * per_page).limit(per_page).all()
    return rows, total


def pending_deployment_approvals_query(business_unit_id: int):
    return db.session.query(AssetDeployment).filter(
        AssetDeployment.business_unit_id == business_unit_id,
        AssetDeployment.status == DEPLOYMENT_PENDING_APPROVAL,
    )


def list_deployments(business_unit_id: int, status: str | None = None, employee_id: int | None = None) -> list[AssetDeployment]:
    query = db.session.query(AssetDeployment).filter(AssetDeployment.business_unit_id == business_unit_id)
    if status:
        query = query.filter(AssetDeployment.status == status)
    if employee_id is not None:
        query = query.filter(AssetDeployment.employee_id == employee_id)
    return query.order_by(AssetDeployment.id.desc()).all()
