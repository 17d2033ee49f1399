from __future__ import annotations

from ..extensions import db
from erms.time_utils import to_utc_z, to_iso_date


class AssetCategory(db.Model):
    __tablename__ = "asset_categories"
    __table_args__ = (
        db.UniqueConstraint("business_unit_id", "name", name="uq_asset_categories_bu_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
        }


class Asset(db.Model):
    """
    Depreciable, deployable unit of equipment.

    STATUS: AVAILABLE, DEPLOYED, IN_MAINTENANCE, DAMAGED, DISPOSED, LOST.
    Changes only through deployment, return, damage report, disposal and
    the depreciation run. An asset has at most one active deployment.

    Amounts are integer cents; depreciation_rate_bps is only used by the
    DECLINING_BALANCE method (e.g., 2000 = 20% per year).
    """
    __tablename__ = "assets"
    __table_args__ = (
        db.UniqueConstraint("business_unit_id", "item_code", name="uq_assets_bu_item_code"),
        db.Index("ix_assets_bu_status", "business_unit_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("asset_categories.id"), nullable=True, index=True)

    item_code = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    serial_number = db.Column(db.String(128), nullable=True)
    location = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="AVAILABLE", index=True)

    purchase_date = db.Column(db.Date, nullable=True)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    salvage_value_cents = db.Column(db.Integer, nullable=False, default=0)
    current_book_value_cents = db.Column(db.Integer, nullable=False, default=0)
    accumulated_depreciation_cents = db.Column(db.Integer, nullable=False, default=0)

    # Depreciation schedule
    depreciation_method = db.Column(db.String(32), nullable=True)
    useful_life_months = db.Column(db.Integer, nullable=True)
    depreciation_rate_bps = db.Column(db.Integer, nullable=True)
    monthly_depreciation_cents = db.Column(db.Integer, nullable=False, default=0)
    next_depreciation_date = db.Column(db.Date, nullable=True, index=True)
    last_depreciation_date = db.Column(db.Date, nullable=True)
    is_fully_depreciated = db.Column(db.Boolean, nullable=False, default=False)

    # Current assignment
    assigned_to_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    last_assigned_date = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("AssetCategory", backref=db.backref("assets", lazy=True))
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id])

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Asset id={self.id} {self.item_code} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "category_id": self.category_id,
            "item_code": self.item_code,
            "description": self.description,
            "serial_number": self.serial_number,
            "location": self.location,
            "status": self.status,
            "purchase_date": to_iso_date(self.purchase_date),
            "purchase_price_cents": self.purchase_price_cents,
            "salvage_value_cents": self.salvage_value_cents,
            "current_book_value_cents": self.current_book_value_cents,
            "accumulated_depreciation_cents": self.accumulated_depreciation_cents,
            "depreciation_method": self.depreciation_method,
            "useful_life_months": self.useful_life_months,
            "depreciation_rate_bps": self.depreciation_rate_bps,
            "monthly_depreciation_cents": self.monthly_depreciation_cents,
            "next_depreciation_date": to_iso_date(self.next_depreciation_date),
            "last_depreciation_date": to_iso_date(self.last_depreciation_date),
            "is_fully_depreciated": self.is_fully_depreciated,
            "assigned_to_id": self.assigned_to_id,
            "last_assigned_date": to_iso_date(self.last_assigned_date),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class AssetDeployment(db.Model):
    """
    Asset issued to an employee under a transmittal number.

    LIFECYCLE:
    1. PENDING_ACCOUNTING_APPROVAL: created, asset reserved but still in stock
    2. DEPLOYED: asset is with the employee
    3. RETURNED: asset is back (returned_date set)
    """
    __tablename__ = "asset_deployments"
    __table_args__ = (
        db.Index("ix_asset_deployments_asset_status", "asset_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)

    transmittal_number = db.Column(db.String(64), nullable=False, unique=True)
    status = db.Column(db.String(32), nullable=False, index=True)

    deployed_date = db.Column(db.Date, nullable=True)
    expected_return_date = db.Column(db.Date, nullable=True)
    returned_date = db.Column(db.Date, nullable=True)

    deployment_condition = db.Column(db.String(64), nullable=True)
    return_condition = db.Column(db.String(64), nullable=True)
    deployment_notes = db.Column(db.Text, nullable=True)
    return_notes = db.Column(db.Text, nullable=True)

    accounting_approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    accounting_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    asset = db.relationship("Asset", backref=db.backref("deployments", lazy=True))
    employee = db.relationship("User", foreign_keys=[employee_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "employee_id": self.employee_id,
            "business_unit_id": self.business_unit_id,
            "transmittal_number": self.transmittal_number,
            "status": self.status,
            "deployed_date": to_iso_date(self.deployed_date),
            "expected_return_date": to_iso_date(self.expected_return_date),
            "returned_date": to_iso_date(self.returned_date),
            "deployment_condition": self.deployment_condition,
            "return_condition": self.return_condition,
            "deployment_notes": self.deployment_notes,
            "return_notes": self.return_notes,
            "accounting_approver_id": self.accounting_approver_id,
            "accounting_approved_at": to_utc_z(self.accounting_approved_at),
            "created_at": to_utc_z(self.created_at),
        }


class AssetHistory(db.Model):
    """Per-asset audit row. Append-only."""
    __tablename__ = "asset_history"
    __table_args__ = (
        db.Index("ix_asset_history_asset_performed", "asset_id", "performed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)

    action = db.Column(db.String(32), nullable=False)  # CREATED, DEPLOYED, RETURNED, DAMAGED, DISPOSED, ...
    previous_status = db.Column(db.String(16), nullable=True)
    new_status = db.Column(db.String(16), nullable=True)

    employee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    deployment_id = db.Column(db.Integer, db.ForeignKey("asset_deployments.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    performed_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    performed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    asset = db.relationship("Asset", backref=db.backref("history", lazy=True, order_by="AssetHistory.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "business_unit_id": self.business_unit_id,
            "action": self.action,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "employee_id": self.employee_id,
            "deployment_id": self.deployment_id,
            "notes": self.notes,
            "performed_by_id": self.performed_by_id,
            "performed_at": to_utc_z(self.performed_at),
        }


class AssetDepreciation(db.Model):
    """One depreciation posting for one asset and period."""
    __tablename__ = "asset_depreciations"
    __table_args__ = (
        db.UniqueConstraint("asset_id", "depreciation_date", name="uq_asset_depreciations_asset_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)

    depreciation_date = db.Column(db.Date, nullable=False)
    method = db.Column(db.String(32), nullable=False)
    book_value_start_cents = db.Column(db.Integer, nullable=False)
    depreciation_amount_cents = db.Column(db.Integer, nullable=False)
    book_value_end_cents = db.Column(db.Integer, nullable=False)
    accumulated_depreciation_cents = db.Column(db.Integer, nullable=False)

    calculated_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    asset = db.relationship("Asset", backref=db.backref("depreciations", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "business_unit_id": self.business_unit_id,
            "depreciation_date": to_iso_date(self.depreciation_date),
            "method": self.method,
            "book_value_start_cents": self.book_value_start_cents,
            "depreciation_amount_cents": self.depreciation_amount_cents,
            "book_value_end_cents": self.book_value_end_cents,
            "accumulated_depreciation_cents": self.accumulated_depreciation_cents,
            "calculated_by_id": self.calculated_by_id,
            "created_at": to_utc_z(self.created_at),
        }
