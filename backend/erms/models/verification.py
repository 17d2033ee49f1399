from __future__ import annotations

from ..extensions import db
from erms.time_utils import to_utc_z, to_iso_date


class InventoryVerification(db.Model):
    """
    Physical verification campaign over a fixed snapshot of assets.

    LIFECYCLE: PLANNED -> IN_PROGRESS -> COMPLETED, or CANCELLED.

    The counters are running totals of the items' terminal statuses. They
    are only ever changed by an atomic SQL increment in the same
    transaction as the item write (see verification_service).
    """
    __tablename__ = "inventory_verifications"
    __table_args__ = (
        db.Index("ix_inventory_verifications_bu_status", "business_unit_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PLANNED", index=True)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    total_assets = db.Column(db.Integer, nullable=False, default=0)
    scanned_assets = db.Column(db.Integer, nullable=False, default=0)
    verified_assets = db.Column(db.Integer, nullable=False, default=0)
    discrepancy_assets = db.Column(db.Integer, nullable=False, default=0)
    not_found_assets = db.Column(db.Integer, nullable=False, default=0)

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    items = db.relationship(
        "VerificationItem",
        backref="verification",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="VerificationItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "start_date": to_iso_date(self.start_date),
            "end_date": to_iso_date(self.end_date),
            "total_assets": self.total_assets,
            "scanned_assets": self.scanned_assets,
            "verified_assets": self.verified_assets,
            "discrepancy_assets": self.discrepancy_assets,
            "not_found_assets": self.not_found_assets,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
        }


class VerificationItem(db.Model):
    """Expected-vs-actual reconciliation record for one asset."""
    __tablename__ = "verification_items"
    __table_args__ = (
        db.UniqueConstraint("verification_id", "asset_id", name="uq_verification_items_asset"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    verification_id = db.Column(db.Integer, db.ForeignKey("inventory_verifications.id"), nullable=False, index=True)
    asset_id = db.Column(db.Integer, db.ForeignKey("assets.id"), nullable=False, index=True)

    # PENDING, VERIFIED, DISCREPANCY, NOT_FOUND
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)

    # Snapshot taken when the campaign was created
    expected_location = db.Column(db.String(128), nullable=False, default="Unknown")
    expected_assignee = db.Column(db.String(32), nullable=True)  # employee code

    scanned_code = db.Column(db.String(64), nullable=True)
    actual_location = db.Column(db.String(128), nullable=True)
    actual_assignee = db.Column(db.String(32), nullable=True)
    discrepancy_type = db.Column(db.String(32), nullable=True)  # CODE_MISMATCH, LOCATION_MISMATCH, ...
    notes = db.Column(db.Text, nullable=True)

    scanned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    scanned_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    asset = db.relationship("Asset")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "verification_id": self.verification_id,
            "asset_id": self.asset_id,
            "status": self.status,
            "expected_location": self.expected_location,
            "expected_assignee": self.expected_assignee,
            "scanned_code": self.scanned_code,
            "actual_location": self.actual_location,
            "actual_assignee": self.actual_assignee,
            "discrepancy_type": self.discrepancy_type,
            "notes": self.notes,
            "scanned_at": to_utc_z(self.scanned_at),
            "scanned_by_id": self.scanned_by_id,
        }
