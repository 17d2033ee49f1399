from __future__ import annotations

from ..extensions import db
from erms.time_utils import to_utc_z


class BusinessUnit(db.Model):
    """
    Multi-tenant root: every tenant is a business unit.

    All employees, requests, assets and verifications belong to exactly one
    business unit. Queries must be scoped by business_unit_id; the only
    sanctioned crossing is the CROSS_UNIT_APPROVE capability.
    """
    __tablename__ = "business_units"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)  # Used in transmittal numbers

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<BusinessUnit id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Department(db.Model):
    """
    Department within a business unit.

    Default approvers are copied onto new material requests that do not
    name their own recommending/final approver.
    """
    __tablename__ = "departments"
    __table_args__ = (
        db.UniqueConstraint("business_unit_id", "name", name="uq_departments_bu_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True)

    default_rec_approver_id = db.Column(
        db.Integer, db.ForeignKey("users.id", use_alter=True, name="fk_departments_default_rec_approver"), nullable=True
    )
    default_final_approver_id = db.Column(
        db.Integer, db.ForeignKey("users.id", use_alter=True, name="fk_departments_default_final_approver"), nullable=True
    )

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business_unit = db.relationship("BusinessUnit", backref=db.backref("departments", lazy=True))
    default_rec_approver = db.relationship("User", foreign_keys=[default_rec_approver_id])
    default_final_approver = db.relationship("User", foreign_keys=[default_final_approver_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_unit_id": self.business_unit_id,
            "name": self.name,
            "code": self.code,
            "default_rec_approver_id": self.default_rec_approver_id,
            "default_final_approver_id": self.default_final_approver_id,
            "created_at": to_utc_z(self.created_at),
        }
