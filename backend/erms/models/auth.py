from __future__ import annotations

from ..extensions import db
from erms.time_utils import to_utc_z


# Roles (single role per employee; capabilities come from erms.permissions.roles)
ROLE_ADMIN = "ADMIN"
ROLE_HR = "HR"
ROLE_MANAGER = "MANAGER"
ROLE_ACCTG = "ACCTG"
ROLE_PURCHASER = "PURCHASER"
ROLE_USER = "USER"

ROLES = (ROLE_ADMIN, ROLE_HR, ROLE_MANAGER, ROLE_ACCTG, ROLE_PURCHASER, ROLE_USER)


class User(db.Model):
    """
    Employee account for authentication and attribution.

    employee_id is the human-facing code ("C-002"); id is what every
    foreign key references. approver_id points at the employee's direct
    manager, who acts on the manager stage of leave and overtime.

    is_rdh_mrs routes the employee's store-use material requests through
    budget approval after review.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_bu_role", "business_unit_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False, default=ROLE_USER)

    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    is_rdh_mrs = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    business_unit = db.relationship("BusinessUnit", backref=db.backref("users", lazy=True))
    department = db.relationship("Department", foreign_keys=[department_id], backref=db.backref("members", lazy=True))
    approver = db.relationship("User", remote_side=[id], backref=db.backref("direct_reports", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} employee_id={self.employee_id!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employee_id": self.employee_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "business_unit_id": self.business_unit_id,
            "department_id": self.department_id,
            "approver_id": self.approver_id,
            "is_rdh_mrs": self.is_rdh_mrs,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Hashed bearer session with the business unit captured at login.

    SECURITY NOTES:
    - Tokens stored hashed (SHA-256), never in plaintext
    - 24-hour absolute timeout, 2-hour idle timeout
    - business_unit_id is immutable for the session lifetime
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    business_unit_id = db.Column(db.Integer, db.ForeignKey("business_units.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))
    business_unit = db.relationship("BusinessUnit")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "business_unit_id": self.business_unit_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }


class UserPermissionOverride(db.Model):
    """
    Per-user capability grant or denial.

    This is the explicit-grant half of the capability table; role defaults
    live in erms.permissions.roles. DENY wins over the role default, and
    protected codes cannot be overridden at all.
    """
    __tablename__ = "user_permission_overrides"
    __table_args__ = (
        db.UniqueConstraint("user_id", "permission_code", name="uq_user_perm_override"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    permission_code = db.Column(db.String(64), nullable=False, index=True)

    # GRANT or DENY
    override_type = db.Column(db.String(8), nullable=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reason = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    revoked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("permission_overrides", lazy=True))
    granted_by = db.relationship("User", foreign_keys=[granted_by_user_id])
    revoked_by = db.relationship("User", foreign_keys=[revoked_by_user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "permission_code": self.permission_code,
            "override_type": self.override_type,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
            "reason": self.reason,
            "is_active": self.is_active,
            "revoked_by_user_id": self.revoked_by_user_id,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
