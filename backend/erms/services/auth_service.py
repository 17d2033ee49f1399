# Overview: Service-layer operations for auth; employee accounts and password verification.

"""
Authentication Service

Every action must be attributable to an employee. Passwords are hashed with
bcrypt (cost factor 12) and must meet strength requirements.

Employees log in with either their employee_id code or their email.
"""

from __future__ import annotations

import re

import bcrypt

from ..extensions import db
from ..models import User, BusinessUnit, Department
from ..models.auth import ROLES, ROLE_USER
from ..validation import ValidationError, NotFoundError, ConflictError
from erms.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter and one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never verify."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(
    *,
    employee_id: str,
    name: str,
    email: str,
    password: str,
    business_unit_id: int,
    role: str = ROLE_USER,
    department_id: int | None = None,
    approver_id: int | None = None,
    is_rdh_mrs: bool = False,
) -> User:
    """
    Create an employee account.

    Raises:
        NotFoundError: business unit, department or approver missing
        ValidationError: bad role, inactive business unit, weak password,
            or department/approver from another business unit
        ConflictError: employee_id or email already taken
    """
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")

    bu = db.session.query(BusinessUnit).filter_by(id=business_unit_id).first()
    if not bu:
        raise NotFoundError("Business unit not found")
    if not bu.is_active:
        raise ValidationError("Business unit is not active")

    existing = db.session.query(User).filter(
        db.or_(User.employee_id == employee_id, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Employee ID or email already exists")

    if department_id is not None:
        department = db.session.query(Department).filter_by(id=department_id).first()
        if not department:
            raise NotFoundError("Department not found")
        if department.business_unit_id != business_unit_id:
            raise ValidationError("Department does not belong to this business unit")

    if approver_id is not None:
        approver = db.session.query(User).filter_by(id=approver_id).first()
        if not approver:
            raise NotFoundError("Approver not found")

    user = User(
        employee_id=employee_id,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        business_unit_id=business_unit_id,
        department_id=department_id,
        approver_id=approver_id,
        is_rdh_mrs=is_rdh_mrs,
    )

    db.session.add(user)
    db.session.flush()
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate by employee_id or email.

    Returns the User when the credentials are valid and both the employee
    and their business unit are active; None otherwise. Updates
    last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.or_(User.employee_id == identifier, User.email == identifier),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    bu = db.session.query(BusinessUnit).filter_by(id=user.business_unit_id).first()
    if not bu or not bu.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
