"""
Pytest fixtures for ERMS backend tests.

Provides the test database, two business units with a staff of every role,
and helpers for logging in through the API.
"""

import pytest

from erms import create_app
from erms.extensions import db
from erms.models import BusinessUnit, Department, User
from erms.models.auth import (
    ROLE_ADMIN,
    ROLE_HR,
    ROLE_MANAGER,
    ROLE_ACCTG,
    ROLE_PURCHASER,
    ROLE_USER,
)
from erms.services import counter_service, permission_service
from erms.services.auth_service import hash_password


PASSWORD = "Password123!"

_password_hash = None


def _hashed_password() -> str:
    # bcrypt at cost 12 is slow; every fixture user shares one hash
    global _password_hash
    if _password_hash is None:
        _password_hash = hash_password(PASSWORD)
    return _password_hash


def make_user(business_unit, employee_id, role=ROLE_USER, **fields):
    """Add an active employee with the shared test password (flushed, not committed)."""
    user = User(
        employee_id=employee_id,
        name=fields.pop("name", f"{role.title()} {employee_id}"),
        email=fields.pop("email", f"{employee_id.lower()}@example.com"),
        password_hash=_hashed_password(),
        role=role,
        business_unit_id=business_unit.id,
        is_active=True,
        **fields,
    )
    db.session.add(user)
    db.session.flush()
    return user


def grant(user, code, granted_by=None):
    """Give a user an override-only capability and commit."""
    permission_service.grant_permission_override(
        user_id=user.id,
        permission_code=code,
        granted_by_user_id=granted_by.id if granted_by else None,
        override_type="GRANT",
        reason="test",
    )
    db.session.commit()


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'COUNTER_CACHE_TTL_SECONDS': 0,
        'DEPLOYMENT_REQUIRES_ACCOUNTING_APPROVAL': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        counter_service.clear_cache()

        yield db.session

        db.session.rollback()
        counter_service.clear_cache()


@pytest.fixture
def head_office(db_session):
    bu = BusinessUnit(name="Head Office", code="HO", is_active=True)
    db_session.add(bu)
    db_session.commit()
    return bu


@pytest.fixture
def branch(db_session):
    bu = BusinessUnit(name="North Branch", code="NB", is_active=True)
    db_session.add(bu)
    db_session.commit()
    return bu


@pytest.fixture
def staff(db_session, head_office):
    """
    Head office staff, one per role, plus:
    - requester: a USER whose approver is the manager
    - rdh_requester: a USER flagged as RDH/MRS
    - rec_approver / final_approver: plain USERs assigned as approvers
    A department defaults to rec_approver and final_approver.
    """
    admin = make_user(head_office, "E-ADMIN", ROLE_ADMIN)
    hr = make_user(head_office, "E-HR", ROLE_HR)
    manager = make_user(head_office, "E-MGR", ROLE_MANAGER)
    acctg = make_user(head_office, "E-ACCTG", ROLE_ACCTG)
    purchaser = make_user(head_office, "E-PUR", ROLE_PURCHASER)
    rec_approver = make_user(head_office, "E-REC", ROLE_USER)
    final_approver = make_user(head_office, "E-FINAL", ROLE_USER)

    department = Department(
        business_unit_id=head_office.id,
        name="Operations",
        code="OPS",
        default_rec_approver_id=rec_approver.id,
        default_final_approver_id=final_approver.id,
    )
    db_session.add(department)
    db_session.flush()

    requester = make_user(
        head_office, "E-1001", ROLE_USER,
        name="Juan Dela Cruz", department_id=department.id, approver_id=manager.id,
    )
    rdh_requester = make_user(
        head_office, "E-1002", ROLE_USER,
        name="Maria Santos", department_id=department.id, approver_id=manager.id, is_rdh_mrs=True,
    )
    db_session.commit()

    return {
        "admin": admin,
        "hr": hr,
        "manager": manager,
        "acctg": acctg,
        "purchaser": purchaser,
        "rec_approver": rec_approver,
        "final_approver": final_approver,
        "requester": requester,
        "rdh_requester": rdh_requester,
        "department": department,
    }


@pytest.fixture
def branch_staff(db_session, branch):
    admin = make_user(branch, "B-ADMIN", ROLE_ADMIN)
    hr = make_user(branch, "B-HR", ROLE_HR)
    manager = make_user(branch, "B-MGR", ROLE_MANAGER)
    requester = make_user(branch, "B-1001", ROLE_USER, approver_id=manager.id)
    db_session.commit()
    return {"admin": admin, "hr": hr, "manager": manager, "requester": requester}


def get_auth_token(client, employee_id, password=PASSWORD):
    """Helper to get authentication token."""
    response = client.post('/api/auth/login', json={
        'employee_id': employee_id,
        'password': password,
    })
    if response.status_code == 200:
        return response.get_json()['data']['token']
    return None


def auth_headers(token):
    """Helper to create authorization headers."""
    return {'Authorization': f'Bearer {token}'}
