# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/erms/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--business-unit "Head Office"] [--code HO]
#   Idempotent bootstrap: default business unit, department and admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--business-unit-id 1]
# - python -m flask users create --business-unit-id 1 --employee-id E-001 --name "Ana Cruz" --email ana@erms.local --role MANAGER
#
# Capability inspection/overrides:
# - python -m flask perms list [--role ACCTG] [--category ASSETS]
# - python -m flask perms check E-001 BUDGET_APPROVE
# - python -m flask perms grant E-001 STORE_USE_REVIEW --reason "Store reviewer"
# - python -m flask perms deny E-001 EXPORT_REPORTS
# - python -m flask perms revoke E-001 STORE_USE_REVIEW
#
# Depreciation:
# - python -m flask depreciation due --business-unit-id 1 [--as-of 2025-01-31]
# - python -m flask depreciation run --business-unit-id 1 [--as-of 2025-01-31]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import BusinessUnit, Department, User
from .models.auth import ROLES, ROLE_ADMIN
from .permissions import PERMISSION_DEFINITIONS, get_role_permissions
from .services.auth_service import create_user, PasswordValidationError
from .services import depreciation_service, permission_service
from .validation import ActionError


def _find_user(employee_id: str) -> User | None:
    return db.session.query(User).filter_by(employee_id=employee_id).first()


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--business-unit', 'bu_name', default='Head Office', help='Business unit name')
@click.option('--code', 'bu_code', default='HO', help='Business unit code (used in transmittal numbers)')
@with_appcontext
def init_system(bu_name, bu_code):
    """
    Initialize ERMS: default business unit, department and admin user.

    Creates:
    - Default business unit (if none exists)
    - "General" department
    - Admin user: employee id "admin", password "Password123!"

    The admin account is in QUEUE_EXCLUDED_EMPLOYEE_IDS by default, so its
    own requests never show up in approval queues.
    """
    click.echo("START Initializing ERMS...")

    db.create_all()

    bu = db.session.query(BusinessUnit).first()
    if not bu:
        bu = BusinessUnit(name=bu_name, code=bu_code, is_active=True)
        db.session.add(bu)
        db.session.commit()
        click.echo(f"PASS Created business unit: {bu.name} (ID: {bu.id}, Code: {bu.code})")
    else:
        click.echo(f"PASS Using existing business unit: {bu.name} (ID: {bu.id})")

    department = db.session.query(Department).filter_by(business_unit_id=bu.id).first()
    if not department:
        department = Department(business_unit_id=bu.id, name="General", code="GEN")
        db.session.add(department)
        db.session.commit()
        click.echo(f"PASS Created department: {department.name} (ID: {department.id})")

    if _find_user("admin"):
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        try:
            create_user(
                employee_id="admin",
                name="System Administrator",
                email="admin@erms.local",
                password="Password123!",
                business_unit_id=bu.id,
                role=ROLE_ADMIN,
                department_id=department.id,
            )
            db.session.commit()
            click.echo("PASS Created user: admin (admin@erms.local) with role 'ADMIN'")
        except ActionError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create admin: {str(e)}")

    click.echo("\n" + "=" * 60)
    click.echo("DONE ERMS Initialized Successfully!")
    click.echo("=" * 60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin -> admin@erms.local / Password123!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--business-unit-id', type=int, help='Business unit ID (uses default if not specified)')
@click.option('--employee-id', prompt=True, help='Employee code')
@click.option('--name', prompt=True, help='Full name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@click.option('--department-id', type=int, help='Department ID')
@click.option('--approver-id', type=int, help='Direct approver (user ID) for leave and overtime')
@click.option('--rdh-mrs', is_flag=True, help='Route store-use requests through budget approval')
@with_appcontext
def create_user_cli(business_unit_id, employee_id, name, email, password, role, department_id, approver_id, rdh_mrs):
    """
    Create a new employee account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    if business_unit_id:
        bu = db.session.query(BusinessUnit).filter_by(id=business_unit_id).first()
    else:
        bu = db.session.query(BusinessUnit).first()
    if not bu:
        click.echo("FAIL Business unit not found. Run 'python -m flask system init' first.")
        return

    try:
        user = create_user(
            employee_id=employee_id,
            name=name,
            email=email,
            password=password,
            business_unit_id=bu.id,
            role=role,
            department_id=department_id,
            approver_id=approver_id,
            is_rdh_mrs=rdh_mrs,
        )
        db.session.commit()
        click.echo(f"PASS Created user: {user.employee_id} ({user.email}) with role '{role}'")
        click.echo(f"     Business unit: {bu.name} (ID: {bu.id})")
    except PasswordValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
    except ActionError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@click.option('--business-unit-id', type=int, help='Filter by business unit')
@with_appcontext
def list_users(business_unit_id):
    """List users with roles and active status."""
    query = db.session.query(User)
    if business_unit_id:
        query = query.filter_by(business_unit_id=business_unit_id)
    users = query.order_by(User.employee_id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Employee':<12} {'Name':<28} {'Role':<10} {'BU':<5} {'RDH/MRS':<8} {'Active'}")
    click.echo("=" * 90)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.employee_id:<12} {user.name[:27]:<28} {user.role:<10} "
            f"{user.business_unit_id:<5} {'Yes' if user.is_rdh_mrs else 'No':<8} {'Yes' if user.is_active else 'No'}"
        )
    click.echo("=" * 90 + "\n")


# =============================================================================
# CAPABILITY COMMANDS
# =============================================================================

@click.group('perms')
def perms_group():
    """Capability inspection and per-user override commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(list(ROLES)), help='Only codes the role has by default')
@click.option('--category', help='Filter by category (e.g. ASSETS)')
@with_appcontext
def list_perms(role, category):
    """List capability codes."""
    role_codes = get_role_permissions(role) if role else None
    for code, name, description, perm_category in PERMISSION_DEFINITIONS:
        if category and perm_category != category:
            continue
        if role_codes is not None and code not in role_codes:
            continue
        click.echo(f"{code:<28} {perm_category:<16} {name}")


@perms_group.command('check')
@click.argument('employee_id')
@click.argument('permission_code')
@with_appcontext
def check_perm(employee_id, permission_code):
    """Check whether an employee holds a capability."""
    user = _find_user(employee_id)
    if not user:
        click.echo(f"FAIL User '{employee_id}' not found")
        return
    has_it = permission_service.user_has_permission(user.id, permission_code)
    click.echo(f"{'PASS' if has_it else 'FAIL'} {employee_id} {'has' if has_it else 'lacks'} {permission_code}")


def _set_override(employee_id, permission_code, override_type, reason):
    user = _find_user(employee_id)
    if not user:
        click.echo(f"FAIL User '{employee_id}' not found")
        return
    try:
        permission_service.grant_permission_override(
            user_id=user.id,
            permission_code=permission_code,
            granted_by_user_id=None,
            override_type=override_type,
            reason=reason,
        )
        db.session.commit()
    except ActionError as e:
        db.session.rollback()
        click.echo(f"FAIL {str(e)}")
        return
    permission_service.log_security_event(
        user_id=user.id,
        event_type="PERMISSION_OVERRIDE_CHANGED",
        success=True,
        resource="cli",
        action=f"{override_type}:{permission_code}",
        reason=reason,
        business_unit_id=user.business_unit_id,
    )
    click.echo(f"PASS {override_type} {permission_code} for {employee_id}")


@perms_group.command('grant')
@click.argument('employee_id')
@click.argument('permission_code')
@click.option('--reason', help='Why the grant was made')
@with_appcontext
def grant_perm(employee_id, permission_code, reason):
    """Grant a capability to one employee."""
    _set_override(employee_id, permission_code, permission_service.OVERRIDE_GRANT, reason)


@perms_group.command('deny')
@click.argument('employee_id')
@click.argument('permission_code')
@click.option('--reason', help='Why the capability was withdrawn')
@with_appcontext
def deny_perm(employee_id, permission_code, reason):
    """Withdraw a role capability from one employee."""
    _set_override(employee_id, permission_code, permission_service.OVERRIDE_DENY, reason)


@perms_group.command('revoke')
@click.argument('employee_id')
@click.argument('permission_code')
@with_appcontext
def revoke_perm(employee_id, permission_code):
    """Remove an employee's override so the role default applies again."""
    user = _find_user(employee_id)
    if not user:
        click.echo(f"FAIL User '{employee_id}' not found")
        return
    override = permission_service.revoke_permission_override(
        user_id=user.id,
        permission_code=permission_code,
        revoked_by_user_id=None,
    )
    if not override:
        click.echo(f"WARN  No active override of {permission_code} for {employee_id}")
        return
    db.session.commit()
    click.echo(f"PASS Revoked {permission_code} override for {employee_id}")


# =============================================================================
# DEPRECIATION COMMANDS
# =============================================================================

@click.group('depreciation')
def depreciation_group():
    """Monthly asset depreciation."""


@depreciation_group.command('due')
@click.option('--business-unit-id', type=int, required=True, help='Business unit ID')
@click.option('--as-of', help='Business date (YYYY-MM-DD, default today)')
@with_appcontext
def depreciation_due(business_unit_id, as_of):
    """List assets due for depreciation."""
    assets = depreciation_service.get_assets_due_for_depreciation(business_unit_id, as_of)
    if not assets:
        click.echo("No assets due.")
        return
    for asset in assets:
        click.echo(
            f"{asset.item_code:<16} {asset.depreciation_method:<22} "
            f"book={asset.current_book_value_cents:<12} next={asset.next_depreciation_date}"
        )
    click.echo(f"\n{len(assets)} asset(s) due")


@depreciation_group.command('run')
@click.option('--business-unit-id', type=int, required=True, help='Business unit ID')
@click.option('--as-of', help='Business date (YYYY-MM-DD, default today)')
@with_appcontext
def depreciation_run(business_unit_id, as_of):
    """Depreciate every asset due on or before --as-of."""
    try:
        entries = depreciation_service.run_due_depreciation(business_unit_id, as_of)
        db.session.commit()
    except ActionError as e:
        db.session.rollback()
        click.echo(f"FAIL {str(e)}")
        return

    total = sum(entry.depreciation_amount_cents for entry in entries)
    click.echo(f"PASS Depreciated {len(entries)} asset(s), total {total} cents")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(depreciation_group)
