# Overview: Pytest coverage for role capabilities and per-user overrides.

"""
Capability tests.

Verifies:
- Role defaults
- GRANT/DENY overrides and their revocation
- Protected capabilities cannot be overridden
- Denials are written to the security log
"""

import pytest

from erms.extensions import db
from erms.models import SecurityEvent
from erms.permissions import PERMISSION_DEFINITIONS, get_role_permissions
from erms.services import permission_service
from erms.validation import NotFoundError, UnauthorizedError, ValidationError


class TestRoleDefaults:
    def test_every_role_can_file(self):
        for role in ("ADMIN", "HR", "MANAGER", "ACCTG", "PURCHASER", "USER"):
            perms = get_role_permissions(role)
            assert "CREATE_MATERIAL_REQUEST" in perms
            assert "FILE_TIME_OFF" in perms

    def test_override_only_capabilities_not_in_any_role(self):
        for role in ("ADMIN", "HR", "MANAGER", "ACCTG", "PURCHASER", "USER"):
            perms = get_role_permissions(role)
            assert not perms & {"STORE_USE_REVIEW", "CROSS_UNIT_APPROVE", "HIDDEN_FROM_QUEUES"}

    def test_role_specific(self):
        assert "BUDGET_APPROVE" in get_role_permissions("ACCTG")
        assert "SERVE_MATERIAL_REQUESTS" in get_role_permissions("PURCHASER")
        assert "APPROVE_TIME_OFF" in get_role_permissions("HR")
        assert "MANAGE_PERMISSIONS" in get_role_permissions("ADMIN")
        assert "APPROVE_TIME_OFF" not in get_role_permissions("USER")

    def test_unknown_role(self):
        assert get_role_permissions("JANITOR") == set()
        assert get_role_permissions(None) == set()

    def test_returned_set_is_a_copy(self):
        get_role_permissions("USER").add("MANAGE_USERS")
        assert "MANAGE_USERS" not in get_role_permissions("USER")

    def test_definitions_are_unique(self):
        codes = [code for code, _name, _desc, _category in PERMISSION_DEFINITIONS]
        assert len(codes) == len(set(codes))


class TestOverrides:
    def test_grant_and_revoke(self, staff):
        user = staff["requester"]
        permission_service.grant_permission_override(
            user_id=user.id, permission_code="STORE_USE_REVIEW",
            granted_by_user_id=staff["admin"].id, override_type="GRANT",
        )
        db.session.commit()
        assert permission_service.user_has_permission(user.id, "STORE_USE_REVIEW")

        revoked = permission_service.revoke_permission_override(
            user_id=user.id, permission_code="STORE_USE_REVIEW", revoked_by_user_id=staff["admin"].id,
        )
        db.session.commit()
        assert revoked.is_active is False
        assert not permission_service.user_has_permission(user.id, "STORE_USE_REVIEW")
        assert permission_service.revoke_permission_override(
            user_id=user.id, permission_code="STORE_USE_REVIEW", revoked_by_user_id=None,
        ) is None

    def test_deny_removes_role_default(self, staff):
        acctg = staff["acctg"]
        permission_service.grant_permission_override(
            user_id=acctg.id, permission_code="BUDGET_APPROVE",
            granted_by_user_id=staff["admin"].id, override_type="DENY", reason="On leave",
        )
        db.session.commit()
        assert not permission_service.user_has_permission(acctg.id, "BUDGET_APPROVE")
        assert permission_service.user_has_permission(acctg.id, "POST_MATERIAL_REQUESTS")

    def test_override_row_is_reused(self, staff):
        user = staff["requester"]
        for kind in ("GRANT", "DENY", "GRANT"):
            permission_service.grant_permission_override(
                user_id=user.id, permission_code="EXPORT_REPORTS", granted_by_user_id=None, override_type=kind,
            )
        db.session.commit()
        overrides = permission_service.list_user_overrides(user.id, include_revoked=True)
        assert len(overrides) == 1
        assert overrides[0].override_type == "GRANT"

    def test_protected_capability(self, staff):
        with pytest.raises(ValidationError):
            permission_service.grant_permission_override(
                user_id=staff["admin"].id, permission_code="MANAGE_PERMISSIONS",
                granted_by_user_id=None, override_type="DENY",
            )

    @pytest.mark.parametrize("code,kind", [("NOT_A_CODE", "GRANT"), ("EXPORT_REPORTS", "MAYBE")])
    def test_invalid_input(self, staff, code, kind):
        with pytest.raises(ValidationError):
            permission_service.grant_permission_override(
                user_id=staff["requester"].id, permission_code=code, granted_by_user_id=None, override_type=kind,
            )

    def test_unknown_user(self, staff):
        with pytest.raises(NotFoundError):
            permission_service.grant_permission_override(
                user_id=999999, permission_code="EXPORT_REPORTS", granted_by_user_id=None, override_type="GRANT",
            )

    def test_inactive_user_has_nothing(self, staff):
        user = staff["admin"]
        user.is_active = False
        db.session.commit()
        assert permission_service.get_user_permissions(user.id) == set()


class TestDenialLogging:
    def test_denial_logged(self, staff, head_office):
        with pytest.raises(UnauthorizedError):
            permission_service.require_permission(
                staff["requester"].id, "RUN_DEPRECIATION",
                resource="/api/assets/depreciation", business_unit_id=head_office.id,
            )
        db.session.commit()

        event = db.session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == staff["requester"].id
        assert event.action == "RUN_DEPRECIATION"
        assert event.success is False
        assert event.business_unit_id == head_office.id
