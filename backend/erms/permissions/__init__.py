# Overview: Capability table package.
# Re-exports all public APIs so callers import from erms.permissions.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    MATERIAL_REQUEST_PERMISSIONS,
    APPROVAL_PERMISSIONS,
    ASSET_PERMISSIONS,
    TIME_OFF_PERMISSIONS,
    REPORT_PERMISSIONS,
    USER_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_permissions_by_category,
    get_permission_definition,
    get_role_permissions,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "MATERIAL_REQUEST_PERMISSIONS",
    "APPROVAL_PERMISSIONS",
    "ASSET_PERMISSIONS",
    "TIME_OFF_PERMISSIONS",
    "REPORT_PERMISSIONS",
    "USER_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_permissions_by_category",
    "get_permission_definition",
    "get_role_permissions",
    "validate_permission_code",
]
