# Overview: Lookups over the capability table.

from .definitions import PERMISSION_DEFINITIONS
from .roles import DEFAULT_ROLE_PERMISSIONS

_BY_CODE = {perm[0]: perm for perm in PERMISSION_DEFINITIONS}


def get_permissions_by_category(category: str) -> list[tuple]:
    return [perm for perm in PERMISSION_DEFINITIONS if perm[3] == category]


def get_permission_definition(code: str) -> dict | None:
    perm = _BY_CODE.get(code)
    if perm is None:
        return None
    return {"code": perm[0], "name": perm[1], "description": perm[2], "category": perm[3]}


def get_role_permissions(role: str | None) -> set[str]:
    """Role defaults; unknown roles get nothing."""
    return set(DEFAULT_ROLE_PERMISSIONS.get(role or "", []))


def validate_permission_code(code: str) -> bool:
    return code in _BY_CODE
