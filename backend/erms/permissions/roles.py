# Overview: Default capability set per employee role.
#
# Explicit per-user GRANT/DENY overrides (UserPermissionOverride) are applied
# on top of these by permission_service.get_user_permissions.
# STORE_USE_REVIEW, CROSS_UNIT_APPROVE and HIDDEN_FROM_QUEUES never appear
# here; they only come from GRANT overrides.

_EMPLOYEE_BASE = [
    "CREATE_MATERIAL_REQUEST",
    "FILE_TIME_OFF",
]

DEFAULT_ROLE_PERMISSIONS = {
    "ADMIN": _EMPLOYEE_BASE + [
        "SERVE_MATERIAL_REQUESTS",
        "POST_MATERIAL_REQUESTS",
        "APPROVE_TIME_OFF",
        "VIEW_ASSETS",
        "MANAGE_ASSETS",
        "DEPLOY_ASSETS",
        "APPROVE_DEPLOYMENTS",
        "DISPOSE_ASSETS",
        "RUN_DEPRECIATION",
        "MANAGE_VERIFICATIONS",
        "SCAN_ASSETS",
        "EXPORT_REPORTS",
        "MANAGE_USERS",
        "MANAGE_PERMISSIONS",
        "VIEW_AUDIT_LOG",
    ],
    "HR": _EMPLOYEE_BASE + [
        "APPROVE_TIME_OFF",
        "EXPORT_REPORTS",
        "MANAGE_USERS",
    ],
    "MANAGER": _EMPLOYEE_BASE + [
        "APPROVE_TIME_OFF",
        "VIEW_ASSETS",
        "RUN_DEPRECIATION",
    ],
    "ACCTG": _EMPLOYEE_BASE + [
        "BUDGET_APPROVE",
        "POST_MATERIAL_REQUESTS",
        "VIEW_ASSETS",
        "APPROVE_DEPLOYMENTS",
        "RUN_DEPRECIATION",
        "EXPORT_REPORTS",
    ],
    "PURCHASER": _EMPLOYEE_BASE + [
        "SERVE_MATERIAL_REQUESTS",
        "VIEW_ASSETS",
        "MANAGE_ASSETS",
        "DEPLOY_ASSETS",
        "MANAGE_VERIFICATIONS",
        "SCAN_ASSETS",
    ],
    "USER": list(_EMPLOYEE_BASE),
}
