# Overview: All capability definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- MATERIAL REQUESTS --

MATERIAL_REQUEST_PERMISSIONS = [
    (
        "CREATE_MATERIAL_REQUEST",
        "Create Material Request",
        "Create, edit, submit and cancel own material requests",
        PermissionCategory.MATERIAL_REQUESTS,
    ),
    (
        "SERVE_MATERIAL_REQUESTS",
        "Serve Material Requests",
        "Record served quantities on approved requests (purchasing)",
        PermissionCategory.MATERIAL_REQUESTS,
    ),
    (
        "POST_MATERIAL_REQUESTS",
        "Post Material Requests",
        "Post fully served requests (accounting)",
        PermissionCategory.MATERIAL_REQUESTS,
    ),
]


# -- APPROVALS --

APPROVAL_PERMISSIONS = [
    (
        "CROSS_UNIT_APPROVE",
        "Cross-Unit Approval",
        "Act as assigned approver on requests from any business unit",
        PermissionCategory.APPROVALS,
    ),
    (
        "STORE_USE_REVIEW",
        "Review Store-Use Requests",
        "Review store-use material requests before approval",
        PermissionCategory.APPROVALS,
    ),
    (
        "BUDGET_APPROVE",
        "Budget Approval",
        "Record budget decisions on RDH/MRS store-use requests",
        PermissionCategory.APPROVALS,
    ),
    (
        "APPROVE_TIME_OFF",
        "Approve Leave and Overtime",
        "Act on leave and overtime requests in the approval queue",
        PermissionCategory.APPROVALS,
    ),
    (
        "HIDDEN_FROM_QUEUES",
        "Hidden From Queues",
        "System or test account whose requests never appear in approval queues",
        PermissionCategory.APPROVALS,
    ),
]


# -- ASSETS --

ASSET_PERMISSIONS = [
    (
        "VIEW_ASSETS",
        "View Assets",
        "View assets, deployments and history",
        PermissionCategory.ASSETS,
    ),
    (
        "MANAGE_ASSETS",
        "Manage Assets",
        "Create assets and report damage",
        PermissionCategory.ASSETS,
    ),
    (
        "DEPLOY_ASSETS",
        "Deploy and Return Assets",
        "Issue assets to employees and process returns",
        PermissionCategory.ASSETS,
    ),
    (
        "APPROVE_DEPLOYMENTS",
        "Approve Deployments",
        "Accounting approval of pending deployments",
        PermissionCategory.ASSETS,
    ),
    (
        "DISPOSE_ASSETS",
        "Dispose Assets",
        "Retire assets permanently",
        PermissionCategory.ASSETS,
    ),
    (
        "RUN_DEPRECIATION",
        "Run Depreciation",
        "Calculate and post monthly depreciation",
        PermissionCategory.ASSETS,
    ),
    (
        "MANAGE_VERIFICATIONS",
        "Manage Verifications",
        "Create, start, complete and cancel inventory verifications",
        PermissionCategory.ASSETS,
    ),
    (
        "SCAN_ASSETS",
        "Scan Assets",
        "Record scans and discrepancies during a verification",
        PermissionCategory.ASSETS,
    ),
]


# -- TIME OFF --

TIME_OFF_PERMISSIONS = [
    (
        "FILE_TIME_OFF",
        "File Leave and Overtime",
        "Create and cancel own leave and overtime requests",
        PermissionCategory.TIME_OFF,
    ),
]


# -- REPORTS --

REPORT_PERMISSIONS = [
    (
        "EXPORT_REPORTS",
        "Export Reports",
        "Download leave, overtime and deployment CSV reports",
        PermissionCategory.REPORTS,
    ),
]


# -- USERS / SYSTEM --

USER_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create employees and view the directory",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_PERMISSIONS",
        "Manage Permissions",
        "Grant and deny capabilities per user",
        PermissionCategory.USERS,
    ),
]

SYSTEM_PERMISSIONS = [
    (
        "VIEW_AUDIT_LOG",
        "View Audit Log",
        "Read audit and security events",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    MATERIAL_REQUEST_PERMISSIONS
    + APPROVAL_PERMISSIONS
    + ASSET_PERMISSIONS
    + TIME_OFF_PERMISSIONS
    + REPORT_PERMISSIONS
    + USER_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
