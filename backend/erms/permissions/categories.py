# Overview: Permission category constants for grouping related capabilities.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    MATERIAL_REQUESTS = "MATERIAL_REQUESTS"
    APPROVALS = "APPROVALS"
    ASSETS = "ASSETS"
    TIME_OFF = "TIME_OFF"
    REPORTS = "REPORTS"
    USERS = "USERS"
    SYSTEM = "SYSTEM"
