from .tenancy import BusinessUnit, Department
from .auth import User, SessionToken, UserPermissionOverride
from .security import SecurityEvent
from .documents import AuditEvent, DocumentSequence
from .material_requests import MaterialRequest, MaterialRequestItem
from .assets import AssetCategory, Asset, AssetDeployment, AssetHistory, AssetDepreciation
from .verification import InventoryVerification, VerificationItem
from .time_off import LeaveType, LeaveBalance, LeaveRequest, OvertimeRequest

__all__ = [
    'BusinessUnit', 'Department',
    'User', 'SessionToken', 'UserPermissionOverride', 'SecurityEvent',
    'AuditEvent', 'DocumentSequence',
    'MaterialRequest', 'MaterialRequestItem',
    'AssetCategory', 'Asset', 'AssetDeployment', 'AssetHistory', 'AssetDepreciation',
    'InventoryVerification', 'VerificationItem',
    'LeaveType', 'LeaveBalance', 'LeaveRequest', 'OvertimeRequest',
]
