from crm_access.models.audit import AuditLog
from crm_access.models.customer import Customer
from crm_access.models.role import Role, RoleFieldPermission, RoleModulePermission
from crm_access.models.user import User

__all__ = [
    # Permissions
    "Role",
    "RoleModulePermission",
    "RoleFieldPermission",
    # Users
    "User",
    # CRM records
    "Customer",
    # Audit
    "AuditLog",
]
