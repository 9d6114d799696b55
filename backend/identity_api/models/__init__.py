from identity_api.models.application import Application
from identity_api.models.tenant import Tenant, TenantStatus
from identity_api.models.user import User, UserStatus
from identity_api.models.role import Role, UserRole
from identity_api.models.api_key import ApiKey, ApiKeyStatus
from identity_api.models.audit import AuditLog

__all__ = [
    "Application",
    "Tenant",
    "TenantStatus",
    "User",
    "UserStatus",
    "Role",
    "UserRole",
    "ApiKey",
    "ApiKeyStatus",
    "AuditLog",
]
