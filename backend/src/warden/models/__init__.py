"""SQLAlchemy models.

Importing this package registers every table on Base.metadata.
"""

from .base import Base, PortableJSONB, utcnow, as_utc
from .tenant import Tenant
from .identity import Identity
from .role import Permission, Role, RolePermission, IdentityRole
from .session import AuthSession
from .mfa_backup_code import MfaBackupCode
from .document import Document
from .audit_log import AuditLog
from .security_alert import SecurityAlert

__all__ = [
    "Base",
    "PortableJSONB",
    "utcnow",
    "as_utc",
    "Tenant",
    "Identity",
    "Permission",
    "Role",
    "RolePermission",
    "IdentityRole",
    "AuthSession",
    "MfaBackupCode",
    "Document",
    "AuditLog",
    "SecurityAlert",
]
