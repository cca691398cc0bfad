"""Audit action codes.

Values are persisted and queried by dashboards; never rename an existing one.
"""

from enum import Enum


class AuditAction(str, Enum):
    # Authentication
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    # Sessions
    SESSION_REVOKED = "SESSION_REVOKED"
    SESSION_REVOKED_ALL = "SESSION_REVOKED_ALL"
    SESSION_REVOKED_BY_ADMIN = "SESSION_REVOKED_BY_ADMIN"
    REFRESH_TOKEN_REUSE = "REFRESH_TOKEN_REUSE"

    # Multi-factor authentication
    MFA_ENABLED = "MFA_ENABLED"
    MFA_DISABLED = "MFA_DISABLED"
    MFA_VERIFIED = "MFA_VERIFIED"
    USER_MFA_RESET_BY_ADMIN = "USER_MFA_RESET_BY_ADMIN"

    # Identities and roles
    USER_CREATE = "USER.CREATE"
    USER_DEACTIVATE = "USER.DEACTIVATE"
    USER_REACTIVATE = "USER.REACTIVATE"
    ROLE_CREATED = "ROLE_CREATED"
    ROLE_UPDATED = "ROLE_UPDATED"
    ROLE_DELETED = "ROLE_DELETED"
    ROLE_ASSIGNED = "ROLE_ASSIGNED"

    # Audit administration
    AUDIT_RETENTION_CLEANUP = "AUDIT_RETENTION_CLEANUP"

    # Documents
    DMS_DOCUMENT_CREATE = "DMS.DOCUMENT_CREATE"
    DMS_SUBMIT = "DMS.SUBMIT"
    DMS_APPROVE = "DMS.APPROVE"
    DMS_REJECT = "DMS.REJECT"
    DMS_REVISE = "DMS.REVISE"
    DMS_OBSOLETE = "DMS.OBSOLETE"
