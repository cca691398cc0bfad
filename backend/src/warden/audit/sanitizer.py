"""Audit metadata sanitization.

Every metadata mapping passes through sanitize_metadata before it is stored.
Rules, in order:

1. Only actions with a registered allow-list keep metadata at all; anything
   else stores None.
2. Only allow-listed keys survive, and each is rechecked against the
   sensitive-name deny-list.
3. Strings are capped at MAX_STRING_LENGTH characters.
4. Nested mappings are dropped.
5. Lists are truncated to MAX_ARRAY_ITEMS and keep scalar items only.
6. An empty result stores None.
"""

from datetime import date, datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional

from .actions import AuditAction

MAX_STRING_LENGTH = 200
MAX_ARRAY_ITEMS = 10

_DROP = object()

SENSITIVE_KEY_PATTERNS = (
    "storagekey",
    "password",
    "token",
    "secret",
    "hash",
    "internalid",
    "signedurl",
    "path",
)

_WORKFLOW_FIELDS = frozenset({"fromStatus", "toStatus", "comment", "workflowAction", "expiryCleared"})
_SESSION_FIELDS = frozenset({"sessionId", "deviceInfo", "revokedCount", "reason"})

ALLOWED_METADATA_FIELDS: Mapping[str, FrozenSet[str]] = MappingProxyType({
    AuditAction.LOGIN_SUCCESS.value: frozenset({"email", "mfaVerified", "sessionId"}),
    AuditAction.LOGIN_FAILED.value: frozenset({"email", "reason"}),
    AuditAction.LOGOUT.value: frozenset({"sessionId"}),
    AuditAction.SESSION_REVOKED.value: _SESSION_FIELDS,
    AuditAction.SESSION_REVOKED_ALL.value: _SESSION_FIELDS,
    AuditAction.SESSION_REVOKED_BY_ADMIN.value: _SESSION_FIELDS,
    AuditAction.REFRESH_TOKEN_REUSE.value: _SESSION_FIELDS,
    AuditAction.MFA_ENABLED.value: frozenset({"backupCodeCount"}),
    AuditAction.MFA_DISABLED.value: frozenset({"factor", "revokedCount"}),
    AuditAction.MFA_VERIFIED.value: frozenset({"factor"}),
    AuditAction.USER_MFA_RESET_BY_ADMIN.value: frozenset({"email", "revokedCount"}),
    AuditAction.USER_CREATE.value: frozenset({"email", "roleIds"}),
    AuditAction.USER_DEACTIVATE.value: frozenset({"email", "revokedCount"}),
    AuditAction.USER_REACTIVATE.value: frozenset({"email"}),
    AuditAction.ROLE_CREATED.value: frozenset({"roleName", "permissionIds"}),
    AuditAction.ROLE_UPDATED.value: frozenset({"roleName", "permissionIds", "changedFields"}),
    AuditAction.ROLE_DELETED.value: frozenset({"roleName"}),
    AuditAction.ROLE_ASSIGNED.value: frozenset({"roleIds", "roleNames"}),
    AuditAction.AUDIT_RETENTION_CLEANUP.value: frozenset({"retentionMonths", "deletedCount", "olderThan"}),
    AuditAction.DMS_DOCUMENT_CREATE.value: frozenset({"title", "documentNumber", "status"}),
    AuditAction.DMS_SUBMIT.value: _WORKFLOW_FIELDS,
    AuditAction.DMS_APPROVE.value: _WORKFLOW_FIELDS,
    AuditAction.DMS_REJECT.value: _WORKFLOW_FIELDS | {"reason"},
    AuditAction.DMS_REVISE.value: _WORKFLOW_FIELDS,
    AuditAction.DMS_OBSOLETE.value: _WORKFLOW_FIELDS,
})


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(pattern in lowered for pattern in SENSITIVE_KEY_PATTERNS)


def _truncate(value: str) -> str:
    if len(value) > MAX_STRING_LENGTH:
        return value[:MAX_STRING_LENGTH] + "..."
    return value


def _sanitize_scalar(value: Any) -> Any:
    """Return a storable scalar, or _DROP for anything that is not one."""
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, Enum):
        value = value.value
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, str):
        return _truncate(value)
    return _DROP


def sanitize_metadata(action: str, raw: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Any]]:
    """Filter raw metadata for storage under the given action.

    Args:
        action: Audit action code
        raw: Caller-supplied metadata (may be None)

    Returns:
        Sanitized mapping, or None when nothing may be stored

    Example:
        >>> sanitize_metadata("DMS.SUBMIT", {"fromStatus": "DRAFT", "storageKey": "s3://x"})
        {'fromStatus': 'DRAFT'}
        >>> sanitize_metadata("UNKNOWN.ACTION", {"fromStatus": "DRAFT"}) is None
        True
    """
    if not raw:
        return None

    action_code = action.value if isinstance(action, Enum) else action
    allowed = ALLOWED_METADATA_FIELDS.get(action_code)
    if not allowed:
        return None

    result: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in allowed or is_sensitive_key(key):
            continue

        if isinstance(value, (list, tuple, set, frozenset)):
            items = [_sanitize_scalar(item) for item in list(value)[:MAX_ARRAY_ITEMS]]
            result[key] = [item for item in items if item is not _DROP]
            continue

        sanitized = _sanitize_scalar(value)
        if sanitized is not _DROP:
            result[key] = sanitized

    return result or None
