"""Unit tests for audit metadata sanitization

Tests cover:
- Per-action allow-lists
- Sensitive key deny-list
- String and list truncation
- Nested structures and non-scalar values
"""

from datetime import datetime, timezone

import pytest

from warden.audit.actions import AuditAction
from warden.audit.sanitizer import (
    ALLOWED_METADATA_FIELDS,
    MAX_ARRAY_ITEMS,
    MAX_STRING_LENGTH,
    is_sensitive_key,
    sanitize_metadata,
)
from warden.workflow.status import DocumentStatus

pytestmark = pytest.mark.unit


class TestAllowList:
    """Only registered actions and keys keep metadata"""

    def test_unregistered_action_stores_nothing(self):
        assert sanitize_metadata("CUSTOM.ACTION", {"fromStatus": "DRAFT"}) is None

    def test_unlisted_keys_dropped(self):
        result = sanitize_metadata(
            AuditAction.DMS_SUBMIT,
            {"fromStatus": "DRAFT", "toStatus": "SUBMITTED", "documentBody": "..."},
        )
        assert result == {"fromStatus": "DRAFT", "toStatus": "SUBMITTED"}

    def test_empty_input_stores_nothing(self):
        assert sanitize_metadata(AuditAction.DMS_SUBMIT, {}) is None
        assert sanitize_metadata(AuditAction.DMS_SUBMIT, None) is None

    def test_empty_result_stores_nothing(self):
        assert sanitize_metadata(AuditAction.LOGOUT, {"deviceInfo": "Firefox"}) is None

    def test_no_allow_list_contains_sensitive_key(self):
        for action, fields in ALLOWED_METADATA_FIELDS.items():
            assert not [f for f in fields if is_sensitive_key(f)], action


class TestDenyList:
    """Sensitive names are dropped even if allow-listed by mistake"""

    @pytest.mark.parametrize(
        "key",
        ["password", "newPassword", "refreshToken", "mfaSecret", "codeHash", "storageKey", "signedUrl", "filePath", "internalId"],
    )
    def test_sensitive_keys(self, key):
        assert is_sensitive_key(key) is True

    @pytest.mark.parametrize("key", ["email", "fromStatus", "sessionId", "roleNames"])
    def test_ordinary_keys(self, key):
        assert is_sensitive_key(key) is False

    def test_sensitive_key_dropped_even_when_allow_listed(self, monkeypatch):
        from warden.audit import sanitizer

        monkeypatch.setattr(
            sanitizer,
            "ALLOWED_METADATA_FIELDS",
            {AuditAction.LOGIN_FAILED.value: frozenset({"email", "reason", "password"})},
        )
        result = sanitize_metadata(
            AuditAction.LOGIN_FAILED,
            {"email": "a@acme.com", "reason": "invalid_password", "password": "hunter2"},
        )
        assert result == {"email": "a@acme.com", "reason": "invalid_password"}


class TestValueShaping:
    """Strings, lists, nested mappings and special scalars"""

    def test_long_strings_truncated(self):
        result = sanitize_metadata(AuditAction.DMS_SUBMIT, {"comment": "x" * 500})
        assert result["comment"] == "x" * MAX_STRING_LENGTH + "..."

    def test_lists_truncated_to_scalars(self):
        result = sanitize_metadata(
            AuditAction.ROLE_ASSIGNED,
            {"roleIds": list(range(25)), "roleNames": ["ADMIN", {"nested": True}, "USER"]},
        )
        assert result["roleIds"] == list(range(MAX_ARRAY_ITEMS))
        assert result["roleNames"] == ["ADMIN", "USER"]

    def test_nested_mappings_dropped(self):
        result = sanitize_metadata(
            AuditAction.DMS_SUBMIT,
            {"fromStatus": "DRAFT", "comment": {"text": "nested"}},
        )
        assert result == {"fromStatus": "DRAFT"}

    def test_enums_and_datetimes_serialized(self):
        older_than = datetime(2024, 1, 31, tzinfo=timezone.utc)
        result = sanitize_metadata(
            AuditAction.AUDIT_RETENTION_CLEANUP,
            {"retentionMonths": 24, "deletedCount": 3, "olderThan": older_than},
        )
        assert result == {
            "retentionMonths": 24,
            "deletedCount": 3,
            "olderThan": older_than.isoformat(),
        }
        created = sanitize_metadata(AuditAction.DMS_DOCUMENT_CREATE, {"status": DocumentStatus.DRAFT})
        assert created == {"status": "DRAFT"}

    def test_booleans_and_none_kept(self):
        result = sanitize_metadata(
            AuditAction.DMS_OBSOLETE,
            {"expiryCleared": True, "comment": None},
        )
        assert result == {"expiryCleared": True, "comment": None}
