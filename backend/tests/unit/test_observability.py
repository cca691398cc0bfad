"""Unit tests for request correlation and structured logging

Tests cover:
- Acceptance of client-supplied request ids
- Request id context variable
- JSON formatter output, including `extra` context fields
"""

import json
import logging
import sys

import pytest

from warden.observability.logging_config import JSONFormatter, RequestIDFilter
from warden.observability.request_id import (
    accept_request_id,
    generate_request_id,
    get_request_id,
    set_request_id,
)

pytestmark = pytest.mark.unit


class TestRequestId:
    """Test request id handling"""

    def test_well_formed_id_reused(self):
        assert accept_request_id("req-2026.10:17_a") == "req-2026.10:17_a"

    @pytest.mark.parametrize("candidate", [None, "", "has space", "line\nbreak", "x" * 129])
    def test_malformed_id_replaced(self, candidate):
        accepted = accept_request_id(candidate)
        assert accepted != candidate
        assert len(accepted) == 36

    def test_generated_ids_are_unique(self):
        assert generate_request_id() != generate_request_id()

    def test_context_variable(self):
        set_request_id("abc")
        try:
            assert get_request_id() == "abc"
        finally:
            set_request_id(None)
        assert get_request_id() == "no-request-id"


class TestJSONFormatter:
    """Test JSON log lines"""

    def _format(self, **extra):
        record = logging.LogRecord("warden.test", logging.INFO, __file__, 10, "Session created", None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        RequestIDFilter().filter(record)
        return json.loads(JSONFormatter().format(record))

    def test_standard_fields(self):
        set_request_id("req-1")
        try:
            data = self._format()
        finally:
            set_request_id(None)

        assert data["level"] == "INFO"
        assert data["logger"] == "warden.test"
        assert data["message"] == "Session created"
        assert data["request_id"] == "req-1"
        assert data["timestamp"].endswith("Z")

    def test_extra_fields_are_top_level(self):
        data = self._format(tenant_id=3, user_id=42, session_id=1001)
        assert data["tenant_id"] == 3
        assert data["user_id"] == 42
        assert data["session_id"] == 1001

    def test_secret_looking_extras_redacted(self):
        data = self._format(refresh_token="abc", mfa_secret="JBSWY3DP", path="/api/v1/auth/login")
        assert data["refresh_token"] == "[REDACTED]"
        assert data["mfa_secret"] == "[REDACTED]"
        assert data["path"] == "/api/v1/auth/login"

    def test_non_serializable_extras_stringified(self):
        data = self._format(reason=object)
        assert "object" in data["reason"]

    def test_exception_info(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("warden.test", logging.ERROR, __file__, 10, "failed", None, sys.exc_info())
        data = json.loads(JSONFormatter().format(record))
        assert data["error"] == "boom"
        assert "RuntimeError" in data["traceback"]
