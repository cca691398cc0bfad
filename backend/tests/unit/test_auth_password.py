"""Unit tests for password hashing and strength validation

Tests cover:
- Argon2id hashing with pepper
- Verification of correct and wrong passwords
- Identities without a password hash
- Strength requirements
- Upgrading hashes made with weaker parameters
"""

import os

import pytest
from argon2 import PasswordHasher

from warden.auth.password import (
    hash_password,
    password_needs_rehash,
    validate_password_strength,
    verify_password,
)

pytestmark = pytest.mark.unit


class TestHashPassword:
    """Test Argon2id hashing"""

    def test_hash_uses_argon2id(self):
        hashed = hash_password("SecureP@ss123")
        assert hashed.startswith("$argon2id$")

    def test_hash_is_salted(self):
        """Same password hashes differently each time"""
        assert hash_password("SecureP@ss123") != hash_password("SecureP@ss123")

    def test_empty_password_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            hash_password("")

    def test_missing_pepper_raises(self, monkeypatch):
        monkeypatch.delenv("PASSWORD_PEPPER", raising=False)
        with pytest.raises(ValueError, match="PASSWORD_PEPPER"):
            hash_password("SecureP@ss123")


class TestVerifyPassword:
    """Test password verification"""

    def test_correct_password_verifies(self):
        hashed = hash_password("SecureP@ss123")
        assert verify_password("SecureP@ss123", hashed) is True

    def test_wrong_password_fails(self):
        hashed = hash_password("SecureP@ss123")
        assert verify_password("SecureP@ss124", hashed) is False

    def test_pepper_change_invalidates_hash(self, monkeypatch):
        hashed = hash_password("SecureP@ss123")
        monkeypatch.setenv("PASSWORD_PEPPER", "a-completely-different-pepper-value")
        assert verify_password("SecureP@ss123", hashed) is False

    def test_pending_identity_never_verifies(self):
        """Identities pending activation have no hash"""
        assert verify_password("SecureP@ss123", None) is False

    def test_garbage_hash_fails_closed(self):
        assert verify_password("SecureP@ss123", "not-an-argon2-hash") is False


class TestPasswordStrength:
    """Test strength requirements"""

    @pytest.mark.parametrize(
        "password,message",
        [
            ("Sh0rt!", "at least 8 characters"),
            ("lowercase1!", "uppercase"),
            ("UPPERCASE1!", "lowercase"),
            ("NoDigits!!", "digit"),
            ("NoSpecial123", "special character"),
        ],
    )
    def test_weak_passwords_rejected(self, password, message):
        valid, error = validate_password_strength(password)
        assert valid is False
        assert message in error

    def test_strong_password_accepted(self):
        assert validate_password_strength("SecureP@ss123") == (True, "")

    def test_too_long_password_rejected(self):
        valid, error = validate_password_strength("Aa1!" * 40)
        assert valid is False
        assert "at most 128" in error

    def test_email_local_part_rejected(self):
        valid, error = validate_password_strength("Jdoe@2026!", email="jdoe@acme.com")
        assert valid is False
        assert "email" in error

    def test_short_local_part_ignored(self):
        assert validate_password_strength("SecureP@ss123", email="se@acme.com") == (True, "")


class TestRehash:
    """Test detection of outdated hashes"""

    def test_current_hash_is_kept(self):
        assert password_needs_rehash(hash_password("SecureP@ss123")) is False

    def test_weaker_parameters_need_rehash(self):
        weak = PasswordHasher(time_cost=1, memory_cost=8192, parallelism=1)
        hashed = weak.hash("SecureP@ss123" + os.environ["PASSWORD_PEPPER"])

        assert verify_password("SecureP@ss123", hashed) is True
        assert password_needs_rehash(hashed) is True

    def test_missing_hash(self):
        assert password_needs_rehash(None) is False
