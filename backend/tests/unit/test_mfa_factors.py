"""Unit tests for TOTP and backup code primitives

Tests cover:
- TOTP verification with clock skew tolerance
- Malformed codes and secrets
- Provisioning URI
- Backup code generation, normalization and hashing
- Encryption of stored TOTP secrets
"""

from datetime import datetime, timedelta, timezone

import pyotp
import pytest

from warden.mfa.backup_codes import (
    BACKUP_CODE_COUNT,
    backup_code_matches,
    generate_backup_codes,
    hash_backup_code,
    normalize_backup_code,
)
from warden.mfa.secret_box import open_secret, seal_secret
from warden.mfa.totp import generate_secret, provisioning_uri, verify_totp

pytestmark = pytest.mark.unit

NOW = datetime(2026, 10, 17, 8, 30, 0, tzinfo=timezone.utc)


class TestTotp:
    """Test RFC 6238 verification"""

    def test_current_code_verifies(self):
        secret = generate_secret()
        code = pyotp.TOTP(secret).at(NOW)
        assert verify_totp(secret, code, for_time=NOW) is True

    def test_adjacent_step_tolerated(self):
        secret = generate_secret()
        previous = pyotp.TOTP(secret).at(NOW - timedelta(seconds=30))
        assert verify_totp(secret, previous, for_time=NOW) is True

    def test_two_steps_away_rejected(self):
        secret = generate_secret()
        stale = pyotp.TOTP(secret).at(NOW - timedelta(seconds=90))
        assert verify_totp(secret, stale, for_time=NOW) is False

    def test_spaces_ignored(self):
        secret = generate_secret()
        code = pyotp.TOTP(secret).at(NOW)
        assert verify_totp(secret, f"{code[:3]} {code[3:]}", for_time=NOW) is True

    @pytest.mark.parametrize("code", ["", None, "12345", "1234567", "abcdef"])
    def test_malformed_codes_never_match(self, code):
        assert verify_totp(generate_secret(), code, for_time=NOW) is False

    def test_missing_secret_never_matches(self):
        assert verify_totp(None, "123456") is False

    def test_provisioning_uri(self):
        uri = provisioning_uri("JBSWY3DPEHPK3PXP", "qa@acme.com", issuer="Warden")
        assert uri.startswith("otpauth://totp/")
        assert "secret=JBSWY3DPEHPK3PXP" in uri
        assert "issuer=Warden" in uri


class TestBackupCodes:
    """Test backup code helpers"""

    def test_generates_ten_distinct_codes(self):
        codes = generate_backup_codes()
        assert len(codes) == BACKUP_CODE_COUNT
        assert len(set(codes)) == BACKUP_CODE_COUNT
        assert all(len(code) == 8 for code in codes)

    def test_normalization(self):
        assert normalize_backup_code(" AB12-CD34 ") == "ab12cd34"

    def test_hash_matches_normalized_input(self):
        code_hash = hash_backup_code("ab12cd34")
        assert code_hash.startswith("$argon2id$")
        assert backup_code_matches("AB12-CD34", code_hash) is True

    def test_wrong_code_does_not_match(self):
        assert backup_code_matches("ffffffff", hash_backup_code("ab12cd34")) is False

    def test_empty_input_does_not_match(self):
        assert backup_code_matches("", hash_backup_code("ab12cd34")) is False
        assert backup_code_matches("ab12cd34", "") is False


class TestSecretBox:
    """Test encryption of stored TOTP secrets"""

    def test_round_trip(self):
        secret = generate_secret()
        sealed = seal_secret(secret, identity_id=7)

        assert sealed.startswith("v1:")
        assert secret not in sealed
        assert open_secret(sealed, identity_id=7) == secret

    def test_nonce_differs_per_seal(self):
        secret = generate_secret()
        assert seal_secret(secret, 7) != seal_secret(secret, 7)

    def test_bound_to_identity(self):
        sealed = seal_secret(generate_secret(), identity_id=7)
        with pytest.raises(ValueError, match="could not be decrypted"):
            open_secret(sealed, identity_id=8)

    def test_pepper_change_breaks_decryption(self, monkeypatch):
        sealed = seal_secret(generate_secret(), identity_id=7)
        monkeypatch.setenv("PASSWORD_PEPPER", "a-completely-different-pepper-value")
        with pytest.raises(ValueError):
            open_secret(sealed, identity_id=7)

    def test_plaintext_secret_rejected(self):
        with pytest.raises(ValueError, match="Unsupported"):
            open_secret(generate_secret(), identity_id=7)
