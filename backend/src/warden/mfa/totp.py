"""Time-based one-time passwords (RFC 6238) via pyotp.

30-second steps, 6 digits. Verification accepts the current step and one
step on either side to tolerate clock skew.
"""

import binascii
import re
from datetime import datetime
from typing import Optional

import pyotp

from ..config import get_settings

TOTP_DIGITS = 6
TOTP_INTERVAL = 30
TOTP_VALID_WINDOW = 1

_CODE_PATTERN = re.compile(r"^\d{6}$")


def generate_secret() -> str:
    """New random base32 secret for enrollment."""
    return pyotp.random_base32()


def provisioning_uri(secret: str, account_name: str, issuer: Optional[str] = None) -> str:
    """otpauth:// URI for authenticator apps (rendered as a QR code by the client)."""
    return pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL).provisioning_uri(
        name=account_name,
        issuer_name=issuer or get_settings().MFA_ISSUER,
    )


def verify_totp(secret: Optional[str], code: Optional[str], for_time: Optional[datetime] = None) -> bool:
    """Check a one-time code against a secret.

    Args:
        secret: Base32 secret (None when MFA is not set up)
        code: Code entered by the user; spaces are ignored
        for_time: Reference time (defaults to now)

    Returns:
        True if the code matches the current or an adjacent time step.
        Malformed codes and secrets never match.
    """
    if not secret or not code:
        return False

    normalized = code.replace(" ", "").strip()
    if not _CODE_PATTERN.match(normalized):
        return False

    try:
        totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
        return totp.verify(normalized, for_time=for_time, valid_window=TOTP_VALID_WINDOW)
    except (binascii.Error, ValueError, TypeError):
        return False
