"""Identity password credentials.

Hashes are Argon2id over password + PASSWORD_PEPPER. The pepper lives only in
the environment, so a leaked identity table cannot be attacked offline
without it. Identities pending activation have no hash and never verify.

When the hasher parameters are raised, existing hashes keep verifying;
password_needs_rehash tells the login path to store a fresh hash.
"""

import os
import re
from typing import Optional, Tuple

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

_hasher = PasswordHasher(
    memory_cost=65536,  # KiB
    time_cost=3,
    parallelism=4,
    hash_len=32,
    salt_len=16,
    type=Type.ID,
)

# (pattern that must match, message when it does not)
_CHARACTER_CLASSES = (
    (re.compile(r"[A-Z]"), "Password must contain at least one uppercase letter"),
    (re.compile(r"[a-z]"), "Password must contain at least one lowercase letter"),
    (re.compile(r"\d"), "Password must contain at least one digit"),
    (re.compile(r"[^A-Za-z0-9\s]"), "Password must contain at least one special character"),
)


def _pepper() -> str:
    pepper = os.getenv("PASSWORD_PEPPER")
    if not pepper:
        raise ValueError("PASSWORD_PEPPER environment variable is not set")
    return pepper


def hash_password(password: str) -> str:
    """Hash a password for storage on an identity.

    Raises:
        ValueError: Empty password or PASSWORD_PEPPER not set
    """
    if not password:
        raise ValueError("Password cannot be empty")
    return _hasher.hash(password + _pepper())


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Check a password against a stored hash. Never raises on bad input."""
    if not password or not password_hash:
        return False
    try:
        return _hasher.verify(password_hash, password + _pepper())
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def password_needs_rehash(password_hash: Optional[str]) -> bool:
    """True when a verified hash was made with weaker parameters than today's."""
    if not password_hash:
        return False
    try:
        return _hasher.check_needs_rehash(password_hash)
    except InvalidHashError:
        return False


def validate_password_strength(password: str, email: Optional[str] = None) -> Tuple[bool, str]:
    """Check a new password before it is hashed.

    Applied wherever a password is set (identity creation, bootstrap). The
    first failing rule is reported.

    Args:
        password: Candidate password
        email: Owner's email; a password containing its local part is rejected

    Returns:
        (True, "") or (False, reason)

    Example:
        >>> validate_password_strength("SecureP@ss123")
        (True, '')
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    if len(password) > MAX_PASSWORD_LENGTH:
        return False, f"Password must be at most {MAX_PASSWORD_LENGTH} characters long"

    for pattern, message in _CHARACTER_CLASSES:
        if not pattern.search(password):
            return False, message

    if email:
        local_part = email.split("@", 1)[0].lower()
        if len(local_part) >= 3 and local_part in password.lower():
            return False, "Password must not contain the email address"

    return True, ""
