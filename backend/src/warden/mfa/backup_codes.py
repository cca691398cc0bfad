"""Single-use backup codes.

Ten codes of 8 hex characters are generated at enrollment. Only salted
Argon2id hashes are stored; the plaintext is shown to the user once.
"""

import secrets
from typing import List

from argon2 import PasswordHasher, Type
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError

BACKUP_CODE_COUNT = 10

# Lighter than password hashing: codes are random, and verification walks
# up to ten hashes per attempt
_backup_code_hasher = PasswordHasher(
    memory_cost=19456,  # 19 MB
    time_cost=2,
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=Type.ID
)


def generate_backup_codes(count: int = BACKUP_CODE_COUNT) -> List[str]:
    return [secrets.token_hex(4) for _ in range(count)]


def normalize_backup_code(code: str) -> str:
    """Case- and separator-insensitive form ("AB12-CD34" == "ab12cd34")."""
    return (code or "").strip().lower().replace("-", "").replace(" ", "")


def hash_backup_code(code: str) -> str:
    return _backup_code_hasher.hash(normalize_backup_code(code))


def backup_code_matches(code: str, code_hash: str) -> bool:
    normalized = normalize_backup_code(code)
    if not normalized or not code_hash:
        return False
    try:
        return _backup_code_hasher.verify(code_hash, normalized)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False
