"""Encryption at rest for TOTP secrets.

identity.mfa_secret holds "v1:" + base64(nonce || AES-256-GCM ciphertext).
The key is derived from PASSWORD_PEPPER with HKDF under its own info string,
so it never equals the password pepper itself. The identity id is bound as
associated data: a ciphertext copied onto another identity does not decrypt.
"""

import base64
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

VERSION_PREFIX = "v1:"
HKDF_INFO = b"warden-mfa-secret-v1"
NONCE_BYTES = 12


def _key() -> bytes:
    pepper = os.getenv("PASSWORD_PEPPER")
    if not pepper:
        raise ValueError("PASSWORD_PEPPER environment variable is not set")
    return HKDF(algorithm=hashes.SHA256(), length=32, salt=None, info=HKDF_INFO).derive(pepper.encode("utf-8"))


def _associated_data(identity_id: int) -> bytes:
    return f"identity:{identity_id}".encode("utf-8")


def seal_secret(secret: str, identity_id: int) -> str:
    """Encrypt a base32 TOTP secret for storage on the identity."""
    nonce = os.urandom(NONCE_BYTES)
    ciphertext = AESGCM(_key()).encrypt(nonce, secret.encode("utf-8"), _associated_data(identity_id))
    return VERSION_PREFIX + base64.b64encode(nonce + ciphertext).decode("ascii")


def open_secret(stored: str, identity_id: int) -> str:
    """Decrypt a stored TOTP secret.

    Raises:
        ValueError: Unknown format, wrong key, tampered data or wrong identity
    """
    if not stored.startswith(VERSION_PREFIX):
        raise ValueError("Unsupported MFA secret format")
    raw = base64.b64decode(stored[len(VERSION_PREFIX):])
    nonce, ciphertext = raw[:NONCE_BYTES], raw[NONCE_BYTES:]
    try:
        plaintext = AESGCM(_key()).decrypt(nonce, ciphertext, _associated_data(identity_id))
    except InvalidTag:
        raise ValueError("MFA secret could not be decrypted")
    return plaintext.decode("utf-8")
