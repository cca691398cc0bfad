"""JWT access tokens: the signed session reference carried by every request

Access Token Claims:
====================

Standard JWT Claims:
- sub: Identity id as string
  Example: "42"
- iat: Unix timestamp when the token was created
- exp: Unix timestamp when the token expires
  (iat + ACCESS_TOKEN_EXPIRE_MINUTES, default 15 minutes)

Custom Claims:
- tenant_id: Tenant id of the identity
  Purpose: every request is evaluated inside this tenant only
- sid: Id of the refresh session the token was minted for
  Purpose: the session is re-validated on every request, so revoking it
  invalidates outstanding access tokens immediately
- email: Identity email, for display and logging
- type: "access"

MFA Pending Tokens:
- type: "mfa_pending", carries sub and tenant_id but no sid
- Minted after a correct password for identities with MFA enabled and
  exchanged for a session at /auth/mfa/verify (default TTL 5 minutes)
- Never accepted as an access token

Security Properties:
- Algorithm: HS256 (HMAC-SHA256 symmetric signing)
- Secret: JWT_SECRET environment variable (minimum 256 bits)
- Token tamper-proof (signature validation fails if claims are modified)

Example Access Token Payload:
{
  "sub": "42",
  "tenant_id": 7,
  "sid": 1001,
  "email": "qa@acme.example",
  "type": "access",
  "iat": 1704368400,
  "exp": 1704369300
}
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Any

import jwt

from ..config import get_settings

ACCESS_TOKEN_TYPE = "access"
MFA_PENDING_TOKEN_TYPE = "mfa_pending"


def _get_jwt_secret() -> str:
    """Get JWT_SECRET from environment.

    Raises:
        ValueError: If JWT_SECRET is not set
    """
    secret = os.getenv('JWT_SECRET')
    if not secret:
        raise ValueError("JWT_SECRET environment variable is not set")
    return secret


def _encode(claims: Dict[str, Any], ttl: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(claims)
    payload['iat'] = int(now.timestamp())
    payload['exp'] = int((now + ttl).timestamp())
    return jwt.encode(payload, _get_jwt_secret(), algorithm=get_settings().JWT_ALGORITHM)


def create_access_token(
    identity_id: int,
    tenant_id: int,
    session_id: int,
    email: str
) -> str:
    """Create a JWT access token bound to a refresh session.

    Args:
        identity_id: Authenticated identity
        tenant_id: Tenant of the identity
        session_id: Session the token belongs to
        email: Identity email address

    Returns:
        str: Signed JWT token

    Raises:
        ValueError: If JWT_SECRET is not set
    """
    return _encode(
        {
            'sub': str(identity_id),
            'tenant_id': tenant_id,
            'sid': session_id,
            'email': email,
            'type': ACCESS_TOKEN_TYPE,
        },
        timedelta(minutes=get_settings().ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_mfa_pending_token(identity_id: int, tenant_id: int) -> str:
    """Create the short-lived token that bridges password and second factor."""
    return _encode(
        {
            'sub': str(identity_id),
            'tenant_id': tenant_id,
            'type': MFA_PENDING_TOKEN_TYPE,
        },
        timedelta(minutes=get_settings().MFA_PENDING_TOKEN_EXPIRE_MINUTES),
    )


def decode_token(token: str, expected_type: str = ACCESS_TOKEN_TYPE) -> Dict[str, Any]:
    """Decode and validate a JWT token.

    Args:
        token: JWT token string
        expected_type: Required value of the "type" claim

    Returns:
        dict: Decoded token payload with claims

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid, tampered or of another type
        ValueError: If JWT_SECRET is not set
    """
    payload = jwt.decode(
        token,
        _get_jwt_secret(),
        algorithms=[get_settings().JWT_ALGORITHM],
        options={"require": ["sub", "exp", "iat"]},
    )
    if payload.get('type') != expected_type:
        raise jwt.InvalidTokenError("Unexpected token type")
    return payload
