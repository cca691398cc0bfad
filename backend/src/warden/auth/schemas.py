"""Pydantic schemas for authentication endpoints"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class LoginRequest(BaseModel):
    """Request schema for login.

    Attributes:
        tenant_code: Tenant code for multi-tenant isolation
        email: Identity email address
        password: Plain text password, verified against the stored hash
    """
    tenant_code: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """Issued credentials.

    Attributes:
        access_token: Short-lived JWT bound to the session
        refresh_token: Opaque refresh credential (shown once)
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
        session_id: Session the tokens belong to
        refresh_expires_at: When the refresh credential expires
    """
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int
    session_id: int
    refresh_expires_at: datetime


class LoginResponse(BaseModel):
    """Login result: either tokens, or an MFA challenge.

    When mfa_required is true only mfa_token is set; it must be exchanged
    at /auth/mfa/verify together with a TOTP or backup code.
    """
    mfa_required: bool = False
    mfa_token: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: Optional[int] = None
    session_id: Optional[int] = None
    refresh_expires_at: Optional[datetime] = None


class MfaVerifyRequest(BaseModel):
    mfa_token: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=64)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class MeResponse(BaseModel):
    """Authenticated identity with its effective permissions"""
    id: int
    tenant_id: int
    email: str
    name: str
    is_active: bool
    mfa_enabled: bool
    last_login_at: Optional[datetime]
    created_at: datetime
    session_id: Optional[int] = None
    permissions: List[str] = []

    model_config = ConfigDict(from_attributes=True)
