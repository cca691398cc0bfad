"""Pydantic schemas for MFA endpoints"""

from typing import List

from pydantic import BaseModel, Field


class MfaSetupResponse(BaseModel):
    """Proposed secret; nothing is stored until /mfa/enable succeeds.

    Attributes:
        secret: Base32 TOTP secret
        provisioning_uri: otpauth:// URI for authenticator apps (QR code)
    """
    secret: str
    provisioning_uri: str


class MfaEnableRequest(BaseModel):
    secret: str = Field(..., min_length=16, max_length=64)
    code: str = Field(..., min_length=6, max_length=10)


class MfaEnableResponse(BaseModel):
    """Backup codes are shown exactly once"""
    enabled: bool = True
    backup_codes: List[str]


class MfaDisableRequest(BaseModel):
    password: str = Field(..., min_length=1)
    code: str = Field(..., min_length=1, max_length=64)


class MfaDisableResponse(BaseModel):
    enabled: bool = False
    revoked_sessions: int


class MfaStatusResponse(BaseModel):
    enabled: bool
    backup_codes_remaining: int
