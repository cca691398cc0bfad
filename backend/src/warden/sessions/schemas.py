"""Pydantic schemas for session endpoints"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..clock import utcnow
from ..models.session import AuthSession


class SessionResponse(BaseModel):
    """One refresh session as shown to its owner or an administrator.

    The token hashes are never exposed.
    """
    id: int
    identity_id: int
    device_info: Optional[str]
    ip_address: Optional[str]
    mfa_verified: bool
    created_at: datetime
    last_active_at: datetime
    expires_at: datetime
    revoked_at: Optional[datetime]
    state: str
    is_current: bool = False

    @classmethod
    def from_session(cls, session: AuthSession, current_session_id: Optional[int] = None) -> "SessionResponse":
        return cls(
            id=session.id,
            identity_id=session.identity_id,
            device_info=session.device_info,
            ip_address=session.ip_address,
            mfa_verified=session.mfa_verified,
            created_at=session.created_at,
            last_active_at=session.last_active_at,
            expires_at=session.expires_at,
            revoked_at=session.revoked_at,
            state=session.state(utcnow()),
            is_current=session.id == current_session_id,
        )


class SessionListResponse(BaseModel):
    items: List[SessionResponse]
    total: int


class RevokeAllResponse(BaseModel):
    revoked_count: int


class SessionValidateRequest(BaseModel):
    session_id: int = Field(..., ge=1)


class SessionValidateResponse(BaseModel):
    """Internal validation result; reason is set only when invalid"""
    valid: bool
    reason: Optional[str] = None
    identity_id: Optional[int] = None
    tenant_id: Optional[int] = None
    expires_at: Optional[datetime] = None
