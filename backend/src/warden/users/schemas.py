"""Pydantic schemas for identity administration"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class IdentityCreate(BaseModel):
    """Attributes:
        email: Unique within the tenant
        name: Display name
        password: Optional; without one the identity cannot log in yet
        role_ids: Roles of the caller's tenant to assign
    """
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    password: Optional[str] = Field(None, min_length=8, max_length=200)
    role_ids: List[int] = []


class IdentityResponse(BaseModel):
    id: int
    tenant_id: int
    email: str
    name: str
    is_active: bool
    mfa_enabled: bool
    last_login_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class IdentityListResponse(BaseModel):
    items: List[IdentityResponse]
    total: int
    page: int
    per_page: int


class DeactivateResponse(BaseModel):
    id: int
    is_active: bool
    revoked_sessions: int
