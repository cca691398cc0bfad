"""Pydantic schemas for role administration"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class PermissionResponse(BaseModel):
    id: int
    code: str
    description: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class RoleCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    permission_ids: List[int] = []


class RoleUpdate(BaseModel):
    """Only provided fields change; permission_ids replaces the whole set"""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    permission_ids: Optional[List[int]] = None


class RoleResponse(BaseModel):
    id: int
    tenant_id: int
    name: str
    description: Optional[str]
    is_system: bool
    permission_ids: List[int]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RoleAssignmentRequest(BaseModel):
    role_ids: List[int]
