"""Pydantic schemas for audit endpoints"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AuditLogResponse(BaseModel):
    """Audit log entry response.

    Attributes:
        id: Entry id
        actor_id: Identity that performed the action (None for system jobs)
        target_id: Identity the action was performed on, if any
        action: Action code (e.g. LOGIN_SUCCESS, DMS.SUBMIT)
        entity_type / entity_id: Affected entity
        metadata: Sanitized metadata
        entry_hash: Hash chain link of this entry
    """
    id: int
    tenant_id: int
    actor_id: Optional[int]
    target_id: Optional[int]
    action: str
    entity_type: Optional[str]
    entity_id: Optional[str]
    details: Optional[str]
    metadata: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime
    entry_hash: Optional[str]

    @classmethod
    def from_record(cls, record) -> "AuditLogResponse":
        return cls(
            id=record.id,
            tenant_id=record.tenant_id,
            actor_id=record.actor_id,
            target_id=record.target_id,
            action=record.action,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            details=record.details,
            metadata=record.metadata_json,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            created_at=record.created_at,
            entry_hash=record.entry_hash,
        )


class AuditLogListResponse(BaseModel):
    items: List[AuditLogResponse]
    total: int
    page: int
    per_page: int


class RetentionCleanupRequest(BaseModel):
    retention_months: Optional[int] = Field(None, ge=1, le=1200)


class RetentionCleanupResponse(BaseModel):
    deleted_count: int
    retention_months: int
    older_than: datetime


class ChainVerificationResponse(BaseModel):
    valid: bool
    checked: int
    first_invalid_id: Optional[int] = None
