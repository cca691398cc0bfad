"""Pydantic schemas for document endpoints"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ..models.document import Document
from .engine import MAX_COMMENT_LENGTH
from .status import EffectiveStatus
from .transitions import WorkflowAction


class DocumentCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=10000)
    expiry_date: Optional[datetime] = None


class WorkflowActionRequest(BaseModel):
    """Body of POST /dms/documents/{id}/workflow"""
    action: WorkflowAction
    comment: Optional[str] = Field(None, max_length=MAX_COMMENT_LENGTH)


class DocumentResponse(BaseModel):
    """Document as every reader sees it.

    status is the effective status: an APPROVED document past its expiry
    date is reported as EXPIRED.
    """
    id: str
    tenant_id: int
    document_number: str
    title: str
    description: Optional[str]
    status: EffectiveStatus
    expiry_date: Optional[datetime]
    current_version_id: Optional[str]
    created_by_id: Optional[int]
    updated_by_id: Optional[int]
    created_at: datetime
    updated_at: datetime
    allowed_actions: List[WorkflowAction] = []

    @classmethod
    def from_document(cls, document: Document, allowed_actions=None) -> "DocumentResponse":
        return cls(
            id=document.id,
            tenant_id=document.tenant_id,
            document_number=document.document_number,
            title=document.title,
            description=document.description,
            status=document.effective_status,
            expiry_date=document.expiry_date,
            current_version_id=document.current_version_id,
            created_by_id=document.created_by_id,
            updated_by_id=document.updated_by_id,
            created_at=document.created_at,
            updated_at=document.updated_at,
            allowed_actions=allowed_actions or [],
        )


class DocumentListResponse(BaseModel):
    items: List[DocumentResponse]
    total: int
    page: int
    per_page: int


class WorkflowHistoryEntry(BaseModel):
    """One workflow step, read back from the audit trail"""
    id: int
    action: str
    actor_id: Optional[int]
    details: Optional[str]
    metadata: Optional[Dict[str, Any]]
    created_at: datetime
