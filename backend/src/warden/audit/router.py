"""Audit log endpoints.

Audit records cannot be created, updated or deleted through the API except
by the permission-gated retention cleanup, which is itself audited.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.context import AuthContext
from ..auth.dependencies import CurrentAuth, require_permission
from ..database import get_db
from ..rbac.permissions import PermissionId
from .schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    ChainVerificationResponse,
    RetentionCleanupRequest,
    RetentionCleanupResponse,
)
from .service import AuditService

router = APIRouter(prefix="/audit", tags=["Audit Logs"])


@router.get("", response_model=AuditLogListResponse)
def query_audit_logs(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_permission(PermissionId.AUDIT_VIEW)),
    action: Optional[str] = Query(None, description="Filter by action code (e.g. LOGIN_FAILED, DMS.SUBMIT)"),
    entity_type: Optional[str] = Query(None, description="Filter by entity type (e.g. DOCUMENT, SESSION)"),
    entity_id: Optional[str] = Query(None),
    actor_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None, description="Minimum created_at (ISO 8601)"),
    end_date: Optional[datetime] = Query(None, description="Maximum created_at (ISO 8601)"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
) -> AuditLogListResponse:
    """Query the tenant's audit trail, newest first (AUDIT_VIEW)."""
    items, total = AuditService(db).list_logs(
        auth.tenant_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        per_page=per_page,
    )
    return AuditLogListResponse(
        items=[AuditLogResponse.from_record(r) for r in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.post("/cleanup", response_model=RetentionCleanupResponse)
def cleanup_audit_logs(
    auth: CurrentAuth,
    db: Session = Depends(get_db),
    body: Optional[RetentionCleanupRequest] = None,
) -> RetentionCleanupResponse:
    """Delete records older than the retention period (ADMIN_ACCESS).

    retention_months defaults to AUDIT_RETENTION_DEFAULT_MONTHS.
    """
    months = body.retention_months if body else None
    return RetentionCleanupResponse(**AuditService(db).cleanup(auth, months))


@router.get("/verify", response_model=ChainVerificationResponse)
def verify_audit_chain(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_permission(PermissionId.AUDIT_VIEW)),
) -> ChainVerificationResponse:
    """Recompute the tenant's hash chain and report the first broken entry."""
    result = AuditService(db).verify_tenant_chain(auth.tenant_id)
    return ChainVerificationResponse(valid=result.valid, checked=result.checked, first_invalid_id=result.first_invalid_id)
