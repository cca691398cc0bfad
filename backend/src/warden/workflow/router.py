"""Document and workflow API endpoints"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from ..audit.service import AuditService, get_client_ip
from ..auth.dependencies import CurrentAuth
from ..database import get_db
from .documents import DocumentService
from .engine import WorkflowEngine
from .schemas import (
    DocumentCreate,
    DocumentListResponse,
    DocumentResponse,
    WorkflowActionRequest,
    WorkflowHistoryEntry,
)
from .status import EffectiveStatus

router = APIRouter(prefix="/dms/documents", tags=["Documents"])


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def create_document(body: DocumentCreate, auth: CurrentAuth, db: Session = Depends(get_db)) -> DocumentResponse:
    service = DocumentService(db)
    document = service.create_document(auth, body.title, body.description, body.expiry_date)
    return DocumentResponse.from_document(document, service.allowed_actions(document, auth))


@router.get("", response_model=DocumentListResponse)
def list_documents(
    auth: CurrentAuth,
    db: Session = Depends(get_db),
    status_filter: Optional[EffectiveStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
) -> DocumentListResponse:
    service = DocumentService(db)
    items, total = service.list_documents(auth, status_filter, page, per_page)
    return DocumentListResponse(
        items=[DocumentResponse.from_document(d) for d in items],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/{document_id}", response_model=DocumentResponse)
def get_document(document_id: str, auth: CurrentAuth, db: Session = Depends(get_db)) -> DocumentResponse:
    service = DocumentService(db)
    document = service.get_document(auth, document_id)
    return DocumentResponse.from_document(document, service.allowed_actions(document, auth))


@router.post("/{document_id}/workflow", response_model=DocumentResponse)
def execute_workflow_action(
    document_id: str,
    body: WorkflowActionRequest,
    request: Request,
    auth: CurrentAuth,
    db: Session = Depends(get_db),
) -> DocumentResponse:
    """Apply submit, approve, reject, revise or obsolete.

    Errors:
        404 NOT_FOUND, 409 INVALID_TRANSITION, 403 FORBIDDEN, 422 VALIDATION_ERROR
    """
    document = WorkflowEngine(db).execute_action(
        document_id,
        auth.tenant_id,
        body.action,
        auth,
        comment=body.comment,
        ip_address=get_client_ip(request),
    )
    return DocumentResponse.from_document(document, DocumentService.allowed_actions(document, auth))


@router.get("/{document_id}/history", response_model=List[WorkflowHistoryEntry])
def get_document_history(
    document_id: str,
    response: Response,
    auth: CurrentAuth,
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=500),
) -> List[WorkflowHistoryEntry]:
    """Creation and workflow steps of a document, oldest first (DMS_DOCUMENT_READ).

    Paginated; the total number of steps is returned in X-Total-Count.
    """
    document = DocumentService(db).get_document(auth, document_id)
    records, total = AuditService(db).list_logs(
        auth.tenant_id,
        entity_type="DOCUMENT",
        entity_id=document.id,
        page=page,
        per_page=per_page,
        oldest_first=True,
    )
    response.headers["X-Total-Count"] = str(total)
    return [
        WorkflowHistoryEntry(
            id=r.id,
            action=r.action,
            actor_id=r.actor_id,
            details=r.details,
            metadata=r.metadata_json,
            created_at=r.created_at,
        )
        for r in records
    ]
