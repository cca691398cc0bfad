"""Document creation and reads.

Documents start in DRAFT with a per-tenant, per-year number
(DOC-2026-00001). Every read reports the effective status.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ..audit.actions import AuditAction
from ..audit.service import AuditEntry, create_audit_log
from ..auth.context import AuthContext, check_permission
from ..clock import utcnow
from ..database import atomic
from ..errors import NotFoundError, ValidationFailedError
from ..models.document import Document
from ..models.tenant import Tenant
from ..rbac.permissions import PermissionId
from .status import DocumentStatus, EffectiveStatus
from .transitions import WorkflowAction, get_available_actions, lookup_transition

logger = logging.getLogger(__name__)

DOCUMENT_NUMBER_FORMAT = "DOC-{year}-{seq:05d}"


def effective_status_clause(status: EffectiveStatus, now: Optional[datetime] = None):
    """SQL condition matching documents whose effective status is `status`.

    Mirrors resolve_effective_status: an APPROVED document with
    expiry_date < now is EXPIRED, everything else reads as persisted.
    """
    status = EffectiveStatus(status)
    now = now or utcnow()
    approved = Document.status == DocumentStatus.APPROVED.value
    if status is EffectiveStatus.EXPIRED:
        return and_(approved, Document.expiry_date.isnot(None), Document.expiry_date < now)
    if status is EffectiveStatus.APPROVED:
        return and_(approved, or_(Document.expiry_date.is_(None), Document.expiry_date >= now))
    return Document.status == status.value


def format_document_number(year: int, sequence: int) -> str:
    """Example:
        >>> format_document_number(2026, 7)
        'DOC-2026-00007'
    """
    return DOCUMENT_NUMBER_FORMAT.format(year=year, seq=sequence)


class DocumentService:
    """Tenant-scoped document operations outside the workflow"""

    def __init__(self, db: Session):
        self.db = db

    def _next_number(self, tenant_id: int, year: int) -> str:
        prefix = f"DOC-{year}-"
        latest = (
            self.db.query(Document.document_number)
            .filter(Document.tenant_id == tenant_id, Document.document_number.like(f"{prefix}%"))
            .order_by(Document.document_number.desc())
            .first()
        )
        sequence = int(latest.document_number[len(prefix):]) + 1 if latest else 1
        return format_document_number(year, sequence)

    def create_document(
        self,
        auth: AuthContext,
        title: str,
        description: Optional[str] = None,
        expiry_date: Optional[datetime] = None,
    ) -> Document:
        """Create a DRAFT document (DMS_DOCUMENT_CREATE).

        Raises:
            ForbiddenError: Missing permission
            ValidationFailedError: Empty title
        """
        check_permission(auth, PermissionId.DMS_DOCUMENT_CREATE)
        title = (title or "").strip()
        if not title:
            raise ValidationFailedError("Title is required")

        with atomic(self.db):
            # Serializes numbering per tenant on PostgreSQL
            self.db.query(Tenant).filter(Tenant.id == auth.tenant_id).with_for_update().one()
            document = Document(
                tenant_id=auth.tenant_id,
                document_number=self._next_number(auth.tenant_id, utcnow().year),
                title=title,
                description=description,
                status=DocumentStatus.DRAFT.value,
                expiry_date=expiry_date,
                created_by_id=auth.identity_id,
                updated_by_id=auth.identity_id,
            )
            self.db.add(document)
            self.db.flush()

            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.DMS_DOCUMENT_CREATE,
                    entity_type="DOCUMENT",
                    entity_id=document.id,
                    details=f"Document {document.document_number} created",
                    metadata={
                        "title": title,
                        "documentNumber": document.document_number,
                        "status": DocumentStatus.DRAFT,
                    },
                ),
                session=self.db,
            )

        self.db.refresh(document)
        logger.info(
            "Document created",
            extra={"tenant_id": auth.tenant_id, "user_id": auth.identity_id, "document_id": document.id},
        )
        return document

    def get_document(self, auth: AuthContext, document_id: str) -> Document:
        """Read one document of the caller's tenant (DMS_DOCUMENT_READ).

        Raises:
            ForbiddenError: Missing permission
            NotFoundError: Absent or in another tenant
        """
        check_permission(auth, PermissionId.DMS_DOCUMENT_READ)
        document = (
            self.db.query(Document)
            .filter(Document.id == document_id, Document.tenant_id == auth.tenant_id)
            .first()
        )
        if document is None:
            raise NotFoundError("Document not found")
        return document

    def list_documents(
        self,
        auth: AuthContext,
        status: Optional[EffectiveStatus] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> tuple[List[Document], int]:
        """Tenant documents, newest first (DMS_VIEW).

        The status filter matches the effective status, so EXPIRED selects
        lapsed APPROVED documents and APPROVED excludes them.
        """
        check_permission(auth, PermissionId.DMS_VIEW)
        query = self.db.query(Document).filter(Document.tenant_id == auth.tenant_id)
        if status is not None:
            query = query.filter(effective_status_clause(status))
        total = query.count()
        items = (
            query.order_by(Document.created_at.desc(), Document.document_number.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    @staticmethod
    def allowed_actions(document: Document, auth: AuthContext) -> List[WorkflowAction]:
        """Actions the caller could apply right now (table and permissions)."""
        effective = document.effective_status
        return [
            action
            for action in get_available_actions(effective)
            if auth.has(lookup_transition(effective, action).permission)
        ]
