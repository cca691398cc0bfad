"""Document workflow engine.

execute_action is the only code path that changes a document's persisted
status. Order of checks:
1. Load the document in the caller's tenant with a row lock
2. Look up (effective status, action) in the transition table
3. Check the transition's permission
4. Guarded UPDATE plus audit record in one transaction

An unknown document is NOT_FOUND before anything else, an unlisted pair is
INVALID_TRANSITION before permissions are looked at, and nothing is written
unless every check passed.

Comments are optional for every action, reject included. A rejection reason
is recommended to callers but not required; when given it is stored in the
audit metadata.
"""

import logging
from typing import Optional, Union

from sqlalchemy.orm import Session

from ..audit.service import AuditEntry, create_audit_log
from ..auth.context import AuthContext, check_permission
from ..clock import utcnow
from ..database import atomic
from ..errors import InvalidTransitionError, NotFoundError, ValidationFailedError
from ..models.document import Document
from .status import DocumentStatus, resolve_effective_status
from .transitions import WorkflowAction, lookup_transition

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 2000


class WorkflowEngine:
    """Apply workflow actions to documents"""

    def __init__(self, db: Session):
        self.db = db

    def _load_for_update(self, document_id: str, tenant_id: int) -> Document:
        document = (
            self.db.query(Document)
            .filter(Document.id == document_id, Document.tenant_id == tenant_id)
            .with_for_update()
            .first()
        )
        if document is None:
            raise NotFoundError("Document not found")
        return document

    def execute_action(
        self,
        document_id: str,
        tenant_id: int,
        action: Union[WorkflowAction, str],
        auth: AuthContext,
        comment: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Document:
        """Move a document along the workflow.

        Args:
            document_id: Document UUID
            tenant_id: Tenant of the caller; documents of other tenants are
                reported as not found
            action: submit, approve, reject, revise or obsolete
            auth: Caller; must hold the transition's permission
            comment: Optional comment stored in the audit metadata
            ip_address: Client IP for the audit record (defaults to auth's)

        Returns:
            The document after the transition

        Raises:
            NotFoundError: No such document in the tenant
            InvalidTransitionError: Action not allowed from the current
                effective status, or the status changed concurrently
            ForbiddenError: Caller lacks the transition's permission
            ValidationFailedError: Comment too long or unknown action

        Example:
            engine = WorkflowEngine(db)
            doc = engine.execute_action(doc_id, auth.tenant_id, "submit", auth)
            assert doc.status == "SUBMITTED"
        """
        try:
            action = WorkflowAction(action)
        except ValueError:
            raise ValidationFailedError(f"Unknown workflow action: {action}")
        if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationFailedError(f"Comment must be at most {MAX_COMMENT_LENGTH} characters")

        with atomic(self.db):
            document = self._load_for_update(document_id, tenant_id)
            from_status = DocumentStatus(document.status)
            effective = resolve_effective_status(from_status, document.expiry_date)

            transition = lookup_transition(effective, action)
            if transition is None:
                raise InvalidTransitionError(
                    f"Action '{action.value}' is not allowed in status {effective.value}"
                )

            check_permission(auth, transition.permission)

            values = {
                "status": transition.to_status.value,
                "updated_by_id": auth.identity_id,
                "updated_at": utcnow(),
            }
            expiry_cleared = from_status is DocumentStatus.APPROVED and document.expiry_date is not None
            if from_status is DocumentStatus.APPROVED:
                values["expiry_date"] = None

            # Guarded on the status that was checked
            updated = (
                self.db.query(Document)
                .filter(
                    Document.id == document.id,
                    Document.tenant_id == tenant_id,
                    Document.status == from_status.value,
                )
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                raise InvalidTransitionError("Document status changed concurrently; reload and retry")

            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    action.audit_action,
                    entity_type="DOCUMENT",
                    entity_id=document.id,
                    details=(
                        f"Action '{action.value}' completed. "
                        f"Status: {effective.value} -> {transition.to_status.value}."
                    ),
                    metadata={
                        "fromStatus": effective.value,
                        "toStatus": transition.to_status.value,
                        "comment": comment,
                        "workflowAction": action.value,
                        "expiryCleared": expiry_cleared,
                    },
                    ip_address=ip_address or auth.ip_address,
                ),
                session=self.db,
            )

        self.db.refresh(document)
        logger.info(
            "Workflow action applied",
            extra={
                "tenant_id": tenant_id,
                "user_id": auth.identity_id,
                "document_id": document.id,
                "workflow_action": action.value,
                "to_status": document.status,
            },
        )
        return document
