"""Document SQLAlchemy model"""

import uuid

from sqlalchemy import (
    Column, DateTime, ForeignKey, Integer, String, Text, CheckConstraint, UniqueConstraint, Index
)
from sqlalchemy.orm import validates

from .base import Base, created_at_column, tenant_id_column, updated_at_column
from ..workflow.status import DocumentStatus, EffectiveStatus, resolve_effective_status


def _new_document_id() -> str:
    return str(uuid.uuid4())


class Document(Base):
    """Tenant-scoped controlled document.

    The persisted status only ever moves through the workflow engine, which
    writes it with a guarded UPDATE statement. Assigning a different status
    to an already-initialized instance raises, so no ORM code path can
    bypass the transition table.
    """
    __tablename__ = "document"
    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED', 'OBSOLETE')",
            name="ck_document_status",
        ),
        UniqueConstraint("tenant_id", "document_number", name="uq_document_tenant_number"),
        Index("ix_document_tenant_status", "tenant_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=_new_document_id)
    tenant_id = tenant_id_column()
    document_number = Column(String(32), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=DocumentStatus.DRAFT.value)
    expiry_date = Column(DateTime(timezone=True), nullable=True)
    current_version_id = Column(String(36), nullable=True)
    created_by_id = Column(Integer, ForeignKey("identity.id", ondelete="SET NULL"), nullable=True)
    updated_by_id = Column(Integer, ForeignKey("identity.id", ondelete="SET NULL"), nullable=True)
    created_at = created_at_column()
    updated_at = updated_at_column()

    @validates("status")
    def validate_status(self, key, value):
        value = DocumentStatus(value).value
        if self.status is not None and value != self.status:
            raise ValueError("Document status can only change through the workflow engine")
        return value

    @property
    def effective_status(self) -> EffectiveStatus:
        return resolve_effective_status(self.status, self.expiry_date)

    def __repr__(self):
        return f"<Document(id='{self.id}', number='{self.document_number}', status='{self.status}')>"
