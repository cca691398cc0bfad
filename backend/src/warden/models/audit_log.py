"""AuditLog SQLAlchemy model"""

from sqlalchemy import Column, ForeignKey, Integer, String, Text, Index

from .base import Base, PortableJSONB, created_at_column, tenant_id_column


class AuditLog(Base):
    """AuditLog model for immutable security event logging.

    Records every state change and administrative action. Entries are
    append-only; the only deletion path is the permission-gated retention
    cleanup. Each entry carries an HMAC over its content and the previous
    entry's hash for the same tenant, so edits and gaps are detectable
    (see warden.audit.chain).
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("ix_audit_log_tenant_id_created_at", "tenant_id", "created_at"),
        Index("ix_audit_log_tenant_id_action", "tenant_id", "action"),
        Index("ix_audit_log_actor_id", "actor_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = tenant_id_column(index=False)
    actor_id = Column(Integer, ForeignKey("identity.id", ondelete="SET NULL"), nullable=True)
    target_id = Column(Integer, ForeignKey("identity.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(String(64), nullable=True)
    details = Column(Text, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = created_at_column()
    previous_hash = Column(String(64), nullable=False)
    entry_hash = Column(String(64), nullable=False)

    def to_dict(self):
        """Convert audit log entry to dictionary representation"""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "target_id": self.target_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "metadata": self.metadata_json,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
