"""SecurityAlert SQLAlchemy model"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, Text, CheckConstraint, Index

from .base import Base, created_at_column, tenant_id_column


class SecurityAlert(Base):
    """Alert derived asynchronously from audit events.

    Feeds the security dashboard only; never consulted for authorization.
    """
    __tablename__ = "security_alert"
    __table_args__ = (
        CheckConstraint(
            "severity IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')",
            name="ck_security_alert_severity",
        ),
        Index("ix_security_alert_tenant_id_created_at", "tenant_id", "created_at"),
        Index("ix_security_alert_identity_id_type", "identity_id", "alert_type"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = tenant_id_column(index=False)
    identity_id = Column(Integer, ForeignKey("identity.id", ondelete="CASCADE"), nullable=False)
    audit_log_id = Column(Integer, nullable=True, unique=True)
    alert_type = Column(String(50), nullable=False)
    severity = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = created_at_column()
