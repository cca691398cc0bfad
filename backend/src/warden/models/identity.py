"""Identity SQLAlchemy model"""

import re

from sqlalchemy import Boolean, Column, DateTime, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship, validates

from .base import Base, created_at_column, tenant_id_column, updated_at_column


class Identity(Base):
    """A user of exactly one tenant.

    Identities are never physically deleted; they are deactivated instead so
    audit records keep pointing at a real row. Passwords are hashed using
    Argon2id; the hash is null while the account is pending activation.
    """
    __tablename__ = "identity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = tenant_id_column()
    email = Column(Text, nullable=False)
    name = Column(Text, nullable=False)
    password_hash = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    mfa_enabled = Column(Boolean, nullable=False, default=False)
    mfa_secret = Column(Text, nullable=True)  # AES-GCM sealed, see warden.mfa.secret_box
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = created_at_column()
    updated_at = updated_at_column()

    # Relationships
    tenant = relationship("Tenant", back_populates="identities")
    role_assignments = relationship(
        "IdentityRole", back_populates="identity", cascade="all, delete-orphan"
    )
    sessions = relationship("AuthSession", back_populates="identity")
    backup_codes = relationship("MfaBackupCode", back_populates="identity")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'email', name='uq_identity_tenant_email'),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation"""
        if not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', value):
            raise ValueError("Invalid email format")
        return value.lower()

    def to_dict(self):
        """Convert identity to dictionary representation (excludes credentials)"""
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "email": self.email,
            "name": self.name,
            "is_active": self.is_active,
            "mfa_enabled": self.mfa_enabled,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
