"""MfaBackupCode SQLAlchemy model"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from .base import Base, created_at_column


class MfaBackupCode(Base):
    """Single-use fallback code, stored only as a salted Argon2id hash"""
    __tablename__ = "mfa_backup_code"

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity_id = Column(Integer, ForeignKey("identity.id", ondelete="CASCADE"), nullable=False, index=True)
    code_hash = Column(Text, nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = created_at_column()

    identity = relationship("Identity", back_populates="backup_codes")
