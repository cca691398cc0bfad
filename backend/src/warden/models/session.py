"""AuthSession SQLAlchemy model"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Index
from sqlalchemy.orm import relationship

from .base import Base, as_utc, created_at_column, utcnow


class AuthSession(Base):
    """Refresh credential for one authenticated device or browser.

    Only the SHA-256 of the refresh token is stored. Sessions are never
    deleted: revocation sets revoked_at/revoked_by_ip. A session is usable
    only while it is unrevoked, unexpired and its identity is active.
    """
    __tablename__ = "auth_session"
    __table_args__ = (
        Index("ix_auth_session_identity_id", "identity_id"),
        Index("ix_auth_session_token_hash", "token_hash", unique=True),
        Index("ix_auth_session_previous_token_hash", "previous_token_hash"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    identity_id = Column(Integer, ForeignKey("identity.id", ondelete="RESTRICT"), nullable=False)
    token_hash = Column(String(64), nullable=False)
    previous_token_hash = Column(String(64), nullable=True)
    rotated_at = Column(DateTime(timezone=True), nullable=True)
    device_info = Column(Text, nullable=True)
    ip_address = Column(String(64), nullable=True)
    mfa_verified = Column(Boolean, nullable=False, default=False)
    created_at = created_at_column()
    last_active_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by_ip = Column(String(64), nullable=True)

    identity = relationship("Identity", back_populates="sessions")

    def is_expired(self, now) -> bool:
        return as_utc(self.expires_at) <= now

    def rotated_within(self, now, seconds: int) -> bool:
        """True if the token was rotated no more than `seconds` before now."""
        if self.rotated_at is None or seconds <= 0:
            return False
        return (now - as_utc(self.rotated_at)).total_seconds() <= seconds

    def state(self, now) -> str:
        """ACTIVE, REVOKED or EXPIRED, as shown in session listings."""
        if self.revoked_at is not None:
            return "REVOKED"
        if self.is_expired(now):
            return "EXPIRED"
        return "ACTIVE"
