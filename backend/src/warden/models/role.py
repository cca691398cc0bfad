"""Role, Permission and their association models"""

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship

from .base import Base, created_at_column, tenant_id_column, updated_at_column, utcnow


class Permission(Base):
    """Global capability, identical for every tenant.

    Seeded once with fixed numeric ids (see warden.rbac.permissions). Ids are
    the authorization contract; codes are never repurposed.
    """
    __tablename__ = "permission"

    id = Column(Integer, primary_key=True, autoincrement=False)
    code = Column(String(100), nullable=False, unique=True)
    description = Column(Text, nullable=True)

    def __repr__(self):
        return f"<Permission(id={self.id}, code='{self.code}')>"


class Role(Base):
    """Tenant-scoped named bundle of permissions.

    System roles are seeded per tenant and cannot be deleted.
    """
    __tablename__ = "role"
    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_role_tenant_name"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = tenant_id_column()
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, nullable=False, default=False)
    created_at = created_at_column()
    updated_at = updated_at_column()

    # Relationships
    tenant = relationship("Tenant", back_populates="roles")
    grants = relationship("RolePermission", back_populates="role", cascade="all, delete-orphan")
    assignments = relationship("IdentityRole", back_populates="role", cascade="all, delete-orphan")

    @property
    def permission_ids(self):
        return sorted(grant.permission_id for grant in self.grants)


class RolePermission(Base):
    """Grant of one permission to one role"""
    __tablename__ = "role_permission"

    role_id = Column(Integer, ForeignKey("role.id", ondelete="CASCADE"), primary_key=True)
    permission_id = Column(Integer, ForeignKey("permission.id", ondelete="RESTRICT"), primary_key=True)

    role = relationship("Role", back_populates="grants")
    permission = relationship("Permission")


class IdentityRole(Base):
    """Assignment of one role to one identity"""
    __tablename__ = "identity_role"
    __table_args__ = (
        Index("ix_identity_role_role_id", "role_id"),
    )

    identity_id = Column(Integer, ForeignKey("identity.id", ondelete="CASCADE"), primary_key=True)
    role_id = Column(Integer, ForeignKey("role.id", ondelete="CASCADE"), primary_key=True)
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    identity = relationship("Identity", back_populates="role_assignments")
    role = relationship("Role", back_populates="assignments")
