"""Tenant model - Root entity for multi-tenant isolation"""

import re

from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import relationship, validates

from .base import Base, created_at_column


class Tenant(Base):
    """
    Tenant model - isolation boundary of the platform.

    Every entity except global Permission definitions belongs to exactly one
    tenant. Identities log in with the tenant code plus their email.
    """
    __tablename__ = "tenant"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(100), nullable=False, unique=True)
    name = Column(Text, nullable=False)
    created_at = created_at_column()

    # Relationships
    identities = relationship("Identity", back_populates="tenant")
    roles = relationship("Role", back_populates="tenant")

    @validates('code')
    def validate_code(self, key, value):
        """
        Ensure the tenant code is URL-friendly.

        Pattern: ^[a-z0-9-]+$
        Valid: acme, acme-labs-2
        Invalid: Acme_Labs, acme labs

        Raises:
            ValueError: If code doesn't match pattern or length requirements
        """
        if not re.match(r'^[a-z0-9-]+$', value):
            raise ValueError(
                "Tenant code must contain only lowercase letters, numbers, and hyphens"
            )
        if len(value) < 2 or len(value) > 100:
            raise ValueError("Tenant code must be between 2 and 100 characters")
        return value

    def __repr__(self):
        return f"<Tenant(id={self.id}, code='{self.code}')>"
