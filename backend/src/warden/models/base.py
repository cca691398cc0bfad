"""Declarative base and column helpers shared by all models.

Timestamps are timezone-aware and default to UTC now. Tenant-scoped tables
reference tenant(id) with RESTRICT, because identities and audit records
are never deleted by cascading from their tenant.
"""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, TypeDecorator
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

from ..clock import as_utc, utcnow  # noqa: F401  (re-exported for models)


class PortableJSONB(TypeDecorator):
    """JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


def tenant_id_column(index: bool = True) -> Column:
    """tenant_id INTEGER NOT NULL REFERENCES tenant(id).

    Pass index=False when a composite index in __table_args__ already leads
    with tenant_id.
    """
    return Column(Integer, ForeignKey("tenant.id", ondelete="RESTRICT"), nullable=False, index=index)


def created_at_column() -> Column:
    return Column(DateTime(timezone=True), nullable=False, default=utcnow)


def updated_at_column() -> Column:
    return Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


Base = declarative_base()
