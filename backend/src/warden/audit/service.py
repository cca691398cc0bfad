"""Audit logging service.

Every state change and administrative action is recorded through
create_audit_log. Audit writes are load-bearing: a failed write propagates
and fails the surrounding transaction, because an unaudited privileged
mutation is worse than a failed one.

Write path:
1. Metadata is sanitized for the action (see warden.audit.sanitizer)
2. The record is linked to the tenant's previous record (hash chain)
3. The record is flushed inside the caller's session, or committed in its
   own session when no session is supplied
4. After commit, the record is handed to alert evaluation
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request
from sqlalchemy.orm import Session

from ..alerts.dispatch import queue_alert_evaluation
from ..auth.context import AuthContext, check_permission
from ..clock import utcnow
from ..config import get_settings
from ..database import SessionLocal, atomic
from ..errors import ValidationFailedError
from ..models.audit_log import AuditLog
from ..models.tenant import Tenant
from ..rbac.permissions import PermissionId
from .actions import AuditAction
from .chain import GENESIS_HASH, ChainVerification, compute_entry_hash, entry_payload, verify_chain
from .sanitizer import sanitize_metadata

logger = logging.getLogger(__name__)

MAX_DETAILS_LENGTH = 1000


@dataclass
class AuditEntry:
    """Parameters of one audit record before sanitization"""

    tenant_id: int
    action: str
    actor_id: Optional[int] = None
    target_id: Optional[int] = None
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = field(default=None)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_auth(cls, auth: AuthContext, action: str, **kwargs) -> "AuditEntry":
        """Entry attributed to the authenticated caller."""
        kwargs.setdefault("ip_address", auth.ip_address)
        kwargs.setdefault("user_agent", auth.user_agent)
        return cls(tenant_id=auth.tenant_id, action=action, actor_id=auth.identity_id, **kwargs)


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, preferring the first X-Forwarded-For hop."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("User-Agent")


def chain_head_lock(db: Session, tenant_id: int):
    """Row lock on the tenant that serializes its audit writers.

    Held until the writer's transaction ends, so the next writer reads the
    chain head only after the previous record is committed. Locking the
    latest audit row instead would leave an empty chain unguarded.
    """
    return db.query(Tenant.id).filter(Tenant.id == tenant_id).with_for_update()


def _latest_hash(db: Session, tenant_id: int) -> str:
    chain_head_lock(db, tenant_id).one()
    latest = (
        db.query(AuditLog.entry_hash)
        .filter(AuditLog.tenant_id == tenant_id)
        .order_by(AuditLog.id.desc())
        .first()
    )
    return latest.entry_hash if latest else GENESIS_HASH


def _write(db: Session, entry: AuditEntry) -> AuditLog:
    action = entry.action.value if isinstance(entry.action, AuditAction) else str(entry.action)
    details = entry.details
    if details and len(details) > MAX_DETAILS_LENGTH:
        details = details[:MAX_DETAILS_LENGTH] + "..."

    record = AuditLog(
        tenant_id=entry.tenant_id,
        actor_id=entry.actor_id,
        target_id=entry.target_id,
        action=action,
        entity_type=entry.entity_type,
        entity_id=str(entry.entity_id) if entry.entity_id is not None else None,
        details=details,
        metadata_json=sanitize_metadata(action, entry.metadata),
        ip_address=entry.ip_address,
        user_agent=entry.user_agent,
        created_at=utcnow(),
    )
    record.previous_hash = _latest_hash(db, entry.tenant_id)
    record.entry_hash = compute_entry_hash(record.previous_hash, entry_payload(record))

    db.add(record)
    db.flush()  # Get ID without committing transaction

    queue_alert_evaluation(db, record.tenant_id, record.id)
    return record


def create_audit_log(entry: AuditEntry, session: Optional[Session] = None) -> AuditLog:
    """Create an audit log entry.

    Args:
        entry: Audit parameters; metadata is sanitized before storage
        session: Caller's session. When given, the record is flushed inside
            the caller's transaction and commits or rolls back with it. When
            omitted, the record is written and committed standalone.

    Returns:
        AuditLog: The created audit log entry

    Raises:
        SQLAlchemyError: The write failed; the caller's transaction must not
            commit

    Example:
        with atomic(db):
            session_row.revoked_at = utcnow()
            create_audit_log(
                AuditEntry.from_auth(auth, AuditAction.SESSION_REVOKED,
                                     entity_type="SESSION", entity_id=session_row.id),
                session=db,
            )
    """
    if session is not None:
        return _write(session, entry)

    own_session = SessionLocal()
    try:
        record = _write(own_session, entry)
        own_session.commit()
        own_session.refresh(record)
        own_session.expunge(record)
        return record
    except Exception:
        own_session.rollback()
        logger.error(
            "Failed to write audit log",
            extra={"tenant_id": entry.tenant_id, "action": str(entry.action)},
            exc_info=True,
        )
        raise
    finally:
        own_session.close()


def subtract_months(value: datetime, months: int) -> datetime:
    """Same day-of-month `months` earlier, clamped to the month's last day."""
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


class AuditService:
    """Read, verify and prune a tenant's audit trail"""

    def __init__(self, db: Session):
        self.db = db

    def list_logs(
        self,
        tenant_id: int,
        action: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        actor_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        per_page: int = 50,
        oldest_first: bool = False,
    ) -> Tuple[List[AuditLog], int]:
        """Tenant-scoped records, newest first unless oldest_first, with the total count."""
        query = self.db.query(AuditLog).filter(AuditLog.tenant_id == tenant_id)

        if action:
            query = query.filter(AuditLog.action == action)
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id:
            query = query.filter(AuditLog.entity_id == entity_id)
        if actor_id:
            query = query.filter(AuditLog.actor_id == actor_id)
        if start_date:
            query = query.filter(AuditLog.created_at >= start_date)
        if end_date:
            query = query.filter(AuditLog.created_at <= end_date)

        total = query.count()
        if oldest_first:
            ordering = (AuditLog.created_at.asc(), AuditLog.id.asc())
        else:
            ordering = (AuditLog.created_at.desc(), AuditLog.id.desc())
        items = (
            query.order_by(*ordering)
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def verify_tenant_chain(self, tenant_id: int) -> ChainVerification:
        entries = (
            self.db.query(AuditLog)
            .filter(AuditLog.tenant_id == tenant_id)
            .order_by(AuditLog.id.asc())
            .all()
        )
        result = verify_chain(entries)
        if not result.valid:
            logger.error(
                "Audit hash chain verification failed",
                extra={"tenant_id": tenant_id, "audit_log_id": result.first_invalid_id},
            )
        return result

    def _delete_older_than(self, tenant_id: int, cutoff: datetime) -> int:
        return (
            self.db.query(AuditLog)
            .filter(AuditLog.tenant_id == tenant_id, AuditLog.created_at < cutoff)
            .delete(synchronize_session=False)
        )

    def cleanup(self, auth: AuthContext, retention_months: Optional[int] = None) -> Dict[str, Any]:
        """Delete the caller's tenant records older than the retention period.

        The cleanup itself is audited, in the same transaction.

        Args:
            auth: Caller; requires ADMIN_ACCESS
            retention_months: Months to keep (>= 1, default from settings)

        Returns:
            Dict with deleted_count, retention_months, older_than

        Raises:
            ForbiddenError: Caller lacks ADMIN_ACCESS
            ValidationFailedError: retention_months < 1
        """
        check_permission(auth, PermissionId.ADMIN_ACCESS)
        months = retention_months if retention_months is not None else get_settings().AUDIT_RETENTION_DEFAULT_MONTHS
        if months < 1:
            raise ValidationFailedError("retention_months must be at least 1")

        cutoff = subtract_months(utcnow(), months)
        with atomic(self.db):
            deleted = self._delete_older_than(auth.tenant_id, cutoff)
            create_audit_log(
                AuditEntry.from_auth(
                    auth,
                    AuditAction.AUDIT_RETENTION_CLEANUP,
                    entity_type="AUDIT_LOG",
                    details=f"Deleted {deleted} audit log entries older than {months} months",
                    metadata={
                        "retentionMonths": months,
                        "deletedCount": deleted,
                        "olderThan": cutoff,
                    },
                ),
                session=self.db,
            )

        logger.info(
            "Audit retention cleanup completed",
            extra={"tenant_id": auth.tenant_id, "user_id": auth.identity_id, "deleted_count": deleted},
        )
        return {"deleted_count": deleted, "retention_months": months, "older_than": cutoff}


def run_global_retention_cleanup(db: Session, retention_months: Optional[int] = None) -> Dict[str, Any]:
    """Apply the retention period to every tenant (scheduled job).

    Each tenant is cleaned in its own transaction; a failure in one tenant is
    logged and does not stop the others.
    """
    months = retention_months or get_settings().AUDIT_RETENTION_DEFAULT_MONTHS
    if months < 1:
        raise ValueError("retention_months must be at least 1")

    cutoff = subtract_months(utcnow(), months)
    service = AuditService(db)
    stats = {"tenants_processed": 0, "deleted_count": 0, "errors": 0}

    for (tenant_id,) in db.query(Tenant.id).order_by(Tenant.id).all():
        try:
            with atomic(db):
                deleted = service._delete_older_than(tenant_id, cutoff)
                if deleted:
                    create_audit_log(
                        AuditEntry(
                            tenant_id=tenant_id,
                            action=AuditAction.AUDIT_RETENTION_CLEANUP,
                            entity_type="AUDIT_LOG",
                            details=f"Scheduled cleanup deleted {deleted} entries older than {months} months",
                            metadata={"retentionMonths": months, "deletedCount": deleted, "olderThan": cutoff},
                        ),
                        session=db,
                    )
            stats["deleted_count"] += deleted
        except Exception:
            stats["errors"] += 1
            logger.error("Audit retention cleanup failed", extra={"tenant_id": tenant_id}, exc_info=True)
        stats["tenants_processed"] += 1

    logger.info("Global audit retention cleanup completed", extra=stats)
    return stats
