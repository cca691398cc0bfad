"""Security alert evaluation.

AlertService inspects one committed audit record at a time and may raise a
SecurityAlert. Evaluation runs out of band (Celery worker) and is
best-effort: evaluate_event_safely logs and swallows every failure.

Rules:
- LOGIN_FAILED: repeated failures for one identity inside the window
  (HIGH at the threshold, CRITICAL at twice the threshold), at most one
  unread alert per identity per window
- MFA_DISABLED: MEDIUM
- USER_MFA_RESET_BY_ADMIN: HIGH, owned by the reset identity
- REFRESH_TOKEN_REUSE: CRITICAL
- SESSION_REVOKED_ALL: LOW
"""

import logging
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ..audit.actions import AuditAction
from ..auth.context import AuthContext, check_permission
from ..clock import utcnow, as_utc
from ..config import get_settings
from ..database import atomic
from ..errors import NotFoundError
from ..models.audit_log import AuditLog
from ..models.identity import Identity
from ..models.security_alert import SecurityAlert
from ..rbac.permissions import PermissionId

logger = logging.getLogger(__name__)


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# action -> (alert type, severity, message)
SIMPLE_RULES: Dict[str, Tuple[str, AlertSeverity, str]] = {
    AuditAction.MFA_DISABLED.value: (
        "MFA_DISABLED", AlertSeverity.MEDIUM, "Multi-factor authentication was disabled"
    ),
    AuditAction.USER_MFA_RESET_BY_ADMIN.value: (
        "MFA_RESET_BY_ADMIN", AlertSeverity.HIGH, "Multi-factor authentication was reset by an administrator"
    ),
    AuditAction.REFRESH_TOKEN_REUSE.value: (
        "REFRESH_TOKEN_REUSE", AlertSeverity.CRITICAL, "A rotated refresh token was presented again; the session was revoked"
    ),
    AuditAction.SESSION_REVOKED_ALL.value: (
        "ALL_SESSIONS_REVOKED", AlertSeverity.LOW, "All sessions were signed out"
    ),
}

REPEATED_FAILED_LOGINS = "REPEATED_FAILED_LOGINS"


class AlertService:
    """Derive security alerts from audit records"""

    def __init__(self, db: Session):
        self.db = db
        settings = get_settings()
        self.failed_login_threshold = settings.ALERT_FAILED_LOGIN_THRESHOLD
        self.failed_login_window = timedelta(minutes=settings.ALERT_FAILED_LOGIN_WINDOW_MINUTES)

    @staticmethod
    def _owner_id(record: AuditLog) -> Optional[int]:
        # Admin actions are owned by the identity they were performed on
        return record.target_id or record.actor_id

    def _already_alerted(self, record: AuditLog) -> bool:
        return (
            self.db.query(SecurityAlert.id)
            .filter(SecurityAlert.audit_log_id == record.id)
            .first()
            is not None
        )

    def _evaluate_failed_login(self, record: AuditLog, owner_id: int) -> Optional[Tuple[str, AlertSeverity, str]]:
        window_start = as_utc(record.created_at) - self.failed_login_window
        failures = (
            self.db.query(AuditLog)
            .filter(
                AuditLog.tenant_id == record.tenant_id,
                AuditLog.action == AuditAction.LOGIN_FAILED.value,
                AuditLog.actor_id == owner_id,
                AuditLog.created_at >= window_start,
                AuditLog.id <= record.id,
            )
            .count()
        )
        if failures < self.failed_login_threshold:
            return None

        severity = AlertSeverity.CRITICAL if failures >= self.failed_login_threshold * 2 else AlertSeverity.HIGH
        raised = {
            row.severity
            for row in self.db.query(SecurityAlert.severity).filter(
                SecurityAlert.identity_id == owner_id,
                SecurityAlert.alert_type == REPEATED_FAILED_LOGINS,
                SecurityAlert.is_read.is_(False),
                SecurityAlert.created_at >= window_start,
            )
        }
        # One unread alert per window, plus one escalation to CRITICAL
        if severity.value in raised or AlertSeverity.CRITICAL.value in raised:
            return None

        minutes = int(self.failed_login_window.total_seconds() // 60)
        return (
            REPEATED_FAILED_LOGINS,
            severity,
            f"{failures} failed login attempts within {minutes} minutes",
        )

    def evaluate_event(self, record: AuditLog) -> Optional[SecurityAlert]:
        """Evaluate one audit record; commit and return a new alert, if any."""
        owner_id = self._owner_id(record)
        if owner_id is None:
            return None

        if record.action == AuditAction.LOGIN_FAILED.value:
            outcome = self._evaluate_failed_login(record, owner_id)
        else:
            outcome = SIMPLE_RULES.get(record.action)

        if outcome is None or self._already_alerted(record):
            return None

        alert_type, severity, message = outcome
        with atomic(self.db):
            alert = SecurityAlert(
                tenant_id=record.tenant_id,
                identity_id=owner_id,
                audit_log_id=record.id,
                alert_type=alert_type,
                severity=severity.value,
                message=message,
                created_at=utcnow(),
            )
            self.db.add(alert)

        logger.info(
            "Security alert raised",
            extra={
                "tenant_id": record.tenant_id,
                "user_id": owner_id,
                "alert_type": alert_type,
                "severity": severity.value,
            },
        )
        return alert

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    def list_alerts(
        self,
        auth: AuthContext,
        severity: Optional[AlertSeverity] = None,
        is_read: Optional[bool] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> Tuple[List[SecurityAlert], int]:
        """Alerts of the caller's tenant, newest first (AUDIT_VIEW)."""
        check_permission(auth, PermissionId.AUDIT_VIEW)
        query = self.db.query(SecurityAlert).filter(SecurityAlert.tenant_id == auth.tenant_id)
        if severity is not None:
            query = query.filter(SecurityAlert.severity == AlertSeverity(severity).value)
        if is_read is not None:
            query = query.filter(SecurityAlert.is_read.is_(is_read))
        total = query.count()
        items = (
            query.order_by(SecurityAlert.created_at.desc(), SecurityAlert.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
            .all()
        )
        return items, total

    def mark_read(self, auth: AuthContext, alert_id: int) -> SecurityAlert:
        check_permission(auth, PermissionId.AUDIT_VIEW)
        with atomic(self.db):
            alert = (
                self.db.query(SecurityAlert)
                .filter(SecurityAlert.id == alert_id, SecurityAlert.tenant_id == auth.tenant_id)
                .first()
            )
            if alert is None:
                raise NotFoundError("Alert not found")
            alert.is_read = True
        return alert

    def security_stats(self, auth: AuthContext) -> Dict[str, Any]:
        """MFA adoption, failed logins in the last 24 hours and unread serious alerts."""
        check_permission(auth, PermissionId.AUDIT_VIEW)
        identities = self.db.query(Identity).filter(
            Identity.tenant_id == auth.tenant_id, Identity.is_active.is_(True)
        )
        total = identities.count()
        with_mfa = identities.filter(Identity.mfa_enabled.is_(True)).count()
        failed_logins = (
            self.db.query(AuditLog)
            .filter(
                AuditLog.tenant_id == auth.tenant_id,
                AuditLog.action == AuditAction.LOGIN_FAILED.value,
                AuditLog.created_at >= utcnow() - timedelta(hours=24),
            )
            .count()
        )
        unread_serious = (
            self.db.query(SecurityAlert)
            .filter(
                SecurityAlert.tenant_id == auth.tenant_id,
                SecurityAlert.is_read.is_(False),
                SecurityAlert.severity.in_([AlertSeverity.HIGH.value, AlertSeverity.CRITICAL.value]),
            )
            .count()
        )
        return {
            "active_identities": total,
            "mfa_enabled_identities": with_mfa,
            "mfa_adoption_rate": round(with_mfa / total, 4) if total else 0.0,
            "failed_logins_24h": failed_logins,
            "unread_high_alerts": unread_serious,
        }


def evaluate_event_safely(db: Session, audit_log_id: int, tenant_id: Optional[int] = None) -> Optional[SecurityAlert]:
    """Evaluate an audit record by id, never raising.

    Alert evaluation must not affect the request that produced the record;
    every failure is logged and dropped.
    """
    try:
        query = db.query(AuditLog).filter(AuditLog.id == audit_log_id)
        if tenant_id is not None:
            query = query.filter(AuditLog.tenant_id == tenant_id)
        record = query.first()
        if record is None:
            # Removed by retention before the worker got to it
            logger.info("Audit record no longer exists", extra={"audit_log_id": audit_log_id})
            return None
        return AlertService(db).evaluate_event(record)
    except Exception:
        logger.error(
            "Alert evaluation failed",
            extra={"audit_log_id": audit_log_id, "tenant_id": tenant_id},
            exc_info=True,
        )
        return None
