"""Hand-off of committed audit records to alert evaluation.

create_audit_log queues the new record on the SQLAlchemy session. When the
session's transaction commits, every queued record is passed to the alert
dispatcher; when it rolls back, the queue is discarded, so work that never
committed never raises alerts.

Delivery is at-most-once and best-effort: a dispatcher error is logged and
dropped, and never reaches the request that produced the audit record.

The dispatcher can be injected per session (session.info[DISPATCHER_KEY]);
otherwise ALERT_DISPATCH_MODE selects the default.
"""

import logging
from typing import Optional

from sqlalchemy import event
from sqlalchemy.orm import Session

from ..config import get_settings

logger = logging.getLogger(__name__)

PENDING_KEY = "warden.pending_alert_events"
DISPATCHER_KEY = "warden.alert_dispatcher"


class AlertDispatcher:
    """Receives (tenant_id, audit_log_id) pairs after commit."""

    def dispatch(self, tenant_id: int, audit_log_id: int) -> None:
        raise NotImplementedError


class CeleryAlertDispatcher(AlertDispatcher):
    """Enqueue evaluation on the alert worker."""

    def dispatch(self, tenant_id: int, audit_log_id: int) -> None:
        from .tasks import evaluate_audit_event_task

        evaluate_audit_event_task.delay(audit_log_id=audit_log_id, tenant_id=tenant_id)


class NullAlertDispatcher(AlertDispatcher):
    """Drop every event (ALERT_DISPATCH_MODE=disabled)."""

    def dispatch(self, tenant_id: int, audit_log_id: int) -> None:
        logger.debug("Alert dispatch disabled", extra={"audit_log_id": audit_log_id})


def get_default_dispatcher() -> AlertDispatcher:
    mode = get_settings().ALERT_DISPATCH_MODE.lower()
    if mode == "celery":
        return CeleryAlertDispatcher()
    return NullAlertDispatcher()


def queue_alert_evaluation(session: Session, tenant_id: int, audit_log_id: int) -> None:
    """Schedule evaluation of an audit record once the session commits."""
    session.info.setdefault(PENDING_KEY, []).append((tenant_id, audit_log_id))


def _resolve_dispatcher(session: Session) -> AlertDispatcher:
    dispatcher: Optional[AlertDispatcher] = session.info.get(DISPATCHER_KEY)
    return dispatcher or get_default_dispatcher()


@event.listens_for(Session, "after_commit")
def dispatch_pending_alerts(session):
    """Pass every record queued in the committed transaction to the dispatcher."""
    pending = session.info.pop(PENDING_KEY, None)
    if not pending:
        return

    dispatcher = _resolve_dispatcher(session)
    for tenant_id, audit_log_id in pending:
        try:
            dispatcher.dispatch(tenant_id, audit_log_id)
        except Exception:
            logger.warning(
                "Failed to dispatch alert evaluation",
                extra={"tenant_id": tenant_id, "audit_log_id": audit_log_id},
                exc_info=True,
            )


@event.listens_for(Session, "after_rollback")
def discard_pending_alerts(session):
    session.info.pop(PENDING_KEY, None)
