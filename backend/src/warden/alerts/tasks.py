"""Celery task for out-of-band security alert evaluation."""

import logging
from typing import Any, Dict

from ..database import SessionLocal
from ..workers.base import TenantTask
from ..workers.celery_app import celery_app
from .service import evaluate_event_safely

logger = logging.getLogger(__name__)


@celery_app.task(name="alerts.evaluate_event", base=TenantTask, bind=True, ignore_result=True)
def evaluate_audit_event_task(self, audit_log_id: int, tenant_id: int) -> Dict[str, Any]:
    """Evaluate one committed audit record for security alerts.

    Enqueued after commit by CeleryAlertDispatcher. Delivery is at-most-once:
    the task is not retried, and evaluation failures are logged and dropped.

    Args:
        audit_log_id: Id of the committed audit record
        tenant_id: Tenant of the record (validated by TenantTask)

    Returns:
        Dict with the id of the raised alert, or None
    """
    session = SessionLocal()
    try:
        alert = evaluate_event_safely(session, audit_log_id, tenant_id=tenant_id)
        return {"audit_log_id": audit_log_id, "alert_id": alert.id if alert else None}
    finally:
        session.close()
