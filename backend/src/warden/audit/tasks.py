"""Celery task for audit log retention cleanup."""

import logging
from typing import Any, Dict, Optional

from ..database import SessionLocal
from ..workers.celery_app import celery_app
from .service import run_global_retention_cleanup

logger = logging.getLogger(__name__)


@celery_app.task(name="audit.retention_cleanup", bind=True)
def audit_retention_cleanup_task(self, retention_months: Optional[int] = None) -> Dict[str, Any]:
    """Delete audit records past the retention period for every tenant.

    Scheduled daily at 02:00 UTC by Celery Beat (see warden.workers.celery_app).
    Idempotent: a second run finds nothing further to delete.

    Returns:
        Dict with tenants_processed, deleted_count and errors
    """
    session = SessionLocal()
    try:
        return run_global_retention_cleanup(session, retention_months)
    finally:
        session.close()
