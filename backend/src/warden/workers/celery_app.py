"""Celery application for the warden worker.

Run with:
    celery -A warden.workers.celery_app worker --loglevel=INFO
    celery -A warden.workers.celery_app beat --loglevel=INFO
"""

from celery import Celery
from celery.schedules import crontab

from ..config import get_settings

settings = get_settings()

celery_app = Celery(
    "warden",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["warden.alerts.tasks", "warden.audit.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Alert evaluation is at-most-once: acknowledge on receipt, never redeliver
    task_acks_late=False,
)

celery_app.conf.beat_schedule = {
    "audit-retention-cleanup-daily": {
        "task": "audit.retention_cleanup",
        "schedule": crontab(hour=2, minute=0),  # 02:00 UTC
        "options": {"expires": 3600},
    },
}
