"""Background workers (Celery)."""
