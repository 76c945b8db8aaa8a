"""Expose Celery configuration objects for convenient imports."""
from .celery import celery_app
from .beat import CELERY_BEAT_SCHEDULE, RECONCILE_TASK_NAME

__all__ = ["celery_app", "CELERY_BEAT_SCHEDULE", "RECONCILE_TASK_NAME"]
