"""Celery beat schedule.

The reconciliation pass is the only periodic job; its cadence comes from
RECONCILE__INTERVAL_SECONDS.
"""
from __future__ import annotations

from core.config import settings

RECONCILE_TASK_NAME = "invoices.reconcile"

CELERY_BEAT_SCHEDULE = {
    "invoice-reconciliation": {
        "task": RECONCILE_TASK_NAME,
        "schedule": settings.reconcile.interval_seconds,
        "options": {"queue": "default", "expires": settings.reconcile.interval_seconds},
    },
}
