"""Invoice reconciliation Celery task."""
from __future__ import annotations

import asyncio

from celery import shared_task

from ..config.beat import RECONCILE_TASK_NAME
from ..utils.base_task import BaseTask
from core.logging_config import get_logger

logger = get_logger(__name__)


def _build_container():
    from api.container import build_container

    return build_container()


@shared_task(name=RECONCILE_TASK_NAME, bind=True, base=BaseTask, ignore_result=False)
def reconcile_invoices(self) -> dict:
    """Run one reconciliation pass and return its summary.

    Per-invoice failures are part of the summary; the task itself only fails
    when the pass cannot start (e.g. the database is unreachable).
    """

    async def _run():
        container = _build_container()
        try:
            return await container.reconciliation_service.run_pass()
        finally:
            await container.aclose()

    summary = asyncio.run(_run())
    logger.info(
        "reconcile_task_finished",
        task_id=self.request.id,
        total=summary.total,
        updated=summary.updated,
        errors=summary.errors,
    )
    return summary.model_dump(mode="json")
