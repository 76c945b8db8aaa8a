"""
Reconciliation poller.

One pass pulls every non-terminal invoice and brings it in line with the
processor. Invoices are handled independently with bounded concurrency,
each in its own unit of work; a failure is recorded in the summary and never
aborts the pass.
"""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from application.dtos.invoices import ReconciliationFailure, ReconciliationSummary
from application.ports.payment_processor import PaymentProcessor
from application.services.invoice_transitions import apply_processor_status
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice.entity import Invoice, InvoiceStatus
from domain.invoice.state_machine import can_transition


logger = get_logger(__name__)

UPDATED = "updated"
EXPIRED = "expired"
UNCHANGED = "unchanged"


class ReconciliationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        processor: PaymentProcessor,
        *,
        concurrency: int = 5,
        metrics=None,
    ) -> None:
        self._uow_factory = uow_factory
        self.processor = processor
        self._concurrency = max(1, concurrency)
        self._metrics = metrics

    async def run_pass(self, now: Optional[datetime] = None) -> ReconciliationSummary:
        now = now or datetime.now(timezone.utc)
        async with self._uow_factory(readonly=True) as uow:
            invoices = await uow.invoice_repository.find_non_terminal()

        summary = ReconciliationSummary(total=len(invoices))
        semaphore = asyncio.Semaphore(self._concurrency)

        async def guarded(invoice: Invoice):
            async with semaphore:
                try:
                    return invoice, await self._reconcile_one(invoice, now), None
                except Exception as exc:
                    return invoice, None, exc

        results = await asyncio.gather(*(guarded(inv) for inv in invoices))

        for invoice, outcome, error in results:
            summary.processed += 1
            if error is not None:
                summary.errors += 1
                message = getattr(error, "message", None) or str(error) or type(error).__name__
                summary.failures.append(ReconciliationFailure(invoice_id=invoice.invoice_id, error=message))
                logger.warning(
                    "reconciliation_invoice_failed",
                    invoice_id=invoice.invoice_id,
                    status=invoice.status.value,
                    error=message,
                    error_type=type(error).__name__,
                )
                if self._metrics is not None:
                    self._metrics.reconciliation_errors.inc()
            elif outcome == EXPIRED:
                summary.expired += 1
                summary.updated += 1
            elif outcome == UPDATED:
                summary.updated += 1
            else:
                summary.unchanged += 1

        if self._metrics is not None:
            self._metrics.reconciliation_runs.inc()
            self._metrics.reconciliation_updated.inc(summary.updated)
        logger.info(
            "reconciliation_pass_finished",
            total=summary.total,
            updated=summary.updated,
            expired=summary.expired,
            unchanged=summary.unchanged,
            errors=summary.errors,
        )
        return summary

    async def _reconcile_one(self, invoice: Invoice, now: datetime) -> str:
        expired = invoice.is_expired_at(now)

        if expired and can_transition(invoice.status, InvoiceStatus.EXPIRED):
            await self._set_status(invoice, InvoiceStatus.EXPIRED)
            return EXPIRED

        if invoice.status == InvoiceStatus.CREATED and not invoice.processor_invoice_id:
            if expired:
                # Creation never linked a processor payment
                await self._set_status(invoice, InvoiceStatus.FAILED)
                return UPDATED
            return UNCHANGED

        if not invoice.processor_invoice_id:
            return UNCHANGED

        processor_status = await self.processor.fetch_status(invoice.processor_invoice_id)
        target = self.processor.map_status(processor_status)
        if target is None:
            logger.warning(
                "reconciliation_unknown_status",
                invoice_id=invoice.invoice_id,
                processor_status=processor_status,
            )
            return UNCHANGED
        if target == invoice.status:
            return UNCHANGED

        async with self._uow_factory() as uow:
            fresh = await uow.invoice_repository.find_by_id(invoice.invoice_id) or invoice
            _, changed = await apply_processor_status(
                uow.invoice_repository,
                fresh,
                target,
                source="reconciliation",
                metrics=self._metrics,
            )
        return UPDATED if changed else UNCHANGED

    async def _set_status(self, invoice: Invoice, status: InvoiceStatus) -> None:
        async with self._uow_factory() as uow:
            await uow.invoice_repository.update_status(invoice.invoice_id, status)
        if self._metrics is not None:
            self._metrics.transition(status.value, "reconciliation")
        logger.info(
            "reconciliation_status_set",
            invoice_id=invoice.invoice_id,
            from_status=invoice.status.value,
            to_status=status.value,
        )
