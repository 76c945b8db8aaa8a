"""
Catch an invoice up to a processor-reported status.

The processor may report a status several edges ahead of the local one
(`confirmed` while we are still PENDING). Each intermediate edge is applied
through InvoiceRepository.update_status so the state machine is never
bypassed. Only the last step carries the event identity and only
CONFIRMED or PAID steps carry the transaction hash.
"""
from __future__ import annotations

from typing import Optional

from core.logging_config import get_logger
from domain.common.exceptions import InvalidTransitionException
from domain.invoice.entity import SETTLED_STATUSES, Invoice, InvoiceStatus
from domain.invoice.repository import InvoiceRepository
from domain.invoice.state_machine import forward_path


logger = get_logger(__name__)


async def apply_processor_status(
    repository: InvoiceRepository,
    invoice: Invoice,
    target: InvoiceStatus,
    *,
    event_id: Optional[str] = None,
    tx_hash: Optional[str] = None,
    source: str,
    metrics=None,
) -> tuple[Invoice, bool]:
    """Walk invoice forward to target; returns (latest snapshot, changed).

    Raises InvalidTransitionException when target is not reachable and lets
    ConcurrencyConflictException propagate from the store.
    """
    if event_id is not None and invoice.last_applied_event_id == event_id:
        return invoice, False

    path = forward_path(invoice.status, target)
    if path is None:
        raise InvalidTransitionException(invoice.status, target, invoice_id=invoice.invoice_id)
    if not path:
        return invoice, False

    current = invoice
    for index, step in enumerate(path):
        is_last = index == len(path) - 1
        current = await repository.update_status(
            current.invoice_id,
            step,
            tx_hash=tx_hash if step in SETTLED_STATUSES else None,
            event_id=event_id if is_last else None,
        )
        if metrics is not None:
            metrics.transition(step.value, source)

    logger.info(
        "invoice_caught_up",
        invoice_id=invoice.invoice_id,
        from_status=invoice.status.value,
        to_status=current.status.value,
        steps=[s.value for s in path],
        source=source,
        event_id=event_id,
    )
    return current, True
