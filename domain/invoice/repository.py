"""
Invoice repository interface.

update_status is the single mutation entry point for every status change and
is implemented once here; concrete stores only supply the storage primitives
(_load, _insert, _compare_and_set), which must honour the conditional-write
contract described on each of them.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from domain.common.exceptions import (
    ConcurrencyConflictException,
    DomainValidationException,
    InvoiceNotFoundException,
)
from .entity import SETTLED_STATUSES, Invoice, InvoiceStatus
from .state_machine import validate_transition


class InvoiceRepository(ABC):
    """Invoice store with per-record optimistic concurrency."""

    async def create(self, invoice: Invoice) -> Invoice:
        """Insert a new invoice; InvoiceAlreadyExistsException if the id is taken."""
        await self._insert(invoice)
        return invoice

    async def update_status(
        self,
        invoice_id: str,
        next_status: InvoiceStatus,
        *,
        tx_hash: Optional[str] = None,
        event_id: Optional[str] = None,
        processor_invoice_id: Optional[str] = None,
        payment_address: Optional[str] = None,
    ) -> Invoice:
        """
        Apply one validated status change.

        Steps:
        1. read the record (InvoiceNotFoundException when absent)
        2. event_id equal to the stored one -> replay, return unchanged
        3. next_status equal to the stored one -> no-op, return unchanged
        4. validate the edge (InvalidTransitionException propagates)
        5. conditional write guarded by the status read in step 1;
           a lost race raises ConcurrencyConflictException
        """
        next_status = InvoiceStatus(next_status)
        current = await self._load(invoice_id)
        if current is None:
            raise InvoiceNotFoundException(invoice_id)

        if event_id is not None and current.last_applied_event_id == event_id:
            return current
        if next_status == current.status:
            return current

        validate_transition(current.status, next_status)

        changes: dict = {
            "status": next_status,
            "updated_at": datetime.now(timezone.utc),
        }
        if tx_hash and not current.tx_hash and next_status in SETTLED_STATUSES:
            changes["tx_hash"] = tx_hash
        if event_id is not None:
            changes["last_applied_event_id"] = event_id
        if processor_invoice_id is not None:
            if current.processor_invoice_id and current.processor_invoice_id != processor_invoice_id:
                raise DomainValidationException(
                    "processor_invoice_id is immutable once set",
                    field="processor_invoice_id",
                    details={"invoice_id": invoice_id},
                )
            if not current.processor_invoice_id:
                changes["processor_invoice_id"] = processor_invoice_id
        if payment_address and not current.payment_address:
            changes["payment_address"] = payment_address

        committed = await self._compare_and_set(invoice_id, current.status, changes)
        if not committed:
            raise ConcurrencyConflictException(invoice_id, current.status)
        return current.with_changes(**changes)

    @abstractmethod
    async def find_by_id(self, invoice_id: str) -> Optional[Invoice]:
        """Fetch by local invoice id."""

    @abstractmethod
    async def find_by_processor_id(self, processor_invoice_id: str) -> Optional[Invoice]:
        """Fetch by the id the processor assigned."""

    @abstractmethod
    async def find_non_terminal(self) -> List[Invoice]:
        """All invoices not in PAID, FAILED or EXPIRED."""

    async def _load(self, invoice_id: str) -> Optional[Invoice]:
        return await self.find_by_id(invoice_id)

    @abstractmethod
    async def _insert(self, invoice: Invoice) -> None:
        """Insert only if invoice_id is absent, atomically (no read-then-write)."""

    @abstractmethod
    async def _compare_and_set(self, invoice_id: str, expected_status: InvoiceStatus, changes: dict) -> bool:
        """Apply changes iff the stored status still equals expected_status.

        Returns False when no row matched.
        """
