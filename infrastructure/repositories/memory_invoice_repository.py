"""
Process-local invoice store.

Honours the same conditional-write contract as the SQL store: the status
check and the write happen under one lock, so exactly one of two racing
writers that read the same status wins.
"""
from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

from domain.common.exceptions import InvoiceAlreadyExistsException
from domain.invoice.entity import Invoice, InvoiceStatus
from domain.invoice.repository import InvoiceRepository


class InMemoryInvoiceStore:
    """Shared state behind every InMemoryInvoiceRepository of a process."""

    def __init__(self) -> None:
        self.invoices: Dict[str, Invoice] = {}
        self.lock = asyncio.Lock()


class InMemoryInvoiceRepository(InvoiceRepository):

    def __init__(self, store: Optional[InMemoryInvoiceStore] = None):
        self.store = store or InMemoryInvoiceStore()

    async def _insert(self, invoice: Invoice) -> None:
        async with self.store.lock:
            if invoice.invoice_id in self.store.invoices:
                raise InvoiceAlreadyExistsException(invoice.invoice_id)
            self.store.invoices[invoice.invoice_id] = invoice

    async def _compare_and_set(self, invoice_id: str, expected_status: InvoiceStatus, changes: dict) -> bool:
        async with self.store.lock:
            current = self.store.invoices.get(invoice_id)
            if current is None or current.status != InvoiceStatus(expected_status):
                return False
            self.store.invoices[invoice_id] = current.with_changes(**changes)
            return True

    async def find_by_id(self, invoice_id: str) -> Optional[Invoice]:
        return self.store.invoices.get(invoice_id)

    async def find_by_processor_id(self, processor_invoice_id: str) -> Optional[Invoice]:
        for invoice in self.store.invoices.values():
            if invoice.processor_invoice_id == processor_invoice_id:
                return invoice
        return None

    async def find_non_terminal(self) -> List[Invoice]:
        return sorted(
            (inv for inv in self.store.invoices.values() if not inv.is_final_status()),
            key=lambda inv: inv.created_at,
        )
