"""
Payment processor port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Optional, Protocol, runtime_checkable

from application.dtos.invoices import ProcessorEvent, ProcessorPayment
from domain.invoice.entity import InvoiceStatus


@runtime_checkable
class PaymentProcessor(Protocol):
    """Adapter protocol for the external crypto payment processor.

    Implementations should be async for I/O and side-effect free beyond it.
    """

    provider: str

    async def open_payment(
        self, amount: str, currency: str, order_ref: str, payer_ref: str
    ) -> ProcessorPayment: ...

    async def fetch_status(self, processor_invoice_id: str) -> str: ...

    def verify_event(
        self,
        signature: Optional[str],
        raw_body: bytes,
        timestamp: Optional[str],
        secret: Optional[str],
    ) -> bool: ...

    def parse_event(self, raw_body: bytes) -> ProcessorEvent: ...

    def map_status(self, processor_status: str) -> Optional[InvoiceStatus]: ...
