"""
Application service for invoice creation and lookup.

Depends on the PaymentProcessor port and a Unit of Work factory, both
injected from the composition root (API/tasks).
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.invoices import CreateInvoice, InvoiceStatusView, InvoiceView
from application.ports.payment_processor import PaymentProcessor
from core.logging_config import get_logger
from domain.common.exceptions import InvoiceNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.invoice.entity import Invoice, InvoiceStatus
from infrastructure.external.payments.exceptions import PaymentProviderError


logger = get_logger(__name__)


def new_invoice_id() -> str:
    return f"inv_{uuid.uuid4().hex}"


class InvoiceService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        processor: PaymentProcessor,
        *,
        ttl_minutes: int = 15,
        default_network: str = "ethereum",
        metrics=None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._uow_factory = uow_factory
        self.processor = processor
        self._ttl = timedelta(minutes=ttl_minutes)
        self._default_network = default_network
        self._metrics = metrics
        self._clock = clock

    async def create_invoice(self, req: CreateInvoice) -> InvoiceView:
        """
        Open an invoice.

        1. persist a CREATED record
        2. open the payment at the processor
        3. link both ids and move to PENDING

        A processor failure rolls the record to FAILED and surfaces as
        PaymentProviderError.
        """
        now = self._clock()
        invoice = Invoice.new(
            invoice_id=new_invoice_id(),
            order_reference=req.order_id,
            payer_reference=req.payer_reference,
            wallet_address=req.wallet_address,
            amount=req.amount,
            currency=req.currency,
            network=(req.network or self._default_network).lower(),
            created_at=now,
            expires_at=now + self._ttl,
        )
        async with self._uow_factory() as uow:
            await uow.invoice_repository.create(invoice)
        if self._metrics is not None:
            self._metrics.invoice_created.inc()

        try:
            payment = await self.processor.open_payment(
                invoice.amount, invoice.currency, invoice.order_reference, invoice.payer_reference
            )
        except Exception as exc:
            logger.error(
                "invoice_processor_open_failed",
                invoice_id=invoice.invoice_id,
                provider=self.processor.provider,
                error=str(exc),
            )
            async with self._uow_factory() as uow:
                await uow.invoice_repository.update_status(invoice.invoice_id, InvoiceStatus.FAILED)
            if self._metrics is not None:
                self._metrics.transition(InvoiceStatus.FAILED.value, "create")
            if isinstance(exc, PaymentProviderError):
                raise
            raise PaymentProviderError(
                f"Failed to open payment: {getattr(exc, 'message', None) or exc}",
                provider=self.processor.provider,
                details={"invoice_id": invoice.invoice_id},
            ) from exc

        async with self._uow_factory() as uow:
            linked = await uow.invoice_repository.update_status(
                invoice.invoice_id,
                InvoiceStatus.PENDING,
                processor_invoice_id=payment.processor_invoice_id,
                payment_address=payment.payment_address,
            )
        if self._metrics is not None:
            self._metrics.transition(InvoiceStatus.PENDING.value, "create")

        logger.info(
            "invoice_opened",
            invoice_id=linked.invoice_id,
            processor_invoice_id=linked.processor_invoice_id,
            amount=linked.amount,
            currency=linked.currency,
            network=linked.network,
            processor_expires_at=payment.expires_at.isoformat() if payment.expires_at else None,
        )
        return InvoiceView.from_entity(linked)

    async def get_invoice_status(self, invoice_id: str) -> InvoiceStatusView:
        invoice = await self.get_invoice(invoice_id)
        return InvoiceStatusView.from_entity(invoice)

    async def get_invoice(self, invoice_id: str) -> Invoice:
        async with self._uow_factory(readonly=True) as uow:
            invoice: Optional[Invoice] = await uow.invoice_repository.find_by_id(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundException(invoice_id)
        return invoice

    async def aclose(self) -> None:
        close = getattr(self.processor, "aclose", None)
        if callable(close):
            await close()
