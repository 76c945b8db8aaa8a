"""
Webhook ingestion.

Authentication failures are the only errors that reach the caller. Once a
delivery is authenticated it is always acknowledged, so the processor stops
redelivering; anything that could not be applied is logged and left for
reconciliation to converge.
"""
from __future__ import annotations

from typing import Callable, Mapping, Optional

from application.dtos.invoices import WebhookAck
from application.ports.payment_processor import PaymentProcessor
from application.services.invoice_transitions import apply_processor_status
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    ConcurrencyConflictException,
    DomainValidationException,
    InvalidTransitionException,
    InvoiceNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


class WebhookIngestionService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        processor: PaymentProcessor,
        *,
        secret: Optional[str],
        signature_header: str = "X-ForumPay-Signature",
        timestamp_header: str = "X-ForumPay-Timestamp",
        metrics=None,
    ) -> None:
        self._uow_factory = uow_factory
        self.processor = processor
        self._secret = secret
        self._signature_header = signature_header.lower()
        self._timestamp_header = timestamp_header.lower()
        self._metrics = metrics

    async def ingest(self, headers: Mapping[str, str], raw_body: bytes) -> WebhookAck:
        lowered = {k.lower(): v for k, v in headers.items()}
        try:
            self.processor.verify_event(
                lowered.get(self._signature_header),
                raw_body,
                lowered.get(self._timestamp_header),
                self._secret,
            )
        except BusinessException as exc:
            logger.warning(
                "webhook_rejected",
                provider=self.processor.provider,
                reason=exc.error_type,
                error=exc.message,
            )
            if self._metrics is not None:
                self._metrics.webhook_rejected.labels(reason=exc.error_type).inc()
            raise

        try:
            event = self.processor.parse_event(raw_body)
        except DomainValidationException as exc:
            return self._ignored("malformed", error=exc.message)

        target = self.processor.map_status(event.processor_status)
        if target is None:
            return self._ignored(
                "unknown_status",
                processor_invoice_id=event.processor_invoice_id,
                processor_status=event.processor_status,
            )

        try:
            async with self._uow_factory() as uow:
                invoice = await uow.invoice_repository.find_by_processor_id(event.processor_invoice_id)
                if invoice is None:
                    raise InvoiceNotFoundException(processor_invoice_id=event.processor_invoice_id)
                updated, changed = await apply_processor_status(
                    uow.invoice_repository,
                    invoice,
                    target,
                    event_id=event.event_id,
                    tx_hash=event.tx_hash,
                    source="webhook",
                    metrics=self._metrics,
                )
        except InvoiceNotFoundException:
            return self._ignored("invoice_not_found", processor_invoice_id=event.processor_invoice_id)
        except InvalidTransitionException as exc:
            return self._ignored(
                "invalid_transition",
                processor_invoice_id=event.processor_invoice_id,
                current=exc.details.get("current"),
                target=exc.details.get("next"),
                event_id=event.event_id,
            )
        except ConcurrencyConflictException:
            return self._ignored(
                "conflict",
                processor_invoice_id=event.processor_invoice_id,
                event_id=event.event_id,
            )

        logger.info(
            "webhook_processed",
            provider=self.processor.provider,
            invoice_id=updated.invoice_id,
            processor_invoice_id=event.processor_invoice_id,
            event_id=event.event_id,
            status=updated.status.value,
            applied=changed,
        )
        return WebhookAck(received=True, applied=changed, status=updated.status.value)

    def _ignored(self, reason: str, **context) -> WebhookAck:
        logger.warning("webhook_ignored", provider=self.processor.provider, reason=reason, **context)
        if self._metrics is not None:
            self._metrics.webhook_ignored.labels(reason=reason).inc()
        return WebhookAck(received=True, applied=False, reason=reason)
