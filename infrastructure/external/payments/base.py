"""
Base processor client implementing shared concerns: http, retry, logging, mapping.

Concrete processors should subclass and implement processor-specific logic.
"""
from __future__ import annotations

from typing import Any, Callable, Optional
from contextlib import asynccontextmanager

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.invoices import ProcessorEvent, ProcessorPayment
from application.ports.payment_processor import PaymentProcessor
from domain.invoice.entity import InvoiceStatus
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
)
from shared.codes.payment_codes import PROCESSOR_STATUS_TO_INVOICE


logger = get_logger(__name__)


class BasePaymentClient(PaymentProcessor):
    provider: str = "base"

    def __init__(
        self,
        *,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._timeouts_cfg = timeouts or {"connect": 1.0, "read": 3.0, "write": 3.0, "total": 5.0}
        self._retry_cfg = retry or {"max": 2, "base": 0.2}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def timeouts(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=self._timeouts_cfg["connect"],
            read=self._timeouts_cfg["read"],
            write=self._timeouts_cfg["write"],
            timeout=self._timeouts_cfg["total"],
        )

    @asynccontextmanager
    async def client(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeouts, transport=self._transport)
        try:
            yield self._client
        finally:
            # Keep open for reuse; explicit aclose() will close.
            ...

    async def aclose(self) -> None:
        """Close underlying HTTP client if created."""
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def _retry(self, fn: Callable[[], Any]):
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.TransportError)),
            reraise=True,
        ):
            with attempt:
                return await fn()

    def _raise_for_status(self, response: httpx.Response) -> None:
        """429/5xx are worth retrying later; any other non-2xx is final."""
        if response.is_success:
            return
        details = {"status_code": response.status_code, "body": response.text[:500]}
        if response.status_code == 429 or response.status_code >= 500:
            raise PaymentRecoverableError(
                f"{self.provider} unavailable: HTTP {response.status_code}",
                provider=self.provider,
                provider_code=str(response.status_code),
                details=details,
            )
        raise PaymentProviderError(
            f"{self.provider} API error: HTTP {response.status_code}",
            provider=self.provider,
            provider_code=str(response.status_code),
            details=details,
        )

    # Default implementations raise to force override where needed
    async def open_payment(self, amount: str, currency: str, order_ref: str, payer_ref: str) -> ProcessorPayment:  # type: ignore[override]
        raise NotImplementedError

    async def fetch_status(self, processor_invoice_id: str) -> str:  # type: ignore[override]
        raise NotImplementedError

    def verify_event(self, signature, raw_body, timestamp, secret) -> bool:  # type: ignore[override]
        raise NotImplementedError

    def parse_event(self, raw_body: bytes) -> ProcessorEvent:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def map_status(self, processor_status: str) -> Optional[InvoiceStatus]:
        """Processor status -> invoice status; None for anything unknown."""
        mapping = PROCESSOR_STATUS_TO_INVOICE.get(self.provider, {})
        value = mapping.get((processor_status or "").strip().lower())
        return InvoiceStatus(value) if value else None

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
