"""
ForumPay adapter over its JSON REST API using httpx.

Notes on the API:
- Basic auth with the API user/secret pair.
- `POST payments/start` opens a payment and returns `payment_id` and the
  deposit `address`; `GET payments/{payment_id}` returns its current status.
- Webhooks carry `payment_id`, `status` and, once funds move, `tx_hash`. The
  delivery time is sent in its own header and the signature is HMAC-SHA256
  (hex) over "<timestamp>.<raw body>".

mode="mock" never performs I/O and hands out deterministic `fp_<8 hex>` ids,
which is what development and tests run against.
"""
from __future__ import annotations

import json
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from application.dtos.invoices import ProcessorEvent, ProcessorPayment
from core.logging_config import get_logger
from core.settings import ForumPaySettings, PaymentSettings, WebhookSettings
from domain.common.exceptions import DomainValidationException
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
    WebhookReplayError,
)
from infrastructure.external.payments.signing import parse_timestamp, signature_matches, timestamp_within
from infrastructure.gateway.failover import FailoverGateway
from shared.codes.payment_codes import ProcessorStatus


logger = get_logger(__name__)

UPSTREAM = "forumpay"
MOCK_PAYMENT_ADDRESS = "0x71C7656EC7ab88b098defB751B7401B5f6d8976F"


class ForumPayClient(BasePaymentClient):
    provider = "forumpay"

    def __init__(
        self,
        *,
        settings: Optional[PaymentSettings] = None,
        gateway: Optional[FailoverGateway] = None,
        is_production: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = settings or PaymentSettings()
        super().__init__(
            timeouts=settings.timeouts.model_dump(),
            retry={"max": settings.retry.max, "base": settings.retry.base_backoff},
            transport=transport,
        )
        self._cfg: ForumPaySettings = settings.forumpay
        self._webhook: WebhookSettings = settings.webhook
        self._is_production = is_production
        self._clock = clock
        self.mode = (self._cfg.mode or "mock").lower()
        if self.mode not in {"mock", "live"}:
            raise ValueError(f"Unsupported ForumPay mode: {self._cfg.mode}")
        if self.mode == "live":
            if not self._cfg.api_user or not self._cfg.api_secret:
                raise RuntimeError("PAYMENT__FORUMPAY__API_USER / API_SECRET not configured for live mode")
            if not self._cfg.endpoints():
                raise RuntimeError("PAYMENT__FORUMPAY__API_URLS is empty")
        self._gateway = gateway or FailoverGateway({UPSTREAM: self._cfg.endpoints()})
        self._mock_payments: dict[str, str] = {}

    # Outbound

    async def open_payment(self, amount: str, currency: str, order_ref: str, payer_ref: str) -> ProcessorPayment:  # type: ignore[override]
        if self.mode == "mock":
            payment_id = f"fp_{uuid.uuid4().hex[:8]}"
            self._mock_payments[payment_id] = ProcessorStatus.WAITING.value
            self._log("forumpay_mock_payment_opened", processor_invoice_id=payment_id, order_ref=order_ref)
            return ProcessorPayment(
                processor_invoice_id=payment_id,
                payment_address=MOCK_PAYMENT_ADDRESS,
                expires_at=datetime.now(timezone.utc) + timedelta(minutes=15),
            )

        payload = {
            "amount": amount,
            "currency": currency,
            "reference_no": order_ref,
            "payer_id": payer_ref,
        }
        data = await self._request("POST", "payments/start", json=payload)
        payment_id = data.get("payment_id")
        if not payment_id:
            raise PaymentProviderError("payments/start returned no payment_id", provider=self.provider)
        self._log("forumpay_payment_opened", processor_invoice_id=payment_id, order_ref=order_ref)
        return ProcessorPayment(
            processor_invoice_id=str(payment_id),
            payment_address=data.get("address"),
            expires_at=_parse_datetime(data.get("expires_at")),
        )

    async def fetch_status(self, processor_invoice_id: str) -> str:  # type: ignore[override]
        if self.mode == "mock":
            return self._mock_payments.get(processor_invoice_id, ProcessorStatus.WAITING.value)
        data = await self._request("GET", f"payments/{processor_invoice_id}")
        status = data.get("status")
        if not status:
            raise PaymentProviderError(
                "payment status missing from response",
                provider=self.provider,
                details={"processor_invoice_id": processor_invoice_id},
            )
        return str(status).strip().lower()

    def set_mock_status(self, processor_invoice_id: str, status: str) -> None:
        """Drive a mock payment forward (development and tests only)."""
        if self.mode != "mock":
            raise RuntimeError("set_mock_status is only available in mock mode")
        self._mock_payments[processor_invoice_id] = status

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        auth = httpx.BasicAuth(self._cfg.api_user or "", self._cfg.api_secret or "")

        async def call(base_url: str) -> dict:
            url = base_url.rstrip("/") + "/" + path

            async def send() -> httpx.Response:
                async with self.client() as c:
                    return await c.request(method, url, auth=auth, **kwargs)

            try:
                response = await self._retry(send)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                raise PaymentRecoverableError(
                    f"{self.provider} unreachable: {exc}", provider=self.provider, details={"url": url}
                ) from exc
            self._raise_for_status(response)
            try:
                return response.json()
            except ValueError as exc:
                raise PaymentProviderError("invalid JSON from processor", provider=self.provider) from exc

        return await self._gateway.execute(UPSTREAM, call, retry_on=(PaymentRecoverableError,))

    # Inbound

    def verify_event(
        self,
        signature: Optional[str],
        raw_body: bytes,
        timestamp: Optional[str],
        secret: Optional[str],
    ) -> bool:  # type: ignore[override]
        if not secret:
            if self._webhook.allow_unsigned and not self._is_production:
                logger.warning("webhook_signature_bypassed", provider=self.provider)
                return True
            raise PaymentSignatureError("Webhook secret not configured", provider=self.provider)
        if not signature:
            raise PaymentSignatureError("Missing webhook signature", provider=self.provider)
        if parse_timestamp(timestamp) is None:
            raise WebhookReplayError(
                "Webhook timestamp missing or unreadable",
                provider=self.provider,
                details={"timestamp": timestamp},
            )
        # The MAC covers the timestamp
        if not signature_matches(signature, timestamp, raw_body, secret):
            raise PaymentSignatureError("Invalid webhook signature", provider=self.provider)
        if not timestamp_within(timestamp, self._webhook.tolerance_seconds, now=self._clock()):
            raise WebhookReplayError(
                "Webhook timestamp outside the accepted window",
                provider=self.provider,
                details={"timestamp": timestamp, "tolerance_seconds": self._webhook.tolerance_seconds},
            )
        return True

    def parse_event(self, raw_body: bytes) -> ProcessorEvent:  # type: ignore[override]
        try:
            body = json.loads(raw_body or b"")
        except ValueError as exc:
            raise DomainValidationException("Webhook body is not valid JSON") from exc
        if not isinstance(body, dict):
            raise DomainValidationException("Webhook body must be a JSON object")
        payment_id = body.get("payment_id")
        status = body.get("status")
        if not payment_id or not status:
            raise DomainValidationException(
                "Webhook body needs payment_id and status",
                details={"keys": sorted(body.keys())},
            )
        status = str(status).strip().lower()
        event_id = body.get("event_id") or body.get("id") or f"{payment_id}:{status}"
        return ProcessorEvent(
            processor_invoice_id=str(payment_id),
            processor_status=status,
            tx_hash=body.get("tx_hash") or None,
            event_id=str(event_id),
        )


def _parse_datetime(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
