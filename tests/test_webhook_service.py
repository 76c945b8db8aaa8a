import json
import time

import pytest

from application.services.webhook_service import WebhookIngestionService
from domain.invoice.entity import InvoiceStatus as S
from infrastructure.external.payments.exceptions import PaymentSignatureError, WebhookReplayError
from infrastructure.external.payments.signing import compute_signature


SECRET = "test-webhook-secret"


def _delivery(payload, *, secret=SECRET, timestamp=None):
    body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
    sent_at = str(int(timestamp if timestamp is not None else time.time()))
    headers = {
        "x-forumpay-signature": compute_signature(secret, sent_at, body),
        "X-ForumPay-Timestamp": sent_at,
    }
    return headers, body


@pytest.fixture
def service(uow_factory, processor, metrics):
    return WebhookIngestionService(uow_factory, processor, secret=SECRET, metrics=metrics)


@pytest.fixture
async def pending(repository, make_invoice):
    return await repository.create(
        make_invoice(invoice_id="inv_w", status=S.PENDING, processor_invoice_id="fp_x")
    )


@pytest.mark.asyncio
async def test_confirmed_walks_pending_to_paid(service, pending, store, metrics):
    headers, body = _delivery({"payment_id": "fp_x", "status": "confirmed", "tx_hash": "0xabc", "event_id": "evt_1"})
    ack = await service.ingest(headers, body)

    assert ack.received and ack.applied
    assert ack.status == "PAID"
    stored = store.invoices["inv_w"]
    assert stored.status == S.PAID
    assert stored.tx_hash == "0xabc"
    assert stored.last_applied_event_id == "evt_1"
    for status in ("DETECTED", "CONFIRMED", "PAID"):
        assert metrics.registry.get_sample_value(
            "invoice_transition_total", {"status": status, "source": "webhook"}
        ) == 1


@pytest.mark.asyncio
async def test_detected_event_does_not_record_tx_hash(service, pending, store):
    headers, body = _delivery({"payment_id": "fp_x", "status": "processing", "tx_hash": "0xearly", "event_id": "evt_1"})
    ack = await service.ingest(headers, body)
    assert ack.applied and ack.status == "DETECTED"
    assert store.invoices["inv_w"].tx_hash is None

    headers, body = _delivery({"payment_id": "fp_x", "status": "confirmed", "tx_hash": "0xfinal", "event_id": "evt_2"})
    await service.ingest(headers, body)
    assert store.invoices["inv_w"].status == S.PAID
    assert store.invoices["inv_w"].tx_hash == "0xfinal"


@pytest.mark.asyncio
async def test_replayed_delivery_is_acknowledged_without_change(service, pending, store):
    headers, body = _delivery({"payment_id": "fp_x", "status": "processing", "event_id": "evt_1"})
    first = await service.ingest(headers, body)
    assert first.applied and first.status == "DETECTED"
    snapshot = store.invoices["inv_w"]

    second = await service.ingest(headers, body)
    assert second.received
    assert not second.applied
    assert second.status == "DETECTED"
    assert store.invoices["inv_w"] == snapshot


@pytest.mark.asyncio
async def test_bad_signature_is_rejected(service, pending, store, metrics):
    headers, body = _delivery({"payment_id": "fp_x", "status": "confirmed"}, secret="wrong")
    with pytest.raises(PaymentSignatureError):
        await service.ingest(headers, body)
    assert store.invoices["inv_w"].status == S.PENDING
    assert metrics.registry.get_sample_value(
        "webhook_rejected_total", {"reason": "PaymentSignatureError"}
    ) == 1


@pytest.mark.asyncio
async def test_stale_timestamp_is_rejected(service, pending):
    headers, body = _delivery({"payment_id": "fp_x", "status": "confirmed"}, timestamp=time.time() - 3600)
    with pytest.raises(WebhookReplayError):
        await service.ingest(headers, body)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, reason",
    [
        (b"{not json", "malformed"),
        ({"payment_id": "fp_x", "status": "refunded"}, "unknown_status"),
        ({"payment_id": "fp_nope", "status": "confirmed"}, "invoice_not_found"),
    ],
)
async def test_unapplicable_deliveries_are_acknowledged(service, pending, store, metrics, payload, reason):
    headers, body = _delivery(payload)
    ack = await service.ingest(headers, body)
    assert ack.received
    assert not ack.applied
    assert ack.reason == reason
    assert store.invoices["inv_w"].status == S.PENDING
    assert metrics.registry.get_sample_value("webhook_ignored_total", {"reason": reason}) == 1


@pytest.mark.asyncio
async def test_regression_from_terminal_is_ignored(service, repository, make_invoice, store):
    await repository.create(make_invoice(invoice_id="inv_paid", status=S.PAID, processor_invoice_id="fp_paid"))
    headers, body = _delivery({"payment_id": "fp_paid", "status": "waiting", "event_id": "evt_late"})
    ack = await service.ingest(headers, body)
    assert ack.reason == "invalid_transition"
    assert store.invoices["inv_paid"].status == S.PAID
    assert store.invoices["inv_paid"].last_applied_event_id is None


@pytest.mark.asyncio
async def test_conflict_is_acknowledged(service, pending, monkeypatch):
    from domain.common.exceptions import ConcurrencyConflictException
    import application.services.webhook_service as mod

    async def _lost_race(*args, **kwargs):
        raise ConcurrencyConflictException("inv_w", S.PENDING)

    monkeypatch.setattr(mod, "apply_processor_status", _lost_race)
    headers, body = _delivery({"payment_id": "fp_x", "status": "processing"})
    ack = await service.ingest(headers, body)
    assert ack.reason == "conflict"
    assert not ack.applied
