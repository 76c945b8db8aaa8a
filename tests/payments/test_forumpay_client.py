import httpx
import pytest

from core.settings import PaymentSettings
from infrastructure.external.payments import get_payment_processor
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.forumpay_client import MOCK_PAYMENT_ADDRESS, ForumPayClient
from infrastructure.gateway.failover import FailoverGateway


PRIMARY = "https://primary.forumpay.test/pay/v2/"
BACKUP = "https://backup.forumpay.test/pay/v2/"


def _live_settings() -> PaymentSettings:
    return PaymentSettings(
        forumpay={"mode": "live", "api_urls": f"{PRIMARY},{BACKUP}", "api_user": "u", "api_secret": "s"},
        retry={"max": 0, "base_backoff": 0},
    )


def _live_client(handler) -> ForumPayClient:
    settings = _live_settings()
    gateway = FailoverGateway({"forumpay": settings.forumpay.endpoints()}, backoff_seconds=0)
    return ForumPayClient(settings=settings, gateway=gateway, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_mock_mode_opens_deterministic_payment():
    c = ForumPayClient(settings=PaymentSettings(forumpay={"mode": "mock"}))
    payment = await c.open_payment("50.00", "ETH", "order-1", "payer-1")
    assert payment.processor_invoice_id.startswith("fp_")
    assert len(payment.processor_invoice_id) == 11
    assert payment.payment_address == MOCK_PAYMENT_ADDRESS
    assert await c.fetch_status(payment.processor_invoice_id) == "waiting"

    c.set_mock_status(payment.processor_invoice_id, "confirmed")
    assert await c.fetch_status(payment.processor_invoice_id) == "confirmed"


def test_live_mode_requires_credentials():
    with pytest.raises(RuntimeError):
        ForumPayClient(settings=PaymentSettings(forumpay={"mode": "live", "api_user": None, "api_secret": None}))


def test_factory_resolves_forumpay():
    settings = PaymentSettings(forumpay={"mode": "mock"})
    assert isinstance(get_payment_processor("forumpay", settings=settings), ForumPayClient)
    with pytest.raises(ValueError):
        get_payment_processor("stripe", settings=settings)


@pytest.mark.asyncio
async def test_live_open_and_fetch():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, str(request.url)))
        assert request.headers["authorization"].startswith("Basic ")
        if request.method == "POST":
            return httpx.Response(
                200,
                json={"payment_id": "fp_live1", "address": "0xdeposit", "expires_at": "2026-10-19T10:00:00Z"},
            )
        return httpx.Response(200, json={"payment_id": "fp_live1", "status": "Confirming"})

    c = _live_client(handler)
    try:
        payment = await c.open_payment("50.00", "ETH", "order-1", "payer-1")
        status = await c.fetch_status("fp_live1")
    finally:
        await c.aclose()

    assert payment.processor_invoice_id == "fp_live1"
    assert payment.payment_address == "0xdeposit"
    assert payment.expires_at.tzinfo is not None
    assert status == "confirming"
    assert seen == [
        ("POST", PRIMARY + "payments/start"),
        ("GET", PRIMARY + "payments/fp_live1"),
    ]


@pytest.mark.asyncio
async def test_live_fails_over_on_server_error():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "primary.forumpay.test":
            return httpx.Response(503, text="maintenance")
        return httpx.Response(200, json={"status": "waiting"})

    c = _live_client(handler)
    try:
        assert await c.fetch_status("fp_1") == "waiting"
    finally:
        await c.aclose()


@pytest.mark.asyncio
async def test_live_client_error_is_final():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.host)
        return httpx.Response(400, json={"error": "bad amount"})

    c = _live_client(handler)
    try:
        with pytest.raises(PaymentProviderError):
            await c.open_payment("50.00", "ETH", "order-1", "payer-1")
    finally:
        await c.aclose()
    assert calls == ["primary.forumpay.test"]


@pytest.mark.asyncio
async def test_live_all_endpoints_down():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    c = _live_client(handler)
    try:
        with pytest.raises(PaymentRecoverableError):
            await c.fetch_status("fp_1")
    finally:
        await c.aclose()
