"""Pytest bootstrap configuration.

Environment variables are set before test collection so modules that read
settings at import time see the test configuration.
"""
import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("INVOICE__STORE", "memory")
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("PAYMENT__WEBHOOK__SECRET", "test-webhook-secret")
os.environ.setdefault("PAYMENT__FORUMPAY__MODE", "mock")
os.environ.setdefault("CHAIN__FAILOVER_BACKOFF_SECONDS", "0")

from datetime import datetime, timedelta, timezone
from functools import partial

import pytest

from core.settings import PaymentSettings
from domain.invoice.entity import Invoice, InvoiceStatus
from infrastructure.external.payments.forumpay_client import ForumPayClient
from infrastructure.metrics import InvoiceMetrics
from infrastructure.repositories.memory_invoice_repository import (
    InMemoryInvoiceRepository,
    InMemoryInvoiceStore,
)
from infrastructure.unit_of_work import InMemoryUnitOfWork


WEBHOOK_SECRET = "test-webhook-secret"
WALLET = "0x" + "ab" * 20


def build_invoice(**overrides) -> Invoice:
    now = datetime.now(timezone.utc)
    fields = dict(
        invoice_id="inv_test",
        order_reference="order-1",
        payer_reference="payer-1",
        wallet_address=WALLET,
        amount="50.00",
        currency="ETH",
        network="ethereum",
        status=InvoiceStatus.CREATED,
        created_at=now,
        expires_at=now + timedelta(minutes=15),
        updated_at=now,
    )
    fields.update(overrides)
    return Invoice(**fields)


@pytest.fixture
def make_invoice():
    return build_invoice


@pytest.fixture
def store():
    return InMemoryInvoiceStore()


@pytest.fixture
def repository(store):
    return InMemoryInvoiceRepository(store)


@pytest.fixture
def uow_factory(store):
    return partial(InMemoryUnitOfWork, store)


@pytest.fixture
def payment_settings():
    return PaymentSettings(
        webhook={"secret": WEBHOOK_SECRET, "tolerance_seconds": 300},
        forumpay={"mode": "mock"},
    )


@pytest.fixture
def processor(payment_settings):
    return ForumPayClient(settings=payment_settings)


@pytest.fixture
def metrics():
    return InvoiceMetrics()
