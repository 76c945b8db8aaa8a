from datetime import datetime, timedelta, timezone

import pytest

from domain.common.exceptions import DomainValidationException
from domain.invoice.entity import Invoice, InvoiceStatus, parse_amount
from decimal import Decimal


WALLET = "0x" + "ab" * 20


def test_new_invoice_starts_created():
    now = datetime(2026, 1, 1, 12, 0, 0)
    inv = Invoice.new(
        invoice_id="inv_1",
        order_reference="o1",
        payer_reference="p1",
        wallet_address=WALLET,
        amount=" 50.00 ",
        currency="eth",
        network="ethereum",
        created_at=now,
        expires_at=now + timedelta(minutes=15),
    )
    assert inv.status == InvoiceStatus.CREATED
    assert inv.amount == "50.00"
    assert inv.currency == "ETH"
    assert inv.created_at.tzinfo is timezone.utc
    assert inv.updated_at == inv.created_at
    assert not inv.is_final_status()


@pytest.mark.parametrize("amount", ["0", "0.00", "-1", "1e5", "abc", "", "1.", ".5"])
def test_rejects_bad_amounts(amount):
    with pytest.raises(DomainValidationException):
        parse_amount(amount)


def test_parse_amount_keeps_precision():
    assert parse_amount("0.000000000000000001") == Decimal("1E-18")


@pytest.mark.parametrize("currency", ["E", "TOOLONG", "ET-H", ""])
def test_rejects_bad_currency(make_invoice, currency):
    with pytest.raises(DomainValidationException):
        make_invoice(currency=currency)


@pytest.mark.parametrize("wallet", ["0x123", "ab" * 21, "0x" + "zz" * 20])
def test_rejects_bad_wallet(make_invoice, wallet):
    with pytest.raises(DomainValidationException) as exc_info:
        make_invoice(wallet_address=wallet)
    assert exc_info.value.field == "wallet_address"


def test_expiry_check(make_invoice):
    inv = make_invoice()
    assert not inv.is_expired_at(inv.created_at)
    assert inv.is_expired_at(inv.expires_at)
    assert inv.is_expired_at(inv.expires_at + timedelta(seconds=1))


def test_with_changes_returns_new_snapshot(make_invoice):
    inv = make_invoice()
    changed = inv.with_changes(status=InvoiceStatus.PENDING)
    assert inv.status == InvoiceStatus.CREATED
    assert changed.status == InvoiceStatus.PENDING
    assert changed.invoice_id == inv.invoice_id
