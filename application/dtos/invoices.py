"""
Invoice DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from domain.invoice.entity import CURRENCY_RE, WALLET_ADDRESS_RE, Invoice


AMOUNT_RE = re.compile(r"^\d+(\.\d+)?$")


class CreateInvoice(BaseModel):
    """Request body for opening a new invoice."""

    amount: str = Field(..., description="Positive decimal as a string, e.g. '50.00'")
    currency: str = Field(..., min_length=2, max_length=5)
    order_id: str = Field(..., min_length=1, max_length=128)
    payer_reference: str = Field(..., min_length=1, max_length=128)
    wallet_address: str
    network: Optional[str] = Field(default=None, max_length=32)

    @field_validator("amount", mode="before")
    @classmethod
    def _validate_amount(cls, v: Any) -> str:
        s = str(v).strip() if v is not None else ""
        if not AMOUNT_RE.match(s):
            raise ValueError("amount must be a plain positive decimal string")
        if not any(ch not in "0." for ch in s):
            raise ValueError("amount must be greater than 0")
        return s

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        u = (v or "").strip().upper()
        if not CURRENCY_RE.match(u):
            raise ValueError("currency must be 2-5 alphanumeric characters")
        return u

    @field_validator("wallet_address")
    @classmethod
    def _validate_wallet(cls, v: str) -> str:
        s = (v or "").strip()
        if not WALLET_ADDRESS_RE.match(s):
            raise ValueError("wallet_address must be 0x followed by 40 hex characters")
        return s

    @field_validator("order_id", "payer_reference")
    @classmethod
    def _strip_reference(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("must not be blank")
        return s


class ProcessorPayment(BaseModel):
    """Result of opening a payment at the processor."""

    processor_invoice_id: str
    payment_address: Optional[str] = None
    expires_at: Optional[datetime] = None


class ProcessorEvent(BaseModel):
    """A parsed processor webhook notification."""

    processor_invoice_id: str
    processor_status: str
    tx_hash: Optional[str] = None
    event_id: str


class InvoiceView(BaseModel):
    """Creation response."""

    invoice_id: str
    amount: str
    currency: str
    network: str
    payment_address: Optional[str] = None
    expires_at: datetime
    status: str

    @classmethod
    def from_entity(cls, invoice: Invoice) -> "InvoiceView":
        return cls(
            invoice_id=invoice.invoice_id,
            amount=invoice.amount,
            currency=invoice.currency,
            network=invoice.network,
            payment_address=invoice.payment_address,
            expires_at=invoice.expires_at,
            status=invoice.status.value,
        )


class InvoiceStatusView(BaseModel):
    """Status lookup response."""

    invoice_id: str
    status: str
    amount: str
    currency: str
    network: str
    tx_hash: Optional[str] = None

    @classmethod
    def from_entity(cls, invoice: Invoice) -> "InvoiceStatusView":
        return cls(
            invoice_id=invoice.invoice_id,
            status=invoice.status.value,
            amount=invoice.amount,
            currency=invoice.currency,
            network=invoice.network,
            tx_hash=invoice.tx_hash,
        )


class WebhookAck(BaseModel):
    received: bool = True
    applied: bool = False
    status: Optional[str] = None
    reason: Optional[str] = None


class ReconciliationFailure(BaseModel):
    invoice_id: str
    error: str


class ReconciliationSummary(BaseModel):
    total: int = 0
    processed: int = 0
    updated: int = 0
    expired: int = 0
    unchanged: int = 0
    errors: int = 0
    failures: list[ReconciliationFailure] = Field(default_factory=list)
