"""
Invoice domain entity - the invoice aggregate root.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException


WALLET_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
CURRENCY_RE = re.compile(r"^[A-Za-z0-9]{2,5}$")


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""
    CREATED = "CREATED"        # persisted locally, not yet linked to the processor
    PENDING = "PENDING"        # linked, awaiting funds
    DETECTED = "DETECTED"      # funds seen, unconfirmed
    CONFIRMED = "CONFIRMED"    # enough confirmations, awaiting settlement
    PAID = "PAID"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"


TERMINAL_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.FAILED, InvoiceStatus.EXPIRED})
# Statuses on which a transaction hash may be recorded
SETTLED_STATUSES = frozenset({InvoiceStatus.CONFIRMED, InvoiceStatus.PAID})


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_amount(value: str) -> Decimal:
    """Parse a decimal-as-string amount; must be a plain positive number."""
    if not isinstance(value, str) or not re.fullmatch(r"\d+(\.\d+)?", value.strip()):
        raise DomainValidationException(f"Invalid amount format: {value!r}", field="amount")
    try:
        amount = Decimal(value.strip())
    except InvalidOperation as exc:
        raise DomainValidationException(f"Invalid amount format: {value!r}", field="amount") from exc
    if amount <= 0:
        raise DomainValidationException(f"Amount must be greater than 0: {value}", field="amount")
    return amount


@dataclass(frozen=True)
class Invoice:
    """
    Invoice aggregate root.

    Business rules:
    1. invoice_id is assigned at creation and never reused
    2. status only changes along state machine edges (see state_machine)
    3. once status is terminal the record is read-only
    4. processor_invoice_id and tx_hash are write-once; tx_hash is only set
       when status first reaches CONFIRMED or PAID
    5. last_applied_event_id changes together with status

    Instances are immutable snapshots; the repository produces a new snapshot
    for every committed mutation.
    """

    invoice_id: str
    order_reference: str
    payer_reference: str
    wallet_address: str
    amount: str  # decimal-as-string
    currency: str
    network: str
    status: InvoiceStatus
    created_at: datetime
    expires_at: datetime

    processor_invoice_id: Optional[str] = None
    payment_address: Optional[str] = None
    tx_hash: Optional[str] = None
    last_applied_event_id: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self._validate()
        object.__setattr__(self, "status", InvoiceStatus(self.status))
        object.__setattr__(self, "currency", self.currency.upper())
        object.__setattr__(self, "created_at", _ensure_utc(self.created_at))
        object.__setattr__(self, "expires_at", _ensure_utc(self.expires_at))
        object.__setattr__(self, "updated_at", _ensure_utc(self.updated_at))

    def _validate(self) -> None:
        if not self.invoice_id:
            raise DomainValidationException("invoice_id is required", field="invoice_id")
        parse_amount(self.amount)
        if not self.currency or not CURRENCY_RE.match(self.currency):
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        if not WALLET_ADDRESS_RE.match(self.wallet_address or ""):
            raise DomainValidationException(
                f"Invalid wallet address: {self.wallet_address}", field="wallet_address"
            )
        if self.created_at is None or self.expires_at is None:
            raise DomainValidationException("created_at and expires_at are required", field="expires_at")

    @classmethod
    def new(
        cls,
        *,
        invoice_id: str,
        order_reference: str,
        payer_reference: str,
        wallet_address: str,
        amount: str,
        currency: str,
        network: str,
        created_at: datetime,
        expires_at: datetime,
    ) -> "Invoice":
        """Build a fresh invoice in the initial CREATED status."""
        return cls(
            invoice_id=invoice_id,
            order_reference=order_reference,
            payer_reference=payer_reference,
            wallet_address=wallet_address,
            amount=amount.strip(),
            currency=currency,
            network=network,
            status=InvoiceStatus.CREATED,
            created_at=created_at,
            expires_at=expires_at,
            updated_at=created_at,
        )

    @property
    def amount_decimal(self) -> Decimal:
        return Decimal(self.amount)

    def is_final_status(self) -> bool:
        """Whether the invoice reached PAID, FAILED or EXPIRED."""
        return self.status in TERMINAL_STATUSES

    def is_expired_at(self, now: datetime) -> bool:
        return _ensure_utc(now) >= self.expires_at

    def with_changes(self, **changes) -> "Invoice":
        return replace(self, **changes)
