"""
Invoice ORM model.

Mapping only; the lifecycle rules live in domain.invoice.
"""
from sqlalchemy import Column, String, DateTime, Index
from datetime import datetime, timezone

from .base import Base


class InvoiceModel(Base):
    __tablename__ = "invoices"

    invoice_id = Column(String(64), primary_key=True, comment="Local invoice id (inv_<hex>)")
    processor_invoice_id = Column(String(128), nullable=True, unique=True, comment="Processor payment id")

    order_reference = Column(String(128), nullable=False, index=True)
    payer_reference = Column(String(128), nullable=False)
    wallet_address = Column(String(42), nullable=False)
    # Decimal kept as text so crypto precision survives every backend
    amount = Column(String(78), nullable=False)
    currency = Column(String(5), nullable=False)
    network = Column(String(32), nullable=False)
    payment_address = Column(String(128), nullable=True)

    status = Column(String(16), nullable=False, index=True, comment="CREATED/PENDING/DETECTED/CONFIRMED/PAID/FAILED/EXPIRED")
    tx_hash = Column(String(128), nullable=True)
    last_applied_event_id = Column(String(255), nullable=True)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_invoices_status_expires_at", "status", "expires_at"),
    )

    def __repr__(self):
        return (
            f"<InvoiceModel(invoice_id='{self.invoice_id}', "
            f"processor_invoice_id='{self.processor_invoice_id}', status='{self.status}')>"
        )
