"""
Payment specific codes and processor status vocabulary.
"""
from __future__ import annotations

from enum import Enum, IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004
    REPLAYED_EVENT = 60005
    CHAIN_RPC_ERROR = 60006


class ProcessorStatus(str, Enum):
    """Statuses the processor reports for a payment (webhook and status API)."""

    WAITING = "waiting"
    PROCESSING = "processing"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"


# Processor -> invoice status. Every ProcessorStatus member has an entry;
# values are InvoiceStatus values.
PROCESSOR_STATUS_TO_INVOICE = {
    "forumpay": {
        ProcessorStatus.WAITING.value: "PENDING",
        ProcessorStatus.PROCESSING.value: "DETECTED",
        ProcessorStatus.CONFIRMING.value: "DETECTED",
        ProcessorStatus.CONFIRMED.value: "PAID",
        ProcessorStatus.CANCELLED.value: "FAILED",
        ProcessorStatus.TIMEOUT.value: "EXPIRED",
    },
}
