"""
Errors raised by payment processor adapters.

All of them are BusinessException subclasses carrying a PaymentCode, so the
API layer maps them onto HTTP statuses without knowing about processors.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class ProcessorError(BusinessException):
    """Common shape: the provider name always sits in details."""

    code: PaymentCode = PaymentCode.PROVIDER_ERROR

    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None, **extra):
        full_details = {"provider": provider, **extra}
        if details:
            full_details.update(details)
        super().__init__(
            code=self.code,
            message=message,
            error_type=type(self).__name__,
            details=full_details,
        )
        self.provider = provider


class PaymentProviderError(ProcessorError):
    """The processor answered but refused or could not serve the request."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, provider=provider, details=details, provider_code=provider_code)


class PaymentRecoverableError(ProcessorError):
    """Transient failure (timeout, 429, 5xx); safe to retry or fail over."""

    code = PaymentCode.PROVIDER_RECOVERABLE

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(message, provider=provider, details=details, provider_code=provider_code)


class PaymentSignatureError(ProcessorError):
    """Webhook signature missing, wrong, or no secret to check it against."""

    code = PaymentCode.SIGNATURE_ERROR


class WebhookReplayError(ProcessorError):
    """Webhook timestamp missing or outside the accepted window."""

    code = PaymentCode.REPLAYED_EVENT
