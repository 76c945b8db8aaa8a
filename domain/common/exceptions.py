"""Domain-level business exceptions shared by domain and infrastructure.

The core layer only maps these onto HTTP responses; the domain layer never
imports from core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base class for business exceptions."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
        format_params: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        self.format_params = format_params
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
        message_key: str | None = None,
        format_params: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key=message_key or "validation.domain",
            format_params=format_params,
        )


class InvoiceNotFoundException(BusinessException):
    def __init__(self, invoice_id: Optional[str] = None, *, processor_invoice_id: Optional[str] = None):
        details = {}
        if invoice_id is not None:
            details["invoice_id"] = invoice_id
        if processor_invoice_id is not None:
            details["processor_invoice_id"] = processor_invoice_id
        super().__init__(
            code=BusinessCode.INVOICE_NOT_FOUND,
            message="Invoice not found",
            error_type="InvoiceNotFound",
            details=details or None,
            message_key="invoice.not_found",
        )


class InvoiceAlreadyExistsException(BusinessException):
    def __init__(self, invoice_id: str):
        super().__init__(
            code=BusinessCode.INVOICE_ALREADY_EXISTS,
            message=f"Invoice {invoice_id} already exists",
            error_type="InvoiceAlreadyExists",
            details={"invoice_id": invoice_id},
            field="invoice_id",
            message_key="invoice.exists",
        )


class InvalidTransitionException(BusinessException):
    """Raised when a status change is not an edge of the invoice state machine."""

    def __init__(self, current, next, *, invoice_id: Optional[str] = None):
        self.current = current
        self.next = next
        details = {"current": str(getattr(current, "value", current)), "next": str(getattr(next, "value", next))}
        if invoice_id is not None:
            details["invoice_id"] = invoice_id
        super().__init__(
            code=BusinessCode.INVOICE_INVALID_TRANSITION,
            message=f"Invalid state transition: {details['current']} -> {details['next']}",
            error_type="InvalidTransition",
            details=details,
            field="status",
            message_key="invoice.transition.invalid",
        )


class ConcurrencyConflictException(BusinessException):
    """Another writer changed the invoice between our read and our conditional write."""

    def __init__(self, invoice_id: str, expected_status=None):
        details = {"invoice_id": invoice_id}
        if expected_status is not None:
            details["expected_status"] = str(getattr(expected_status, "value", expected_status))
        super().__init__(
            code=BusinessCode.INVOICE_CONCURRENT_UPDATE,
            message=f"Invoice {invoice_id} was updated concurrently",
            error_type="ConcurrencyConflict",
            details=details,
            message_key="invoice.concurrent_update",
        )
