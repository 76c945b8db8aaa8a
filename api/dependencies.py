"""
API dependencies: container access, rate limiting and the reconcile token.
"""
import hmac
from typing import Callable, Optional

from fastapi import Depends, Header, Request

from api.container import Container
from api.middleware.request_id import resolve_client_ip
from application.services.invoice_service import InvoiceService
from application.services.reconciliation_service import ReconciliationService
from application.services.webhook_service import WebhookIngestionService
from core.exceptions import UnauthorizedException


def get_container(request: Request) -> Container:
    return request.app.state.container


async def get_invoice_service(container: Container = Depends(get_container)) -> InvoiceService:
    return container.invoice_service


async def get_webhook_service(container: Container = Depends(get_container)) -> WebhookIngestionService:
    return container.webhook_service


async def get_reconciliation_service(container: Container = Depends(get_container)) -> ReconciliationService:
    return container.reconciliation_service


def rate_limited(caller_class: str) -> Callable:
    """Dependency consuming one token of caller_class for the client IP."""

    async def _dependency(request: Request, container: Container = Depends(get_container)) -> None:
        identity = getattr(request.state, "client_ip", None) or resolve_client_ip(
            request, container.settings.TRUSTED_PROXIES
        )
        container.rate_limiter.check(caller_class, identity)

    return _dependency


async def require_reconcile_token(
    x_reconcile_token: Optional[str] = Header(default=None),
    container: Container = Depends(get_container),
) -> None:
    """Enforced only when reconcile.token is configured."""
    expected = container.settings.reconcile.token
    if not expected:
        return
    if not x_reconcile_token or not hmac.compare_digest(x_reconcile_token, expected):
        raise UnauthorizedException("Invalid reconcile token")
