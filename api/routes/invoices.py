"""
Invoice API routes.

Thin layer over the application services; no processor details here.
"""
from __future__ import annotations

import ipaddress

from fastapi import APIRouter, Depends, Request

from api.dependencies import (
    get_container,
    get_invoice_service,
    get_reconciliation_service,
    get_webhook_service,
    rate_limited,
    require_reconcile_token,
)
from api.container import Container
from api.middleware.request_id import resolve_client_ip
from application.dtos.invoices import CreateInvoice
from application.services.invoice_service import InvoiceService
from application.services.reconciliation_service import ReconciliationService
from application.services.webhook_service import WebhookIngestionService
from core.exceptions import UnauthorizedException
from core.logging_config import get_logger
from core.response import success_response


router = APIRouter(prefix="/invoices", tags=["Invoices"])
logger = get_logger(__name__)


def _ip_allowed(remote_ip: str, allowlist: list[str]) -> bool:
    try:
        rip = ipaddress.ip_address(remote_ip)
    except ValueError:
        return False
    for entry in allowlist:
        try:
            if "/" in entry:
                if rip in ipaddress.ip_network(entry, strict=False):
                    return True
            elif rip == ipaddress.ip_address(entry):
                return True
        except ValueError:
            logger.warning("webhook_allowlist_entry_invalid", entry=entry)
    return False


@router.post(
    "",
    summary="Create invoice",
    dependencies=[Depends(rate_limited("create-invoice"))],
)
async def create_invoice(
    payload: CreateInvoice,
    service: InvoiceService = Depends(get_invoice_service),
):
    view = await service.create_invoice(payload)
    return success_response(data=view.model_dump(mode="json"), message="Invoice created")


@router.post(
    "/webhooks/forumpay",
    summary="ForumPay webhook",
    dependencies=[Depends(rate_limited("webhook"))],
)
async def forumpay_webhook(
    request: Request,
    service: WebhookIngestionService = Depends(get_webhook_service),
    container: Container = Depends(get_container),
):
    allowlist = container.payment_settings.webhook.ip_allowlist or []
    if allowlist:
        remote_ip = resolve_client_ip(request, container.settings.TRUSTED_PROXIES)
        if not _ip_allowed(remote_ip, allowlist):
            logger.warning("webhook_ip_rejected", remote_ip=remote_ip)
            raise UnauthorizedException("Webhook source not allowed")

    raw_body = await request.body()
    ack = await service.ingest(dict(request.headers), raw_body)
    return success_response(data=ack.model_dump(mode="json"), message="Webhook received")


@router.post(
    "/reconcile",
    summary="Run one reconciliation pass",
    dependencies=[Depends(rate_limited("reconcile")), Depends(require_reconcile_token)],
)
async def reconcile(service: ReconciliationService = Depends(get_reconciliation_service)):
    summary = await service.run_pass()
    return success_response(data=summary.model_dump(mode="json"), message="Reconciliation finished")


@router.get(
    "/{invoice_id}",
    summary="Invoice status",
    dependencies=[Depends(rate_limited("default"))],
)
async def get_invoice(invoice_id: str, service: InvoiceService = Depends(get_invoice_service)):
    view = await service.get_invoice_status(invoice_id)
    return success_response(data=view.model_dump(mode="json"), message="Invoice status")
