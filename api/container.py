"""
Composition root.

Builds the process-wide state objects (rate limiter, failover gateways,
metrics, processor client, unit of work factory) once and wires the
application services from them. main.py stores the container on app.state;
Celery tasks and scripts build their own.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Optional

from application.ports.payment_processor import PaymentProcessor
from application.services.invoice_service import InvoiceService
from application.services.reconciliation_service import ReconciliationService
from application.services.webhook_service import WebhookIngestionService
from core.config import Settings, settings as default_settings
from core.logging_config import get_logger
from core.settings import PaymentSettings, payment_settings as default_payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.chain.rpc_client import ChainRpcClient
from infrastructure.external.payments import get_payment_processor
from infrastructure.external.payments.exceptions import PaymentRecoverableError
from infrastructure.external.payments.forumpay_client import UPSTREAM as FORUMPAY_UPSTREAM
from infrastructure.gateway.failover import FailoverGateway
from infrastructure.gateway.rate_limit import RateLimiter
from infrastructure.metrics import InvoiceMetrics
from infrastructure.repositories.memory_invoice_repository import InMemoryInvoiceStore


logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    payment_settings: PaymentSettings
    metrics: InvoiceMetrics
    rate_limiter: RateLimiter
    processor_gateway: FailoverGateway
    chain_gateway: FailoverGateway
    processor: PaymentProcessor
    rpc_client: ChainRpcClient
    uow_factory: Callable[..., AbstractUnitOfWork]
    invoice_service: InvoiceService = field(init=False)
    webhook_service: WebhookIngestionService = field(init=False)
    reconciliation_service: ReconciliationService = field(init=False)

    def __post_init__(self) -> None:
        self.invoice_service = InvoiceService(
            self.uow_factory,
            self.processor,
            ttl_minutes=self.settings.invoice.ttl_minutes,
            default_network=self.settings.invoice.default_network,
            metrics=self.metrics,
        )
        self.webhook_service = WebhookIngestionService(
            self.uow_factory,
            self.processor,
            secret=self.payment_settings.webhook.secret,
            signature_header=self.payment_settings.webhook.signature_header,
            timestamp_header=self.payment_settings.webhook.timestamp_header,
            metrics=self.metrics,
        )
        self.reconciliation_service = ReconciliationService(
            self.uow_factory,
            self.processor,
            concurrency=self.settings.reconcile.concurrency,
            metrics=self.metrics,
        )

    async def aclose(self) -> None:
        try:
            close = getattr(self.processor, "aclose", None)
            if callable(close):
                await close()
            await self.rpc_client.aclose()
        finally:
            if self.settings.invoice.store == "sql":
                # Pooled connections belong to the current event loop
                from infrastructure import database

                await database.dispose_engine()


def build_uow_factory(settings: Settings) -> Callable[..., AbstractUnitOfWork]:
    if settings.invoice.store == "memory":
        from infrastructure.unit_of_work import InMemoryUnitOfWork

        return partial(InMemoryUnitOfWork, InMemoryInvoiceStore())
    if settings.invoice.store != "sql":
        raise ValueError(f"Unsupported invoice store: {settings.invoice.store}")
    from infrastructure.database import AsyncSessionLocal
    from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

    return partial(SQLAlchemyUnitOfWork, AsyncSessionLocal)


def build_container(
    settings: Optional[Settings] = None,
    payment_settings: Optional[PaymentSettings] = None,
    *,
    processor: Optional[PaymentProcessor] = None,
    uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
    rpc_client: Optional[ChainRpcClient] = None,
    metrics: Optional[InvoiceMetrics] = None,
) -> Container:
    settings = settings or default_settings
    payment_settings = payment_settings or default_payment_settings
    metrics = metrics or InvoiceMetrics()

    rate_limiter = RateLimiter(settings.rate_limits)
    processor_gateway = FailoverGateway(
        {FORUMPAY_UPSTREAM: payment_settings.forumpay.endpoints()},
        backoff_seconds=settings.chain.failover_backoff_seconds,
        retry_on=(PaymentRecoverableError,),
        metrics=metrics,
    )
    chain_gateway = FailoverGateway(
        settings.chain.endpoints(),
        backoff_seconds=settings.chain.failover_backoff_seconds,
        metrics=metrics,
    )
    if processor is None:
        processor = get_payment_processor(
            settings=payment_settings,
            gateway=processor_gateway,
            is_production=settings.is_production,
        )
    if rpc_client is None:
        rpc_client = ChainRpcClient(chain_gateway, timeout_seconds=settings.chain.timeout_seconds)

    container = Container(
        settings=settings,
        payment_settings=payment_settings,
        metrics=metrics,
        rate_limiter=rate_limiter,
        processor_gateway=processor_gateway,
        chain_gateway=chain_gateway,
        processor=processor,
        rpc_client=rpc_client,
        uow_factory=uow_factory or build_uow_factory(settings),
    )
    logger.info(
        "container_built",
        store=settings.invoice.store,
        provider=processor.provider,
        environment=settings.ENVIRONMENT,
    )
    return container
