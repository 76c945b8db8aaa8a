"""
Prometheus metrics for the invoice engine.

One InvoiceMetrics per process, created by the composition root; it owns its
own CollectorRegistry so tests can build as many as they like.
"""
from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest, CONTENT_TYPE_LATEST


class InvoiceMetrics:
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, namespace: str = "", registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry or CollectorRegistry()
        prefix = f"{namespace}_" if namespace else ""

        self.invoice_created = Counter(
            f"{prefix}invoice_created_total", "Invoices created", registry=self.registry
        )
        self.invoice_transition = Counter(
            f"{prefix}invoice_transition_total",
            "Committed invoice status transitions",
            ["status", "source"],
            registry=self.registry,
        )
        self.webhook_rejected = Counter(
            f"{prefix}webhook_rejected_total",
            "Webhooks rejected before any state change",
            ["reason"],
            registry=self.registry,
        )
        self.webhook_ignored = Counter(
            f"{prefix}webhook_ignored_total",
            "Authenticated webhooks acknowledged without applying",
            ["reason"],
            registry=self.registry,
        )
        self.reconciliation_runs = Counter(
            f"{prefix}reconciliation_runs_total", "Reconciliation passes", registry=self.registry
        )
        self.reconciliation_updated = Counter(
            f"{prefix}reconciliation_updated_total",
            "Invoices changed by reconciliation",
            registry=self.registry,
        )
        self.reconciliation_errors = Counter(
            f"{prefix}reconciliation_errors_total",
            "Per-invoice reconciliation failures",
            registry=self.registry,
        )
        self.rpc_failure = Counter(
            f"{prefix}rpc_failure_total",
            "Failed outbound calls per upstream",
            ["upstream"],
            registry=self.registry,
        )

    def transition(self, status: str, source: str) -> None:
        self.invoice_transition.labels(status=status, source=source).inc()

    def render(self) -> bytes:
        return generate_latest(self.registry)
