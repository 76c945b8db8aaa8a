"""
Factory for payment processor clients.
"""
from __future__ import annotations

from typing import Optional

from core.settings import PaymentSettings, payment_settings
from application.ports.payment_processor import PaymentProcessor


def get_payment_processor(
    provider: Optional[str] = None,
    *,
    settings: Optional[PaymentSettings] = None,
    **kwargs,
) -> PaymentProcessor:
    settings = settings or payment_settings
    name = (provider or settings.default_provider).lower()
    if name in {"forumpay", "fp"}:
        from .forumpay_client import ForumPayClient
        return ForumPayClient(settings=settings, **kwargs)
    raise ValueError(f"Unsupported payment provider: {name}")
