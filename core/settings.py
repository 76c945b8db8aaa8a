"""
Payment processor settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so processor credentials live under a
single PAYMENT__ prefix.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    secret: Optional[str] = None
    tolerance_seconds: int = 300
    # Accept unsigned webhooks when no secret is set. Ignored in production.
    allow_unsigned: bool = False
    ip_allowlist: list[str] | None = None  # Optional IPs/CIDRs allowed to post webhooks
    signature_header: str = "X-ForumPay-Signature"
    timestamp_header: str = "X-ForumPay-Timestamp"


class ForumPaySettings(BaseModel):
    # Comma separated; the first one is primary, the rest are failover targets
    api_urls: str = "https://api.forumpay.com/pay/v2/"
    api_user: Optional[str] = None
    api_secret: Optional[str] = None
    mode: str = "mock"  # mock | live

    def endpoints(self) -> list[str]:
        return [u.strip() for u in self.api_urls.split(",") if u.strip()]


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="forumpay")
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    forumpay: ForumPaySettings = Field(default_factory=ForumPaySettings)

    model_config = SettingsConfigDict(
        env_prefix="PAYMENT__",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
