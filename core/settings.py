"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings: everything the webhook pipeline,
fulfillment and referral payout read lives here, addressed with nested
env keys (e.g. ``ACTIVATION__STALE_AFTER_SECONDS=900``).
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class ActivationSettings(BaseModel):
    # Claims older than this are treated as abandoned and may be reclaimed
    stale_after_seconds: int = 600
    # Upper bound for one fulfillment attempt (control-plane + store writes)
    timeout_seconds: float = 60.0
    # Reconciliation sweep only looks this far back
    sweep_lookback_days: int = 7
    sweep_batch_size: int = 100


class ReferralSettings(BaseModel):
    level1_percent: Decimal = Decimal("30")
    level2_percent: Decimal = Decimal("10")
    level3_percent: Decimal = Decimal("10")


class YooMoneySettings(BaseModel):
    notification_secret: Optional[str] = None


class RemnawaveSettings(BaseModel):
    api_url: Optional[str] = None
    admin_token: Optional[str] = None


class TelegramSettings(BaseModel):
    bot_token: Optional[str] = None
    api_url: str = "https://api.telegram.org"


class PaymentSettings(BaseSettings):
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    activation: ActivationSettings = Field(default_factory=ActivationSettings)
    referral: ReferralSettings = Field(default_factory=ReferralSettings)

    yoomoney: YooMoneySettings = Field(default_factory=YooMoneySettings)
    remnawave: RemnawaveSettings = Field(default_factory=RemnawaveSettings)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
