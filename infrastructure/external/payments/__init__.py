"""
Factory for provider webhook normalizers.
"""
from __future__ import annotations

from core.settings import payment_settings
from application.ports.webhook_normalizer import WebhookNormalizer

SUPPORTED_PROVIDERS = ("platega", "yookassa", "yoomoney")


def get_webhook_normalizer(provider: str) -> WebhookNormalizer:
    name = provider.lower()
    if name == "platega":
        from .platega import PlategaNormalizer
        return PlategaNormalizer()
    if name == "yookassa":
        from .yookassa import YooKassaNormalizer
        return YooKassaNormalizer()
    if name == "yoomoney":
        from .yoomoney import YooMoneyNormalizer
        return YooMoneyNormalizer(payment_settings.yoomoney.notification_secret)
    raise ValueError(f"Unsupported payment provider: {name}")
