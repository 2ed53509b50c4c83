"""
YooKassa HTTP notification normalizer.

Body shape: {"type": "notification", "event": "payment.succeeded",
"object": {"id": ..., "status": ..., "metadata": {...}}}
"""
from __future__ import annotations

from infrastructure.external.payments.base import BaseWebhookNormalizer


class YooKassaNormalizer(BaseWebhookNormalizer):
    provider = "yookassa"

    status_paths = (
        ("event",),
        ("object", "status"),
    )

    transaction_id_paths = (
        ("object", "id"),
    )

    candidate_groups = (
        (("object", "metadata", "payment_id"),),
        (("object", "metadata", "order_id"),),
        (("object", "id"),),
    )
