"""
Platega callback normalizer.

Platega has shipped several callback shapes over time (flat, nested under
`transaction`, nested under `data`); every field is therefore resolved from an
ordered path list where top-level keys win over nested ones.
"""
from __future__ import annotations

from infrastructure.external.payments.base import BaseWebhookNormalizer


class PlategaNormalizer(BaseWebhookNormalizer):
    provider = "platega"

    status_paths = (
        ("status",),
        ("transaction", "status"),
        ("state",),
        ("paymentStatus",),
        ("payment_status",),
        ("data", "status"),
        ("data", "state"),
    )

    transaction_id_paths = (
        ("id",),
        ("transaction", "id"),
        ("transactionId",),
        ("transaction_id",),
        ("data", "id"),
        ("data", "transactionId"),
        ("data", "transaction_id"),
    )

    external_id_paths = (
        ("externalId",),
        ("transaction", "externalId"),
        ("data", "externalId"),
        ("invoiceId",),
        ("transaction", "invoiceId"),
        ("data", "invoiceId"),
    )

    order_id_paths = (
        ("orderId",),
        ("order_id",),
        ("order",),
        ("merchant_order_id",),
        ("data", "orderId"),
        ("data", "order_id"),
        ("data", "order"),
    )

    # Our payment id echoed back
    payload_paths = (
        ("payload",),
        ("transaction", "payload"),
        ("data", "payload"),
    )

    candidate_groups = (
        payload_paths,
        transaction_id_paths,
        external_id_paths,
        order_id_paths,
    )
