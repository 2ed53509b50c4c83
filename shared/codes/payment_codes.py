"""
Payment specific codes and provider status classification.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Payment domain errors (201xx)
    PAYMENT_NOT_FOUND = 20101
    INVALID_TRANSITION = 20102

    # Webhook authenticity (6xxxx)
    SIGNATURE_ERROR = 60002
    SIGNATURE_NOT_CONFIGURED = 60005

    # Control plane (7xxxx), surfaced only through operator endpoints
    CONTROL_PLANE_ERROR = 70000


# Provider status → bucket. Values are compared after upper-casing.
PROVIDER_SUCCESS_STATUSES: dict[str, frozenset[str]] = {
    "platega": frozenset({
        "CONFIRMED", "PAID", "SUCCESS", "SUCCEEDED", "COMPLETED", "SUCCESSFUL", "APPROVED",
    }),
    "yookassa": frozenset({"PAYMENT.SUCCEEDED", "SUCCEEDED"}),
    "yoomoney": frozenset({"SUCCESS"}),
}

PROVIDER_FAILURE_STATUSES: dict[str, frozenset[str]] = {
    "platega": frozenset({
        "CANCELED", "CANCELLED", "FAILED", "DECLINED", "REJECTED",
        "ERROR", "EXPIRED", "CHARGEBACK", "CHARGEBACKED",
    }),
    "yookassa": frozenset({"PAYMENT.CANCELED", "CANCELED"}),
    "yoomoney": frozenset(),
}
