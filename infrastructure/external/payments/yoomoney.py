"""
YooMoney (wallet) HTTP notification normalizer and signature check.

Notifications are form-encoded and carry no status field: a transfer that
reaches us is complete unless it is protected by a code (`codepro=true`) or
not yet accepted (`unaccepted`). Authenticity is a SHA-1 over a fixed field
order plus the shared notification secret.
"""
from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from core.logging_config import get_logger
from domain.common.exceptions import MissingParameterException
from infrastructure.external.payments.base import BaseWebhookNormalizer
from infrastructure.external.payments.exceptions import (
    PaymentSignatureError,
    SignatureSecretNotConfiguredError,
)


logger = get_logger(__name__)

REQUIRED_FIELDS = ("notification_type", "operation_id", "amount", "sha1_hash")


def form_value(body: Mapping[str, Any], key: str) -> str:
    """Form fields may arrive as scalars or repeated lists; take the first, stripped."""
    value = body.get(key)
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        value = value[0] if value else ""
    return str(value).strip()


def codepro_flag(body: Mapping[str, Any]) -> str:
    raw = body.get("codepro")
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else "false"
    return "true" if raw is True or raw == "true" else "false"


def resolve_label(body: Mapping[str, Any]) -> str:
    return (
        form_value(body, "label")
        or form_value(body, "order_id")
        or form_value(body, "orderId")
        or form_value(body, "custom")
    )


def compute_sha1(body: Mapping[str, Any], secret: str) -> str:
    parts = [
        form_value(body, "notification_type"),
        form_value(body, "operation_id"),
        form_value(body, "amount"),
        form_value(body, "currency"),
        form_value(body, "datetime"),
        form_value(body, "sender"),
        codepro_flag(body),
        secret,
        resolve_label(body),
    ]
    return hashlib.sha1("&".join(parts).encode("utf-8")).hexdigest()


class YooMoneyNormalizer(BaseWebhookNormalizer):
    provider = "yoomoney"

    transaction_id_paths = (("operation_id",),)

    candidate_groups = (
        (("label",),),
        (("order_id",),),
        (("orderId",),),
        (("custom",),),
        (("operation_id",),),
    )

    def __init__(self, notification_secret: Optional[str] = None):
        self._secret = (notification_secret or "").strip()

    def _extract_status(self, body: Mapping[str, Any]) -> Optional[str]:
        if not form_value(body, "operation_id"):
            return None
        if codepro_flag(body) == "true":
            return "PROTECTED"
        unaccepted = form_value(body, "unaccepted").lower()
        if unaccepted and unaccepted != "false":
            return "UNACCEPTED"
        try:
            amount = Decimal(form_value(body, "amount"))
        except InvalidOperation:
            return "INVALID_AMOUNT"
        if not amount.is_finite() or amount <= 0:
            return "INVALID_AMOUNT"
        return "SUCCESS"

    def _extract_candidates(self, body: Mapping[str, Any]) -> list[str]:
        # Starlette form data may hold lists; flatten before path lookup
        flat = {k: form_value(body, k) for k in body.keys()}
        return super()._extract_candidates(flat)

    def authenticate(self, body: Mapping[str, Any]) -> None:
        """Validate required fields and the sha1_hash.

        Transfers that will be ignored anyway (protected or unaccepted) skip the
        signature check so they are acknowledged without a configured secret.

        Raises:
            MissingParameterException: a required field is empty (400).
            SignatureSecretNotConfiguredError: no secret configured (500).
            PaymentSignatureError: hash mismatch (403).
        """
        missing = [name for name in REQUIRED_FIELDS if not form_value(body, name)]
        if missing:
            self._log("webhook_required_fields_missing", missing=missing, keys=sorted(body.keys()))
            raise MissingParameterException(missing)

        if codepro_flag(body) == "true":
            return
        unaccepted = form_value(body, "unaccepted").lower()
        if unaccepted and unaccepted != "false":
            return

        if not self._secret:
            logger.warning("yoomoney_secret_not_configured")
            raise SignatureSecretNotConfiguredError(provider=self.provider)

        expected = compute_sha1(body, self._secret)
        received = form_value(body, "sha1_hash").lower()
        if not hmac.compare_digest(expected.lower(), received):
            logger.warning(
                "yoomoney_signature_mismatch",
                expected_prefix=expected[:8],
                received_prefix=received[:8],
            )
            raise PaymentSignatureError("Invalid sha1_hash", provider=self.provider)
