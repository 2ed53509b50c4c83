"""
Exceptions for payment providers mapped to unified BusinessException variants.
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        full_details = {"provider": provider}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=full_details,
        )


class SignatureSecretNotConfiguredError(BusinessException):
    """The shared secret is missing; providers should keep retrying until it is set."""

    def __init__(self, *, provider: str):
        super().__init__(
            code=PaymentCode.SIGNATURE_NOT_CONFIGURED,
            message=f"Notification secret for {provider} is not configured",
            error_type="SignatureSecretNotConfigured",
            details={"provider": provider},
        )
