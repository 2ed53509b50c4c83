"""Infrastructure models package exports."""
from .base import Base, metadata
from .client import ClientModel
from .catalog import (
    TariffModel,
    ProxyTariffModel,
    ProxyNodeModel,
    ProxyTariffNodeModel,
    ProxySlotModel,
)
from .payment import PaymentModel
from .referral import ReferralCreditModel

__all__ = [
    "Base",
    "metadata",
    "ClientModel",
    "TariffModel",
    "ProxyTariffModel",
    "ProxyNodeModel",
    "ProxyTariffNodeModel",
    "ProxySlotModel",
    "PaymentModel",
    "ReferralCreditModel",
]
