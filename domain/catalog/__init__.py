"""Catalog domain exports."""
from .entity import (
    Tariff,
    ProxyTariff,
    ProxyNode,
    ProxySlot,
    ProxyNodeStatus,
    ProxySlotStatus,
    plan_slot_placement,
)
from .repository import TariffRepository, ProxyRepository

__all__ = [
    "Tariff",
    "ProxyTariff",
    "ProxyNode",
    "ProxySlot",
    "ProxyNodeStatus",
    "ProxySlotStatus",
    "plan_slot_placement",
    "TariffRepository",
    "ProxyRepository",
]
