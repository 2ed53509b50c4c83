"""
商品目录仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Tariff, ProxyTariff, ProxyNode, ProxySlot


class TariffRepository(ABC):
    @abstractmethod
    async def get_by_id(self, tariff_id: str) -> Optional[Tariff]:
        pass

    @abstractmethod
    async def create(self, tariff: Tariff) -> Tariff:
        pass


class ProxyRepository(ABC):
    """代理套餐/节点/槽位仓储"""

    @abstractmethod
    async def get_tariff(self, tariff_id: str) -> Optional[ProxyTariff]:
        pass

    @abstractmethod
    async def list_online_nodes(self, tariff_id: str) -> List[ProxyNode]:
        """套餐绑定的在线节点（未绑定则为全部在线节点），按 updated_at 升序"""
        pass

    @abstractmethod
    async def count_active_slots(self, node_ids: List[str]) -> dict[str, int]:
        pass

    @abstractmethod
    async def add_slots(self, slots: List[ProxySlot]) -> List[ProxySlot]:
        pass

    @abstractmethod
    async def list_slots_by_payment(self, payment_id: str) -> List[ProxySlot]:
        pass
