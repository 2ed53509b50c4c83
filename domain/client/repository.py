"""
客户端仓储接口
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from .entity import Client


class ClientRepository(ABC):
    """客户端仓储抽象接口"""

    @abstractmethod
    async def create(self, client: Client) -> Client:
        pass

    @abstractmethod
    async def get_by_id(self, client_id: str) -> Optional[Client]:
        pass

    @abstractmethod
    async def credit_balance(self, client_id: str, amount: Decimal) -> int:
        """原子递增余额（balance = balance + amount），返回变更行数"""
        pass

    @abstractmethod
    async def set_remnawave_uuid(self, client_id: str, remnawave_uuid: str) -> None:
        pass
