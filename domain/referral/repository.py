"""
推荐奖励仓储接口
"""
from abc import ABC, abstractmethod
from typing import List

from .entity import ReferralCredit


class ReferralCreditRepository(ABC):
    """推荐奖励仓储抽象接口"""

    @abstractmethod
    async def insert_if_absent(self, credit: ReferralCredit) -> bool:
        """插入奖励记录；唯一键已存在时不插入并返回 False"""
        pass

    @abstractmethod
    async def list_by_payment(self, payment_id: str) -> List[ReferralCredit]:
        pass
