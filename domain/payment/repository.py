"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录（支付发起流程使用，亦用于测试数据准备）"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据ID获取支付；for_update=True 时持有行锁直至事务结束"""
        pass

    @abstractmethod
    async def find_by_external_id(self, provider: str, external_id: str) -> Optional[Payment]:
        """按渠道 + 渠道交易ID查找"""
        pass

    @abstractmethod
    async def find_by_order_id(self, provider: str, order_id: str) -> Optional[Payment]:
        """按内部订单号查找（限定同一渠道）"""
        pass

    @abstractmethod
    async def find_by_id_for_provider(self, provider: str, payment_id: str) -> Optional[Payment]:
        """按内部支付ID查找（限定同一渠道）"""
        pass

    @abstractmethod
    async def try_transition(
        self,
        payment_id: str,
        to_status: PaymentStatus,
        *,
        external_id: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> int:
        """条件更新 PENDING → to_status，返回实际变更行数（0 或 1）"""
        pass

    @abstractmethod
    async def compare_and_set_metadata(
        self,
        payment_id: str,
        expected_version: int,
        metadata: dict,
    ) -> int:
        """仅当 version 未变化时写入 metadata 并递增 version，返回变更行数"""
        pass

    @abstractmethod
    async def list_unfulfilled_paid(self, since: datetime, limit: int = 100) -> List[Payment]:
        """列出时间窗口内已支付但尚未履约的非充值支付"""
        pass
