"""
支付领域服务 - 回调关联查找与状态迁移规则
"""
from typing import Iterable, Optional
from datetime import datetime, timezone

from .entity import Payment, PaymentStatus
from .repository import PaymentRepository
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class PaymentNotFoundException(BusinessException):
    """支付记录不存在"""
    def __init__(self, identifier: str):
        super().__init__(
            code=PaymentCode.PAYMENT_NOT_FOUND,
            message=f"Payment not found: {identifier}",
            error_type="PaymentNotFound",
            details={"payment_id": identifier},
        )


class InvalidPaymentTransitionException(BusinessException):
    """非法状态迁移（终态不可再迁移）"""
    def __init__(self, payment_id: str, current: PaymentStatus, target: PaymentStatus):
        super().__init__(
            code=PaymentCode.INVALID_TRANSITION,
            message=f"Payment {payment_id} is {current.value}, cannot move to {target.value}",
            error_type="InvalidPaymentTransition",
            details={"payment_id": payment_id, "status": current.value, "target": target.value},
        )


class PaymentDomainService:
    """
    支付领域服务

    职责：
    1. 依据关联候选值按序查找支付（渠道隔离）
    2. 以条件更新实现幂等状态迁移
    """

    def __init__(self, payment_repository: PaymentRepository):
        self.payment_repository = payment_repository

    async def find_by_candidates(self, provider: str, candidates: Iterable[str]) -> Optional[Payment]:
        """
        逐个候选值尝试：渠道交易ID → 内部订单号 → 内部支付ID，首个命中即返回
        """
        repo = self.payment_repository
        for candidate in candidates:
            if not candidate:
                continue
            payment = await repo.find_by_external_id(provider, candidate)
            if payment is None:
                payment = await repo.find_by_order_id(provider, candidate)
            if payment is None:
                payment = await repo.find_by_id_for_provider(provider, candidate)
            if payment is not None:
                return payment
        return None

    async def mark_paid(
        self,
        payment_id: str,
        *,
        external_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """PENDING → PAID；返回 True 表示本次调用完成了迁移"""
        changed = await self.payment_repository.try_transition(
            payment_id,
            PaymentStatus.PAID,
            external_id=external_id,
            paid_at=now or datetime.now(timezone.utc),
        )
        return changed == 1

    async def mark_failed(self, payment_id: str, *, external_id: Optional[str] = None) -> bool:
        """PENDING → FAILED；已是终态时不做任何修改"""
        changed = await self.payment_repository.try_transition(
            payment_id,
            PaymentStatus.FAILED,
            external_id=external_id,
        )
        return changed == 1
