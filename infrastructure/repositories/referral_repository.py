"""
推荐奖励仓储实现
"""
from typing import List
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from domain.referral.entity import ReferralCredit
from domain.referral.repository import ReferralCreditRepository
from infrastructure.models.referral import ReferralCreditModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyReferralCreditRepository(ReferralCreditRepository):
    """推荐奖励仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ReferralCreditModel) -> ReferralCredit:
        return ReferralCredit(
            id=model.id,
            referrer_id=model.referrer_id,
            payment_id=model.payment_id,
            level=model.level,
            amount=Decimal(str(model.amount)),
            percent=Decimal(str(model.percent)),
            created_at=model.created_at,
        )

    async def insert_if_absent(self, credit: ReferralCredit) -> bool:
        """
        依赖唯一约束实现“不存在才插入”。

        冲突时回滚当前事务并返回 False，调用方应把插入作为事务内第一步写操作。
        """
        db_credit = ReferralCreditModel(
            referrer_id=credit.referrer_id,
            payment_id=credit.payment_id,
            level=credit.level,
            amount=credit.amount,
            percent=credit.percent,
        )
        self.session.add(db_credit)
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.info(
                "referral_credit_exists",
                referrer_id=credit.referrer_id,
                payment_id=credit.payment_id,
                level=credit.level,
            )
            return False
        logger.info(
            "referral_credit_created",
            referrer_id=credit.referrer_id,
            payment_id=credit.payment_id,
            level=credit.level,
            amount=str(credit.amount),
        )
        return True

    async def list_by_payment(self, payment_id: str) -> List[ReferralCredit]:
        result = await self.session.execute(
            select(ReferralCreditModel)
            .where(ReferralCreditModel.payment_id == payment_id)
            .order_by(ReferralCreditModel.level.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
