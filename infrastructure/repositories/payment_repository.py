"""
支付仓储实现 - 使用SQLAlchemy实现数据访问
"""
from typing import Optional, List
from datetime import datetime, timezone
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_

from domain.payment.entity import Payment, PaymentStatus, APPLIED_AT_KEY
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):
    """支付仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        """将数据库模型转换为领域实体"""
        return Payment(
            id=model.id,
            provider=model.provider,
            order_id=model.order_id,
            client_id=model.client_id,
            amount=Decimal(str(model.amount)),
            currency=model.currency,
            status=PaymentStatus(model.status),
            external_id=model.external_id,
            tariff_id=model.tariff_id,
            proxy_tariff_id=model.proxy_tariff_id,
            metadata=dict(model.extra_metadata or {}),
            version=model.version or 0,
            created_at=model.created_at,
            updated_at=model.updated_at,
            paid_at=model.paid_at,
        )

    def _to_model(self, entity: Payment) -> PaymentModel:
        """将领域实体转换为数据库模型"""
        now = datetime.now(timezone.utc)
        return PaymentModel(
            id=entity.id,
            provider=entity.provider,
            order_id=entity.order_id,
            client_id=entity.client_id,
            amount=entity.amount,
            currency=entity.currency,
            status=entity.status.value,
            external_id=entity.external_id,
            tariff_id=entity.tariff_id,
            proxy_tariff_id=entity.proxy_tariff_id,
            extra_metadata=entity.metadata,
            version=entity.version,
            created_at=entity.created_at or now,
            updated_at=entity.updated_at or now,
            paid_at=entity.paid_at,
        )

    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        db_payment = self._to_model(payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.info(
            "payment_created",
            payment_id=db_payment.id,
            order_id=db_payment.order_id,
            provider=db_payment.provider,
        )
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: str, *, for_update: bool = False) -> Optional[Payment]:
        """根据ID获取支付"""
        query = select(PaymentModel).where(PaymentModel.id == payment_id)
        if for_update:
            # SQLite 会忽略 FOR UPDATE，此时依赖 version 条件更新
            query = query.with_for_update()
        # populate_existing 避免返回会话缓存中的旧快照
        result = await self.session.execute(query.execution_options(populate_existing=True))
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def find_by_external_id(self, provider: str, external_id: str) -> Optional[Payment]:
        """根据渠道交易ID获取支付"""
        result = await self.session.execute(
            select(PaymentModel).where(
                PaymentModel.provider == provider,
                PaymentModel.external_id == external_id,
            ).limit(1)
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def find_by_order_id(self, provider: str, order_id: str) -> Optional[Payment]:
        """根据内部订单号获取支付（限定渠道）"""
        result = await self.session.execute(
            select(PaymentModel).where(
                PaymentModel.provider == provider,
                PaymentModel.order_id == order_id,
            )
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def find_by_id_for_provider(self, provider: str, payment_id: str) -> Optional[Payment]:
        """根据内部支付ID获取支付（限定渠道）"""
        result = await self.session.execute(
            select(PaymentModel).where(
                PaymentModel.provider == provider,
                PaymentModel.id == payment_id,
            )
        )
        db_payment = result.scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def try_transition(
        self,
        payment_id: str,
        to_status: PaymentStatus,
        *,
        external_id: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> int:
        """UPDATE ... WHERE id = :id AND status = 'PENDING'"""
        values: dict = {
            "status": to_status.value,
            "updated_at": datetime.now(timezone.utc),
        }
        if to_status is PaymentStatus.PAID:
            values["paid_at"] = paid_at or datetime.now(timezone.utc)
        if external_id:
            values["external_id"] = external_id

        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.status == PaymentStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount or 0
        logger.info(
            "payment_transition_attempted",
            payment_id=payment_id,
            to_status=to_status.value,
            changed=changed,
        )
        return changed

    async def compare_and_set_metadata(
        self,
        payment_id: str,
        expected_version: int,
        metadata: dict,
    ) -> int:
        """UPDATE ... SET metadata = :m, version = version + 1 WHERE id = :id AND version = :v"""
        result = await self.session.execute(
            update(PaymentModel)
            .where(
                PaymentModel.id == payment_id,
                PaymentModel.version == expected_version,
            )
            .values(
                extra_metadata=metadata,
                version=PaymentModel.version + 1,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def list_unfulfilled_paid(self, since: datetime, limit: int = 100) -> List[Payment]:
        """已支付、非充值、且 metadata 中尚无 activationAppliedAt 的支付"""
        stmt = (
            select(PaymentModel)
            .where(
                PaymentModel.status == PaymentStatus.PAID.value,
                PaymentModel.paid_at >= since,
                or_(
                    PaymentModel.tariff_id.is_not(None),
                    PaymentModel.proxy_tariff_id.is_not(None),
                    PaymentModel.extra_metadata.is_not(None),
                ),
            )
            .order_by(PaymentModel.paid_at.asc(), PaymentModel.id.asc())
        )
        # JSON 键存在性判断各方言写法不一，按页过量读取后在内存中过滤，读满 limit 即停
        page_size = max(limit * 2, 50)
        pending: List[Payment] = []
        offset = 0
        while len(pending) < limit:
            result = await self.session.execute(stmt.limit(page_size).offset(offset))
            rows = result.scalars().all()
            for row in rows:
                payment = self._to_entity(row)
                if not payment.is_topup and APPLIED_AT_KEY not in payment.metadata:
                    pending.append(payment)
            if len(rows) < page_size:
                break
            offset += page_size
        return pending[:limit]

