"""
客户端仓储实现
"""
from typing import Optional
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from domain.client.entity import Client
from domain.client.repository import ClientRepository
from infrastructure.models.client import ClientModel
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyClientRepository(ClientRepository):
    """客户端仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ClientModel) -> Client:
        return Client(
            id=model.id,
            balance=Decimal(str(model.balance or 0)),
            referrer_id=model.referrer_id,
            referral_percent=Decimal(str(model.referral_percent)) if model.referral_percent is not None else None,
            telegram_id=model.telegram_id,
            telegram_username=model.telegram_username,
            email=model.email,
            remnawave_uuid=model.remnawave_uuid,
        )

    async def create(self, client: Client) -> Client:
        db_client = ClientModel(
            id=client.id,
            balance=client.balance,
            referrer_id=client.referrer_id,
            referral_percent=client.referral_percent,
            telegram_id=client.telegram_id,
            telegram_username=client.telegram_username,
            email=client.email,
            remnawave_uuid=client.remnawave_uuid,
        )
        self.session.add(db_client)
        await self.session.flush()
        await self.session.refresh(db_client)
        return self._to_entity(db_client)

    async def get_by_id(self, client_id: str) -> Optional[Client]:
        result = await self.session.execute(
            select(ClientModel)
            .where(ClientModel.id == client_id)
            .execution_options(populate_existing=True)
        )
        db_client = result.scalar_one_or_none()
        return self._to_entity(db_client) if db_client else None

    async def credit_balance(self, client_id: str, amount: Decimal) -> int:
        """余额自增在数据库端完成，避免读-改-写竞争"""
        result = await self.session.execute(
            update(ClientModel)
            .where(ClientModel.id == client_id)
            .values(balance=ClientModel.balance + amount)
            .execution_options(synchronize_session=False)
        )
        changed = result.rowcount or 0
        logger.info("client_balance_credited", client_id=client_id, amount=str(amount), changed=changed)
        return changed

    async def set_remnawave_uuid(self, client_id: str, remnawave_uuid: str) -> None:
        await self.session.execute(
            update(ClientModel)
            .where(ClientModel.id == client_id)
            .values(remnawave_uuid=remnawave_uuid)
            .execution_options(synchronize_session=False)
        )
