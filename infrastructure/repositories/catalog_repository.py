"""
商品目录仓储实现：VPN 套餐与代理资源
"""
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from domain.catalog.entity import (
    Tariff,
    ProxyTariff,
    ProxyNode,
    ProxySlot,
    ProxyNodeStatus,
    ProxySlotStatus,
)
from domain.catalog.repository import TariffRepository, ProxyRepository
from infrastructure.models.catalog import (
    TariffModel,
    ProxyTariffModel,
    ProxyNodeModel,
    ProxyTariffNodeModel,
    ProxySlotModel,
)
from core.logging_config import get_logger


logger = get_logger(__name__)


class SQLAlchemyTariffRepository(TariffRepository):
    """VPN 套餐仓储"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TariffModel) -> Tariff:
        return Tariff(
            id=model.id,
            name=model.name,
            duration_days=model.duration_days,
            traffic_limit_bytes=model.traffic_limit_bytes,
            device_limit=model.device_limit,
            internal_squad_uuids=list(model.internal_squad_uuids or []),
        )

    async def get_by_id(self, tariff_id: str) -> Optional[Tariff]:
        result = await self.session.execute(select(TariffModel).where(TariffModel.id == tariff_id))
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def create(self, tariff: Tariff) -> Tariff:
        model = TariffModel(
            id=tariff.id,
            name=tariff.name,
            duration_days=tariff.duration_days,
            traffic_limit_bytes=tariff.traffic_limit_bytes,
            device_limit=tariff.device_limit,
            internal_squad_uuids=list(tariff.internal_squad_uuids),
        )
        self.session.add(model)
        await self.session.flush()
        return self._to_entity(model)


class SQLAlchemyProxyRepository(ProxyRepository):
    """代理套餐/节点/槽位仓储"""

    def __init__(self, session: AsyncSession):
        self.session = session

    @staticmethod
    def _tariff_to_entity(model: ProxyTariffModel) -> ProxyTariff:
        return ProxyTariff(
            id=model.id,
            name=model.name,
            enabled=bool(model.enabled),
            proxy_count=model.proxy_count,
            duration_days=model.duration_days,
            traffic_limit_bytes=model.traffic_limit_bytes,
            connection_limit=model.connection_limit,
        )

    @staticmethod
    def _node_to_entity(model: ProxyNodeModel) -> ProxyNode:
        return ProxyNode(
            id=model.id,
            public_host=model.public_host,
            socks_port=model.socks_port,
            http_port=model.http_port,
            capacity=model.capacity,
            status=ProxyNodeStatus(model.status),
            updated_at=model.updated_at,
        )

    @staticmethod
    def _slot_to_entity(model: ProxySlotModel) -> ProxySlot:
        return ProxySlot(
            id=model.id,
            node_id=model.node_id,
            client_id=model.client_id,
            proxy_tariff_id=model.proxy_tariff_id,
            payment_id=model.payment_id,
            login=model.login,
            password=model.password,
            expires_at=model.expires_at,
            traffic_limit_bytes=model.traffic_limit_bytes,
            connection_limit=model.connection_limit,
            status=ProxySlotStatus(model.status),
        )

    async def get_tariff(self, tariff_id: str) -> Optional[ProxyTariff]:
        result = await self.session.execute(
            select(ProxyTariffModel).where(ProxyTariffModel.id == tariff_id)
        )
        model = result.scalar_one_or_none()
        return self._tariff_to_entity(model) if model else None

    async def list_online_nodes(self, tariff_id: str) -> List[ProxyNode]:
        assigned = await self.session.execute(
            select(ProxyTariffNodeModel.node_id).where(ProxyTariffNodeModel.tariff_id == tariff_id)
        )
        node_ids = list(assigned.scalars().all())

        query = select(ProxyNodeModel).where(ProxyNodeModel.status == ProxyNodeStatus.ONLINE.value)
        if node_ids:
            query = query.where(ProxyNodeModel.id.in_(node_ids))
        result = await self.session.execute(query.order_by(ProxyNodeModel.updated_at.asc()))
        return [self._node_to_entity(m) for m in result.scalars().all()]

    async def count_active_slots(self, node_ids: List[str]) -> dict[str, int]:
        if not node_ids:
            return {}
        result = await self.session.execute(
            select(ProxySlotModel.node_id, func.count(ProxySlotModel.id))
            .where(
                ProxySlotModel.node_id.in_(node_ids),
                ProxySlotModel.status == ProxySlotStatus.ACTIVE.value,
            )
            .group_by(ProxySlotModel.node_id)
        )
        return {node_id: count for node_id, count in result.all()}

    async def add_slots(self, slots: List[ProxySlot]) -> List[ProxySlot]:
        models = [
            ProxySlotModel(
                id=s.id,
                node_id=s.node_id,
                client_id=s.client_id,
                proxy_tariff_id=s.proxy_tariff_id,
                payment_id=s.payment_id,
                login=s.login,
                password=s.password,
                expires_at=s.expires_at,
                traffic_limit_bytes=s.traffic_limit_bytes,
                connection_limit=s.connection_limit,
                status=s.status.value,
            )
            for s in slots
        ]
        self.session.add_all(models)
        await self.session.flush()
        logger.info("proxy_slots_created", count=len(models), slot_ids=[m.id for m in models])
        return [self._slot_to_entity(m) for m in models]

    async def list_slots_by_payment(self, payment_id: str) -> List[ProxySlot]:
        result = await self.session.execute(
            select(ProxySlotModel).where(ProxySlotModel.payment_id == payment_id)
        )
        return [self._slot_to_entity(m) for m in result.scalars().all()]
