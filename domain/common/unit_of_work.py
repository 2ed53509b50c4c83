"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.payment.repository import PaymentRepository
from domain.client.repository import ClientRepository
from domain.referral.repository import ReferralCreditRepository
from domain.catalog.repository import TariffRepository, ProxyRepository


class AbstractUnitOfWork(ABC):
    """应用层事务边界控制抽象"""

    payment_repository: PaymentRepository
    client_repository: ClientRepository
    referral_repository: ReferralCreditRepository
    tariff_repository: TariffRepository
    proxy_repository: ProxyRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.payment_repository = None  # type: ignore[assignment]
        self.client_repository = None  # type: ignore[assignment]
        self.referral_repository = None  # type: ignore[assignment]
        self.tariff_repository = None  # type: ignore[assignment]
        self.proxy_repository = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # 只在非只读且未显式提交时自动提交
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        """提交事务"""
        ...

    @abstractmethod
    async def rollback(self) -> None:
        """回滚事务"""
