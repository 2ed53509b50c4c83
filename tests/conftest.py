"""Pytest bootstrap configuration.

Ensure environment variables are set before test collection and module
imports that depend on application settings, then provide a throwaway
SQLite database per test plus fake control-plane/notifier adapters.
"""
import os

os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ["DEBUG"] = "false"

import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import partial
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from application.ports.control_plane import ControlPlaneError, Entitlement, EntitlementUpdate
from application.services.payment_service import PaymentService
from domain.catalog.entity import Tariff
from domain.client.entity import Client
from domain.payment.entity import Payment
from infrastructure.database import create_tables
from infrastructure.models import ProxyNodeModel, ProxyTariffModel, ProxyTariffNodeModel
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime.now(timezone.utc).replace(microsecond=0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeControlPlane:
    """In-memory stand-in for the Remnawave panel."""

    def __init__(self):
        self.users: dict[str, Entitlement] = {}
        self.by_telegram: dict[str, str] = {}
        self.by_email: dict[str, str] = {}
        self.calls: list[tuple[str, object]] = []
        self.fail_with: Optional[Exception] = None

    def add_user(self, entitlement: Entitlement, *, telegram_id: Optional[str] = None, email: Optional[str] = None):
        self.users[entitlement.uuid] = entitlement
        if telegram_id:
            self.by_telegram[telegram_id] = entitlement.uuid
        if email:
            self.by_email[email] = entitlement.uuid
        return entitlement

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    def calls_named(self, name: str) -> list:
        return [args for call, args in self.calls if call == name]

    async def get_user(self, uuid: str):
        self.calls.append(("get_user", uuid))
        self._check()
        return self.users.get(uuid)

    async def find_user_by_telegram_id(self, telegram_id: str):
        self.calls.append(("find_user_by_telegram_id", telegram_id))
        self._check()
        found = self.by_telegram.get(telegram_id)
        return self.users.get(found) if found else None

    async def find_user_by_email(self, email: str):
        self.calls.append(("find_user_by_email", email))
        self._check()
        found = self.by_email.get(email)
        return self.users.get(found) if found else None

    async def create_user(self, *, username, expire_at, telegram_id=None, email=None):
        self.calls.append(("create_user", username))
        self._check()
        entitlement = Entitlement(uuid=str(uuid.uuid4()), expire_at=expire_at, username=username)
        return self.add_user(entitlement, telegram_id=telegram_id, email=email)

    async def update_user(self, update: EntitlementUpdate):
        self.calls.append(("update_user", update))
        self._check()
        current = self.users.get(update.uuid)
        if current is None:
            raise ControlPlaneError(f"user {update.uuid} not found", status_code=404)
        changes = {
            "expire_at": update.expire_at,
            "traffic_limit_bytes": update.traffic_limit_bytes,
            "device_limit": update.device_limit,
            "squad_uuids": update.squad_uuids,
        }
        updated = replace(current, **{k: v for k, v in changes.items() if v is not None})
        self.users[update.uuid] = updated
        return updated


class FakeNotifier:
    def __init__(self, enabled: bool = True):
        self._enabled = enabled
        self.messages: list[tuple[str, str]] = []
        self.fail_with: Optional[Exception] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def send_message(self, chat_id: str, text: str) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.messages.append((chat_id, text))


class Seeder:
    """Creates fixture rows through the repositories (catalog rows through the ORM)."""

    def __init__(self, uow_factory, session_factory):
        self._uow_factory = uow_factory
        self._session_factory = session_factory

    async def client(self, **kwargs) -> Client:
        kwargs.setdefault("id", str(uuid.uuid4()))
        async with self._uow_factory() as uow:
            return await uow.client_repository.create(Client(**kwargs))

    async def tariff(self, **kwargs) -> Tariff:
        kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("name", "Базовый")
        kwargs.setdefault("duration_days", 30)
        async with self._uow_factory() as uow:
            return await uow.tariff_repository.create(Tariff(**kwargs))

    async def proxy_tariff(self, *, node_ids=(), **kwargs) -> str:
        tariff_id = kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("name", "Прокси x3")
        kwargs.setdefault("proxy_count", 3)
        kwargs.setdefault("duration_days", 30)
        async with self._session_factory() as session:
            session.add(ProxyTariffModel(**kwargs))
            await session.flush()
            for node_id in node_ids:
                session.add(ProxyTariffNodeModel(tariff_id=tariff_id, node_id=node_id))
            await session.commit()
        return tariff_id

    async def node(self, **kwargs) -> str:
        node_id = kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("public_host", f"{node_id[:8]}.proxy.example")
        kwargs.setdefault("socks_port", 1080)
        kwargs.setdefault("http_port", 8080)
        async with self._session_factory() as session:
            session.add(ProxyNodeModel(**kwargs))
            await session.commit()
        return node_id

    async def payment(self, client_id: str, **kwargs) -> Payment:
        payment_id = kwargs.setdefault("id", str(uuid.uuid4()))
        kwargs.setdefault("provider", "platega")
        kwargs.setdefault("order_id", f"order-{payment_id[:8]}")
        kwargs.setdefault("amount", Decimal("500.00"))
        async with self._uow_factory() as uow:
            return await uow.payment_repository.create(Payment(client_id=client_id, **kwargs))

    async def get_payment(self, payment_id: str) -> Payment:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payment_repository.get_by_id(payment_id)

    async def get_client(self, client_id: str) -> Client:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.client_repository.get_by_id(client_id)

    async def credits(self, payment_id: str):
        async with self._uow_factory(readonly=True) as uow:
            return await uow.referral_repository.list_by_payment(payment_id)

    async def slots(self, payment_id: str):
        async with self._uow_factory(readonly=True) as uow:
            return await uow.proxy_repository.list_slots_by_payment(payment_id)


@pytest.fixture
async def engine(tmp_path):
    # 每个连接独立，使并发投递在数据库层真实交错
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'payments.db'}",
        poolclass=NullPool,
    )
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def uow_factory(session_factory):
    return partial(SQLAlchemyUnitOfWork, session_factory)


@pytest.fixture
def seed(uow_factory, session_factory):
    return Seeder(uow_factory, session_factory)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def control_plane():
    return FakeControlPlane()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def service(uow_factory, control_plane, notifier, clock):
    return PaymentService.build(uow_factory, control_plane=control_plane, notifier=notifier, clock=clock)
