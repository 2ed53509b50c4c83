from decimal import Decimal

import pytest
from sqlalchemy import update

from application.services.referral_service import ReferralService
from core.settings import ReferralSettings
from domain.payment.entity import APPLIED_AT_KEY, PaymentStatus
from domain.referral.entity import compute_reward
from infrastructure.models import ClientModel
from infrastructure.repositories.client_repository import SQLAlchemyClientRepository


SETTINGS = ReferralSettings(level1_percent=Decimal("10"), level2_percent=Decimal("5"), level3_percent=Decimal("2"))


@pytest.mark.parametrize(
    "amount, percent, expected",
    [
        ("500.00", "10", "50.00"),
        ("99.99", "5", "5.00"),
        ("0.05", "10", "0.01"),
        ("0.04", "10", "0.00"),
    ],
)
def test_compute_reward_rounds_to_cents(amount, percent, expected):
    assert compute_reward(Decimal(amount), Decimal(percent)) == Decimal(expected)


async def _chain(seed, depth):
    """buyer -> r1 -> r2 -> ... ; returns [buyer, r1, r2, ...]"""
    upline = None
    chain = []
    for _ in range(depth + 1):
        client = await seed.client(referrer_id=upline.id if upline else None)
        chain.append(client)
        upline = client
    return list(reversed(chain))


async def test_depth_two_chain_and_idempotence(uow_factory, seed):
    buyer, r1, r2 = await _chain(seed, 2)
    payment = await seed.payment(buyer.id, amount=Decimal("1000.00"), status=PaymentStatus.PAID)
    service = ReferralService(uow_factory, SETTINGS)

    assert await service.distribute(payment.id) == 2
    credits = await seed.credits(payment.id)
    assert [(c.level, c.referrer_id, c.amount) for c in credits] == [
        (1, r1.id, Decimal("100.00")),
        (2, r2.id, Decimal("50.00")),
    ]
    assert (await seed.get_client(r1.id)).balance == Decimal("100.00")

    assert await service.distribute(payment.id) == 0
    assert len(await seed.credits(payment.id)) == 2
    assert (await seed.get_client(r1.id)).balance == Decimal("100.00")
    assert (await seed.get_client(r2.id)).balance == Decimal("50.00")


async def test_cascade_stops_after_three_levels(uow_factory, seed):
    buyer, *uplines = await _chain(seed, 4)
    payment = await seed.payment(buyer.id, amount=Decimal("100.00"), status=PaymentStatus.PAID)

    assert await ReferralService(uow_factory, SETTINGS).distribute(payment.id) == 3
    assert (await seed.get_client(uplines[3].id)).balance == Decimal("0")


async def test_level_one_override(uow_factory, seed):
    r1 = await seed.client(referral_percent=Decimal("25"))
    buyer = await seed.client(referrer_id=r1.id)
    payment = await seed.payment(buyer.id, amount=Decimal("200.00"), status=PaymentStatus.PAID)

    await ReferralService(uow_factory, SETTINGS).distribute(payment.id)
    assert (await seed.credits(payment.id))[0].amount == Decimal("50.00")


async def test_cycle_is_detected(uow_factory, seed):
    a = await seed.client()
    b = await seed.client(referrer_id=a.id)
    async with uow_factory() as uow:
        await uow.session.execute(update(ClientModel).where(ClientModel.id == a.id).values(referrer_id=b.id))

    payment = await seed.payment(b.id, amount=Decimal("100.00"), status=PaymentStatus.PAID)
    assert await ReferralService(uow_factory, SETTINGS).distribute(payment.id) == 1


async def test_no_reward_before_fulfilment(uow_factory, seed):
    r1 = await seed.client()
    buyer = await seed.client(referrer_id=r1.id)
    tariff = await seed.tariff()
    service = ReferralService(uow_factory, SETTINGS)

    pending = await seed.payment(buyer.id, status=PaymentStatus.PENDING)
    unfulfilled = await seed.payment(buyer.id, tariff_id=tariff.id, status=PaymentStatus.PAID)
    fulfilled = await seed.payment(
        buyer.id,
        tariff_id=tariff.id,
        status=PaymentStatus.PAID,
        metadata={APPLIED_AT_KEY: "2026-10-19T12:00:00Z"},
    )

    assert await service.distribute(pending.id) == 0
    assert await service.distribute(unfulfilled.id) == 0
    assert await service.distribute(fulfilled.id) == 1


async def test_missing_referrer_stops_cascade(uow_factory, seed):
    buyer = await seed.client(referrer_id="ghost")
    payment = await seed.payment(buyer.id, status=PaymentStatus.PAID)
    assert await ReferralService(uow_factory, SETTINGS).distribute(payment.id) == 0


async def test_failed_level_keeps_earlier_levels(uow_factory, seed, monkeypatch):
    buyer, r1, r2 = await _chain(seed, 2)
    payment = await seed.payment(buyer.id, amount=Decimal("1000.00"), status=PaymentStatus.PAID)
    original = SQLAlchemyClientRepository.credit_balance

    async def credit_balance(self, client_id, amount):
        if client_id == r2.id:
            raise RuntimeError("balance update lost")
        return await original(self, client_id, amount)

    monkeypatch.setattr(SQLAlchemyClientRepository, "credit_balance", credit_balance)

    assert await ReferralService(uow_factory, SETTINGS).distribute(payment.id) == 1
    credits = await seed.credits(payment.id)
    assert [(c.level, c.referrer_id) for c in credits] == [(1, r1.id)]
    assert (await seed.get_client(r1.id)).balance == Decimal("100.00")
    assert (await seed.get_client(r2.id)).balance == Decimal("0")
