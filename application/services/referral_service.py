"""
Multi-level referral payout for fulfilled payments.

Each level commits on its own: the credit row is inserted first (unique on
referrer/payment/level) and the balance is only incremented when that insert
won, so re-running the cascade is a no-op for levels already paid.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from core.logging_config import get_logger
from core.settings import ReferralSettings, payment_settings
from domain.client.entity import Client
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.referral.entity import MAX_REFERRAL_LEVEL, ReferralCredit, compute_reward


logger = get_logger(__name__)


class ReferralService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        settings: Optional[ReferralSettings] = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._settings = settings or payment_settings.referral

    def percent_for(self, level: int, referrer: Client) -> Decimal:
        if level == 1:
            if referrer.referral_percent is not None:
                return Decimal(referrer.referral_percent)
            return Decimal(self._settings.level1_percent)
        if level == 2:
            return Decimal(self._settings.level2_percent)
        return Decimal(self._settings.level3_percent)

    async def distribute(self, payment_id: str) -> int:
        """Returns the number of credits created by this call."""
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
            buyer = await uow.client_repository.get_by_id(payment.client_id) if payment else None
        if payment is None or buyer is None or not payment.is_fulfilled:
            return 0

        created = 0
        visited = {buyer.id}
        referrer_id = buyer.referrer_id
        for level in range(1, MAX_REFERRAL_LEVEL + 1):
            if not referrer_id or referrer_id in visited:
                break
            visited.add(referrer_id)
            try:
                referrer, inserted = await self._credit_level(payment.id, payment.amount, referrer_id, level)
            except Exception:
                logger.exception(
                    "referral_level_failed",
                    payment_id=payment.id,
                    referrer_id=referrer_id,
                    level=level,
                )
                break
            if referrer is None:
                break
            created += int(inserted)
            referrer_id = referrer.referrer_id

        if created:
            logger.info("referral_rewards_distributed", payment_id=payment.id, credits=created)
        return created

    async def _credit_level(
        self,
        payment_id: str,
        amount: Decimal,
        referrer_id: str,
        level: int,
    ) -> tuple[Optional[Client], bool]:
        async with self._uow_factory() as uow:
            referrer = await uow.client_repository.get_by_id(referrer_id)
            if referrer is None:
                return None, False
            percent = self.percent_for(level, referrer)
            reward = compute_reward(amount, percent)
            if reward <= 0:
                return referrer, False
            inserted = await uow.referral_repository.insert_if_absent(
                ReferralCredit(
                    referrer_id=referrer.id,
                    payment_id=payment_id,
                    level=level,
                    amount=reward,
                    percent=percent,
                )
            )
            if inserted:
                await uow.client_repository.credit_balance(referrer.id, reward)
            return referrer, inserted
