"""
Activation claim lock: grants at most one in-flight fulfillment per payment.

The claim lives in the payment's metadata and is written with a version
compare-and-set, so it holds across processes without any in-memory lock.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.payments import ClaimOutcome, FulfillmentResult
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import ClaimDecision, PaymentStatus


logger = get_logger(__name__)

_RELEASE_MAX_ATTEMPTS = 5


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        stale_after: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._stale_after = stale_after or timedelta(seconds=payment_settings.activation.stale_after_seconds)
        self._clock = clock

    @property
    def stale_after(self) -> timedelta:
        return self._stale_after

    async def claim(self, payment_id: str) -> ClaimOutcome:
        """Try to take the activation claim for a PAID, non top-up payment."""
        now = self._clock()
        async with self._uow_factory() as uow:
            payment = await uow.payment_repository.get_by_id(payment_id, for_update=True)
            if payment is None or payment.status is not PaymentStatus.PAID or payment.is_topup:
                return ClaimOutcome.NOT_APPLICABLE

            current = payment.activation
            decision = current.decide(now, self._stale_after)
            if decision is ClaimDecision.ALREADY_APPLIED:
                return ClaimOutcome.ALREADY_APPLIED
            if decision is ClaimDecision.IN_PROGRESS:
                logger.info(
                    "activation_claim_busy",
                    payment_id=payment_id,
                    in_progress_at=current.in_progress_at.isoformat() if current.in_progress_at else None,
                )
                return ClaimOutcome.IN_PROGRESS
            if current.is_stale(now, self._stale_after):
                logger.warning(
                    "activation_claim_stale_reclaimed",
                    payment_id=payment_id,
                    attempts=current.attempts,
                )

            claimed = current.claimed(now)
            changed = await uow.payment_repository.compare_and_set_metadata(
                payment.id,
                payment.version,
                claimed.merge_into(payment.metadata),
            )
            if changed == 0:
                logger.info("activation_claim_lost_race", payment_id=payment_id, version=payment.version)
                return ClaimOutcome.IN_PROGRESS

        logger.info("activation_claimed", payment_id=payment_id, attempt=claimed.attempts)
        return ClaimOutcome.CLAIMED

    async def release(self, payment_id: str, result: FulfillmentResult) -> bool:
        """Record the outcome of a claimed attempt. Retries when the version moved underneath."""
        for attempt in range(1, _RELEASE_MAX_ATTEMPTS + 1):
            now = self._clock()
            async with self._uow_factory() as uow:
                payment = await uow.payment_repository.get_by_id(payment_id)
                if payment is None:
                    logger.error("activation_release_payment_missing", payment_id=payment_id)
                    return False
                current = payment.activation
                released = current.succeeded(now) if result.ok else current.failed(result.error or "unknown error")
                changed = await uow.payment_repository.compare_and_set_metadata(
                    payment.id,
                    payment.version,
                    released.merge_into(payment.metadata),
                )
            if changed:
                logger.info(
                    "activation_released",
                    payment_id=payment_id,
                    ok=result.ok,
                    error=result.error,
                    attempts=released.attempts,
                )
                return True
            logger.info("activation_release_conflict", payment_id=payment_id, attempt=attempt)

        logger.error("activation_release_gave_up", payment_id=payment_id, ok=result.ok)
        return False
