"""
Application service orchestrating post-payment processing.

Pipeline per delivery: normalize → lookup → transition → claim → fulfil →
referral cascade → notify. Every stage may short-circuit; the result is a
ProcessingReport that the webhook route logs and acknowledges.

The class depends only on application ports and the unit of work; concrete
adapters (control plane, notifier) are injected from the composition root
(API dependencies, Celery tasks).
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from application.dtos.payments import (
    ClaimOutcome,
    FulfillmentResult,
    NormalizedNotification,
    ProcessingReport,
    StatusBucket,
    WebhookOutcome,
)
from application.ports.control_plane import ControlPlane
from application.ports.notifier import Notifier
from application.ports.webhook_normalizer import WebhookNormalizer
from application.services.activation_service import ActivationService
from application.services.fulfillment_service import FulfillmentDispatcher
from application.services.notification_service import NotificationKind, NotificationService
from application.services.referral_service import ReferralService
from core.logging_config import get_logger, payment_log_context
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import ClaimDecision, Payment, PaymentStatus, SubjectKind
from domain.payment.service import (
    InvalidPaymentTransitionException,
    PaymentDomainService,
    PaymentNotFoundException,
)


logger = get_logger(__name__)

_NOTIFICATION_BY_SUBJECT = {
    SubjectKind.TARIFF: NotificationKind.TARIFF_ACTIVATED,
    SubjectKind.PROXY_TARIFF: NotificationKind.PROXY_SLOTS_CREATED,
    SubjectKind.EXTRA_OPTION: NotificationKind.EXTRA_OPTION_APPLIED,
}

_CLAIM_OUTCOMES = {
    ClaimOutcome.ALREADY_APPLIED: WebhookOutcome.ALREADY_APPLIED,
    ClaimOutcome.IN_PROGRESS: WebhookOutcome.IN_PROGRESS,
    ClaimOutcome.NOT_APPLICABLE: WebhookOutcome.IGNORED,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PaymentService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        activation: ActivationService,
        dispatcher: FulfillmentDispatcher,
        referrals: ReferralService,
        notifications: NotificationService,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self.activation = activation
        self.dispatcher = dispatcher
        self.referrals = referrals
        self.notifications = notifications
        self._clock = clock

    @classmethod
    def build(
        cls,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        control_plane: Optional[ControlPlane],
        notifier: Optional[Notifier],
        clock: Callable[[], datetime] = utcnow,
    ) -> "PaymentService":
        """Wire the pipeline stages from ports; used by the API and Celery composition roots."""
        return cls(
            uow_factory,
            activation=ActivationService(uow_factory, clock=clock),
            dispatcher=FulfillmentDispatcher(uow_factory, control_plane, clock=clock),
            referrals=ReferralService(uow_factory),
            notifications=NotificationService(uow_factory, notifier),
            clock=clock,
        )

    # ---- webhook entry ----

    async def handle_notification(
        self,
        normalizer: WebhookNormalizer,
        body: Mapping[str, Any],
    ) -> ProcessingReport:
        """Process one provider delivery. Never raises; failures end up in the report."""
        try:
            report = await self._handle(normalizer, body)
        except Exception as exc:
            logger.exception("payment_webhook_failed", provider=normalizer.provider)
            report = ProcessingReport(outcome=WebhookOutcome.ERROR, error=f"{type(exc).__name__}: {exc}")
        logger.info(
            "payment_webhook_processed",
            provider=normalizer.provider,
            payment_id=report.payment_id,
            outcome=report.outcome.value,
            transitioned=report.transitioned,
            referral_credits=report.referral_credits,
            error=report.error,
        )
        return report

    async def _handle(self, normalizer: WebhookNormalizer, body: Mapping[str, Any]) -> ProcessingReport:
        notification = normalizer.normalize(body)
        if notification is None:
            return ProcessingReport(outcome=WebhookOutcome.UNPARSEABLE)

        async with self._uow_factory(readonly=True) as uow:
            payment = await PaymentDomainService(uow.payment_repository).find_by_candidates(
                notification.provider, notification.correlation_candidates
            )
        if payment is None:
            logger.warning(
                "payment_webhook_unmatched",
                provider=notification.provider,
                status=notification.status,
                candidates=notification.correlation_candidates,
            )
            return ProcessingReport(outcome=WebhookOutcome.NOT_FOUND)

        with payment_log_context(payment_id=payment.id, provider=notification.provider):
            return await self._apply(notification, payment)

    async def _apply(self, notification: NormalizedNotification, payment: Payment) -> ProcessingReport:
        if notification.bucket is StatusBucket.FAILURE:
            async with self._uow_factory() as uow:
                changed = await PaymentDomainService(uow.payment_repository).mark_failed(
                    payment.id, external_id=notification.transaction_id
                )
            return ProcessingReport(
                payment_id=payment.id,
                outcome=WebhookOutcome.MARKED_FAILED if changed else WebhookOutcome.ALREADY_TERMINAL,
                transitioned=changed,
            )

        if notification.bucket is StatusBucket.IGNORED:
            return ProcessingReport(payment_id=payment.id, outcome=WebhookOutcome.IGNORED)

        return await self._confirm(payment, external_id=notification.transaction_id)

    # ---- operator entries ----

    async def mark_paid(self, payment_id: str) -> ProcessingReport:
        """Operator confirmation of a payment the provider never reported."""
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id)
        if payment.status is PaymentStatus.FAILED:
            raise InvalidPaymentTransitionException(payment_id, payment.status, PaymentStatus.PAID)
        logger.info("payment_mark_paid_requested", payment_id=payment_id, status=payment.status.value)
        return await self._confirm(payment, external_id=None)

    async def reconcile(self, payment_id: str) -> ProcessingReport:
        """Re-drive fulfillment, referral payout and notification for a PAID payment."""
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payment_repository.get_by_id(payment_id)
        if payment is None:
            raise PaymentNotFoundException(payment_id)
        if payment.status is not PaymentStatus.PAID:
            raise InvalidPaymentTransitionException(payment_id, payment.status, PaymentStatus.PAID)
        if payment.is_topup:
            credits = await self.referrals.distribute(payment.id)
            return ProcessingReport(
                payment_id=payment.id,
                outcome=WebhookOutcome.ALREADY_APPLIED,
                referral_credits=credits,
            )
        return await self._fulfil(payment, transitioned=False)

    async def reconcile_pending(self, now: Optional[datetime] = None) -> list[ProcessingReport]:
        """Sweep PAID payments whose fulfillment never completed and re-drive each."""
        now = now or self._clock()
        settings = payment_settings.activation
        since = now - timedelta(days=settings.sweep_lookback_days)
        async with self._uow_factory(readonly=True) as uow:
            candidates = await uow.payment_repository.list_unfulfilled_paid(since, limit=settings.sweep_batch_size)

        reports: list[ProcessingReport] = []
        for payment in candidates:
            if payment.activation.decide(now, self.activation.stale_after) is not ClaimDecision.CLAIMABLE:
                continue
            try:
                reports.append(await self._fulfil(payment, transitioned=False))
            except Exception as exc:
                logger.exception("payment_reconcile_failed", payment_id=payment.id)
                reports.append(
                    ProcessingReport(
                        payment_id=payment.id,
                        outcome=WebhookOutcome.ERROR,
                        error=f"{type(exc).__name__}: {exc}",
                    )
                )
        logger.info(
            "payment_reconcile_sweep_done",
            scanned=len(candidates),
            processed=len(reports),
            fulfilled=sum(1 for r in reports if r.outcome is WebhookOutcome.FULFILLED),
        )
        return reports

    # ---- pipeline stages ----

    async def _confirm(self, payment: Payment, *, external_id: Optional[str]) -> ProcessingReport:
        """PENDING → PAID (crediting top-ups in the same transaction), then fulfil."""
        async with self._uow_factory() as uow:
            transitioned = await PaymentDomainService(uow.payment_repository).mark_paid(
                payment.id, external_id=external_id, now=self._clock()
            )
            if transitioned and payment.is_topup:
                await uow.client_repository.credit_balance(payment.client_id, payment.amount)
            current = await uow.payment_repository.get_by_id(payment.id)

        if current is None or current.status is not PaymentStatus.PAID:
            return ProcessingReport(payment_id=payment.id, outcome=WebhookOutcome.ALREADY_TERMINAL)

        if current.is_topup:
            if transitioned:
                logger.info(
                    "balance_topped_up",
                    payment_id=current.id,
                    client_id=current.client_id,
                    amount=str(current.amount),
                )
            credits = await self.referrals.distribute(current.id)
            if transitioned:
                await self.notifications.notify(
                    current.client_id,
                    NotificationKind.BALANCE_TOPPED_UP,
                    {"amount": current.amount, "currency": current.currency},
                )
            return ProcessingReport(
                payment_id=current.id,
                outcome=WebhookOutcome.TOPPED_UP if transitioned else WebhookOutcome.ALREADY_APPLIED,
                transitioned=transitioned,
                referral_credits=credits,
            )

        return await self._fulfil(current, transitioned=transitioned)

    async def _fulfil(self, payment: Payment, *, transitioned: bool) -> ProcessingReport:
        with payment_log_context(payment_id=payment.id, subject=payment.subject_kind.value):
            return await self._claim_and_dispatch(payment, transitioned=transitioned)

    async def _claim_and_dispatch(self, payment: Payment, *, transitioned: bool) -> ProcessingReport:
        claim = await self.activation.claim(payment.id)
        if claim is not ClaimOutcome.CLAIMED:
            credits = 0
            if claim is ClaimOutcome.ALREADY_APPLIED:
                # Payout may have been interrupted after an earlier release
                credits = await self.referrals.distribute(payment.id)
            return ProcessingReport(
                payment_id=payment.id,
                outcome=_CLAIM_OUTCOMES[claim],
                transitioned=transitioned,
                referral_credits=credits,
            )

        result = await self.dispatcher.dispatch(payment)
        await self.activation.release(payment.id, result)
        if not result.ok:
            return ProcessingReport(
                payment_id=payment.id,
                outcome=WebhookOutcome.FULFILLMENT_FAILED,
                transitioned=transitioned,
                error=result.error,
            )

        credits = await self.referrals.distribute(payment.id)
        await self._notify_fulfilled(payment, result)
        return ProcessingReport(
            payment_id=payment.id,
            outcome=WebhookOutcome.FULFILLED,
            transitioned=transitioned,
            referral_credits=credits,
        )

    async def _notify_fulfilled(self, payment: Payment, result: FulfillmentResult) -> None:
        kind = _NOTIFICATION_BY_SUBJECT.get(payment.subject_kind)
        if kind is None:
            return
        await self.notifications.notify(payment.client_id, kind, dict(result.details))
