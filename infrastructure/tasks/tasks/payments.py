"""
Celery tasks for payment reconciliation: re-drive one payment, and the
periodic sweep over PAID payments whose fulfillment never completed.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from celery import shared_task

from application.dtos.payments import WebhookOutcome
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from infrastructure.database import engine
from infrastructure.external.remnawave import get_control_plane_client
from infrastructure.external.telegram import TelegramNotifier
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from ..utils.base_task import BaseTask


logger = get_logger(__name__)


async def _with_service(action: Callable[[PaymentService], Awaitable[Any]]) -> Any:
    control_plane = get_control_plane_client()
    notifier = TelegramNotifier()
    service = PaymentService.build(SQLAlchemyUnitOfWork, control_plane=control_plane, notifier=notifier)
    try:
        return await action(service)
    finally:
        await notifier.close()
        if control_plane is not None:
            await control_plane.close()
        # Pooled connections are bound to this task's event loop
        await engine.dispose()


@shared_task(
    name="payments.reconcile_payment",
    bind=True,
    base=BaseTask,
    max_retries=3,
    default_retry_delay=60,
)
def reconcile_payment(self, payment_id: str) -> dict:
    """Claim → fulfil → referral → notify for one PAID payment; retried while fulfillment fails."""
    report = asyncio.run(_with_service(lambda service: service.reconcile(payment_id)))
    logger.info(
        "payment_reconcile_task_done",
        payment_id=payment_id,
        outcome=report.outcome.value,
        error=report.error,
    )
    if report.outcome is WebhookOutcome.FULFILLMENT_FAILED and self.request.retries < self.max_retries:
        raise self.retry(exc=RuntimeError(report.error or "fulfillment failed"))
    return report.model_dump(mode="json")


@shared_task(
    name="payments.reconcile_pending_activations",
    bind=True,
    base=BaseTask,
)
def reconcile_pending_activations(self) -> dict:
    reports = asyncio.run(_with_service(lambda service: service.reconcile_pending()))
    summary: dict[str, int] = {}
    for report in reports:
        summary[report.outcome.value] = summary.get(report.outcome.value, 0) + 1
    return {"processed": len(reports), "outcomes": summary}
