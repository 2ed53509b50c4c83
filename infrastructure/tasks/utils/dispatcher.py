"""Small dispatching helpers to decouple Celery from callers."""
from __future__ import annotations

from typing import Any, Dict

from ..config.celery import celery_app


class TaskDispatcher:
    """Facade for scheduling payment tasks by name without importing task modules."""

    def enqueue_reconcile(self, payment_id: str, *, countdown: int | None = None) -> None:
        """Re-drive fulfillment of one payment in the background."""
        celery_app.send_task(
            "payments.reconcile_payment",
            kwargs={"payment_id": payment_id},
            countdown=countdown,
        )

    def enqueue_sweep(self) -> None:
        celery_app.send_task("payments.reconcile_pending_activations")

    def enqueue(self, task_name: str, *, args: tuple | None = None, kwargs: Dict[str, Any] | None = None) -> None:
        """Generic escape hatch for scheduling arbitrary tasks by name."""
        celery_app.send_task(task_name, args=args or (), kwargs=kwargs or {})
