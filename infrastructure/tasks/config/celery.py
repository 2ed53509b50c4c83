"""Celery application configuration"""
from __future__ import annotations

import os
from celery import Celery
from kombu import Queue

from core.config import settings
from core.logging_config import get_logger
from .beat import CELERY_BEAT_SCHEDULE


# Task modules registered with the worker; add new packages here
CELERY_IMPORTS = (
    "infrastructure.tasks.tasks",
)


celery_app = Celery("vpn_panel_payments")

celery_app.conf.update(
    broker_url=settings.redis.url or os.getenv("CELERY_BROKER_URL"),
    result_backend=settings.redis.url or os.getenv("CELERY_RESULT_BACKEND"),
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Ack after the work is done so a lost worker leads to redelivery
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    result_expires=3600,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_default_retry_delay=5,
    task_queues=(
        Queue("high"),
        Queue("default"),
        Queue("low"),
    ),
    # Operator-triggered reconciles jump ahead of the periodic sweep
    task_routes={
        "payments.reconcile_payment": {"queue": "high"},
        "payments.reconcile_pending_activations": {"queue": "low"},
    },
    beat_schedule=CELERY_BEAT_SCHEDULE,
)

celery_app.conf.imports = CELERY_IMPORTS

# 开发与测试环境同步执行，无需 broker
if settings.DEBUG or settings.is_test:
    celery_app.conf.task_always_eager = True

celery_app.autodiscover_tasks(packages=CELERY_IMPORTS)


logger = get_logger(__name__)


@celery_app.on_after_configure.connect
def _log_configuration(sender, **kwargs):
    logger.info(
        "celery_configured",
        broker=sender.conf.broker_url,
        result_backend=sender.conf.result_backend,
        periodic_tasks=sorted(sender.conf.beat_schedule or {}),
    )
