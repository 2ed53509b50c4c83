"""
Provider webhook routes.

Every delivery is acknowledged with 200 once it has been processed (or found
unprocessable) so providers stop retrying; only authenticity failures on the
YooMoney route answer otherwise. Keep this thin: parsing the body and picking
the normalizer, nothing else.
"""
from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_payment_service
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from core.response import model_response, success_response
from core.settings import payment_settings
from infrastructure.external.payments import get_webhook_normalizer
from infrastructure.external.payments.yoomoney import YooMoneyNormalizer


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


async def _json_body(request: Request) -> dict[str, Any]:
    raw = await request.body()
    if not raw:
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        logger.warning("webhook_body_not_json", size=len(raw))
        return {}
    return body if isinstance(body, dict) else {}


async def _process(provider: str, body: dict, service: PaymentService):
    report = await service.handle_notification(get_webhook_normalizer(provider), body)
    return model_response(report)


@router.post("/platega", summary="Platega callback")
async def platega_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    return await _process("platega", await _json_body(request), service)


@router.get("/yookassa", summary="YooKassa URL probe")
async def yookassa_probe():
    return {"status": "ok", "message": "YooKassa webhook is available"}


@router.post("/yookassa", summary="YooKassa HTTP notification")
async def yookassa_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    return await _process("yookassa", await _json_body(request), service)


@router.get("/yoomoney", summary="YooMoney URL probe")
async def yoomoney_probe():
    return {"status": "ok", "message": "YooMoney webhook is available"}


@router.post("/yoomoney", summary="YooMoney HTTP notification (form-encoded)")
async def yoomoney_webhook(request: Request, service: PaymentService = Depends(get_payment_service)):
    form = await request.form()
    body = {key: value for key, value in form.items() if isinstance(value, str)}
    if not body:
        logger.warning("webhook_body_empty", content_type=request.headers.get("content-type"))
        return success_response(message="OK")

    normalizer = YooMoneyNormalizer(payment_settings.yoomoney.notification_secret)
    # Raises on missing fields / secret / signature; rendered by the global handler
    normalizer.authenticate(body)

    report = await service.handle_notification(normalizer, body)
    return model_response(report)
