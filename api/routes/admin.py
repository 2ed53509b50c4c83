"""
运维接口：人工确认支付、重放履约
"""
from fastapi import APIRouter, Depends, Query

from api.dependencies import get_payment_service, get_task_dispatcher, require_admin_token
from application.services.payment_service import PaymentService
from core.response import model_response, success_response
from infrastructure.tasks import TaskDispatcher


router = APIRouter(
    prefix="/admin/payments",
    tags=["Admin"],
    dependencies=[Depends(require_admin_token)],
)


@router.post("/{payment_id}/mark-paid", summary="人工标记为已支付并履约")
async def mark_paid(payment_id: str, service: PaymentService = Depends(get_payment_service)):
    report = await service.mark_paid(payment_id)
    return model_response(report, message=report.outcome.value)


@router.post("/{payment_id}/reconcile", summary="重放履约、推荐奖励与通知")
async def reconcile(
    payment_id: str,
    background: bool = Query(default=False, description="交给 Celery 异步执行"),
    service: PaymentService = Depends(get_payment_service),
    dispatcher: TaskDispatcher = Depends(get_task_dispatcher),
):
    if background:
        dispatcher.enqueue_reconcile(payment_id)
        return success_response(data={"payment_id": payment_id, "queued": True}, message="queued")
    report = await service.reconcile(payment_id)
    return model_response(report, message=report.outcome.value)
