"""
API依赖项 - 应用服务装配与运维接口鉴权
"""
import hmac
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends, Header

from application.ports.control_plane import ControlPlane
from application.ports.notifier import Notifier
from application.services.payment_service import PaymentService
from core.config import settings
from core.exceptions import AdminTokenInvalidException
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.remnawave import get_control_plane_client
from infrastructure.external.telegram import TelegramNotifier
from infrastructure.tasks import TaskDispatcher
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    """测试中通过 dependency_overrides 替换为绑定内存库的工厂"""
    return SQLAlchemyUnitOfWork


async def get_control_plane() -> AsyncIterator[Optional[ControlPlane]]:
    client = get_control_plane_client()
    try:
        yield client
    finally:
        if client is not None:
            await client.close()


async def get_notifier() -> AsyncIterator[Optional[Notifier]]:
    notifier = TelegramNotifier()
    try:
        yield notifier
    finally:
        await notifier.close()


async def get_payment_service(
    uow_factory: Callable[..., AbstractUnitOfWork] = Depends(get_uow_factory),
    control_plane: Optional[ControlPlane] = Depends(get_control_plane),
    notifier: Optional[Notifier] = Depends(get_notifier),
) -> PaymentService:
    return PaymentService.build(uow_factory, control_plane=control_plane, notifier=notifier)


def get_task_dispatcher() -> TaskDispatcher:
    return TaskDispatcher()


async def require_admin_token(
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
) -> None:
    """校验运维令牌；未配置 ADMIN_API_TOKEN 时一律拒绝"""
    expected = settings.ADMIN_API_TOKEN
    if not expected or not x_admin_token:
        raise AdminTokenInvalidException()
    if not hmac.compare_digest(expected.encode("utf-8"), x_admin_token.encode("utf-8")):
        raise AdminTokenInvalidException()
