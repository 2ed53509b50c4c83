"""
Best-effort Telegram notifications about applied payments.
"""
from __future__ import annotations

import html
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional

from application.ports.notifier import Notifier
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)

_GIB = 1024 ** 3


class NotificationKind(str, Enum):
    BALANCE_TOPPED_UP = "balance_topped_up"
    TARIFF_ACTIVATED = "tariff_activated"
    PROXY_SLOTS_CREATED = "proxy_slots_created"
    EXTRA_OPTION_APPLIED = "extra_option_applied"


def format_money(amount: Any, currency: str) -> str:
    value = Decimal(str(amount)).quantize(Decimal("0.01"))
    curr = (currency or "RUB").upper()
    if curr == "RUB":
        return f"{value} ₽"
    if curr == "USD":
        return f"${value}"
    return f"{value} {curr}"


def _gib(num_bytes: int) -> str:
    return f"{num_bytes / _GIB:g} ГБ"


def render_message(kind: NotificationKind, data: dict) -> str:
    esc = html.escape
    if kind is NotificationKind.BALANCE_TOPPED_UP:
        return f"✅ <b>Баланс пополнен</b> на {format_money(data['amount'], data.get('currency', 'RUB'))}."

    if kind is NotificationKind.TARIFF_ACTIVATED:
        name = (data.get("tariff_name") or "").strip() or "Тариф"
        return f"✅ <b>Тариф «{esc(name)}»</b> оплачен и активирован.\n\nМожете подключаться к VPN."

    if kind is NotificationKind.PROXY_SLOTS_CREATED:
        name = (data.get("tariff_name") or "").strip() or "Прокси"
        lines = [f"✅ <b>Прокси «{esc(name)}»</b> оплачены.", ""]
        for conn in data.get("connections") or []:
            creds = f"{esc(conn['login'])}:{esc(conn['password'])}@{esc(conn['host'])}"
            lines.append(f"• SOCKS5: <code>socks5://{creds}:{conn['socks_port']}</code>")
            lines.append(f"• HTTP: <code>http://{creds}:{conn['http_port']}</code>")
            lines.append("")
        lines.append("Скопируйте строку в настройки прокси вашего приложения.")
        return "\n".join(lines)

    option = data.get("kind")
    if option == "traffic":
        detail = f"+{_gib(data.get('traffic_bytes') or 0)} трафика"
    elif option == "devices":
        detail = f"+{data.get('device_count') or 0} устр."
    else:
        detail = "доступ к дополнительным серверам"
    return f"✅ <b>Опция оплачена</b>: {esc(detail)}."


class NotificationService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        notifier: Optional[Notifier],
    ) -> None:
        self._uow_factory = uow_factory
        self._notifier = notifier

    async def notify(self, client_id: str, kind: NotificationKind, data: dict) -> bool:
        """Never raises; returns True when a message was handed to the transport."""
        try:
            if self._notifier is None or not self._notifier.enabled:
                logger.info("notification_skipped", reason="notifier_disabled", kind=kind.value)
                return False
            async with self._uow_factory(readonly=True) as uow:
                client = await uow.client_repository.get_by_id(client_id)
            chat_id = (client.telegram_id or "").strip() if client else ""
            if not chat_id:
                logger.info("notification_skipped", reason="no_telegram_id", client_id=client_id, kind=kind.value)
                return False
            await self._notifier.send_message(chat_id, render_message(kind, data))
        except Exception as exc:
            logger.warning(
                "notification_failed",
                client_id=client_id,
                kind=kind.value,
                error=str(exc),
            )
            return False
        logger.info("notification_sent", client_id=client_id, kind=kind.value)
        return True
