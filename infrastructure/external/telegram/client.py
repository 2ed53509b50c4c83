"""
Telegram Bot API adapter implementing the Notifier port.
"""
from __future__ import annotations

from typing import Optional

import httpx

from core.settings import payment_settings
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


class TelegramNotifier(BaseAPIClient):
    """sendMessage with HTML parse mode; raises APIError when Telegram rejects the message."""

    service_name = "telegram"

    def __init__(
        self,
        bot_token: Optional[str] = None,
        api_url: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = (bot_token or payment_settings.telegram.bot_token or "").strip()
        api_url = (api_url or payment_settings.telegram.api_url).rstrip("/")
        timeouts = payment_settings.timeouts
        super().__init__(
            f"{api_url}/bot{self._token}",
            timeout=httpx.Timeout(timeouts.total, connect=timeouts.connect),
            max_retries=payment_settings.retry.max,
            retry_delay=payment_settings.retry.base_backoff,
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    async def send_message(self, chat_id: str, text: str) -> None:
        response = await self.post(
            "/sendMessage",
            json_data={
                "chat_id": chat_id,
                "text": text,
                "parse_mode": "HTML",
                "disable_web_page_preview": True,
            },
        )
        data = response.data if isinstance(response.data, dict) else {}
        if not data.get("ok"):
            raise APIError(
                data.get("description") or "Telegram sendMessage failed",
                status_code=response.status_code,
                response=response,
            )
