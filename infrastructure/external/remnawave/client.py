"""
Remnawave panel REST adapter implementing the ControlPlane port.

Remnawave wraps payloads inconsistently across versions: a user may come back
bare, under ``response`` or ``data``, and lookups by telegram id / e-mail may
return a list or ``{"users": [...]}``. All of that is flattened here so the
application only sees ``Entitlement``.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import quote

import httpx

from application.ports.control_plane import ControlPlaneError, Entitlement, EntitlementUpdate
from core.logging_config import get_logger
from core.settings import payment_settings
from infrastructure.external.api_clients.base import APIError, BaseAPIClient, NotFoundError


logger = get_logger(__name__)


def _unwrap(data: Any) -> Any:
    if isinstance(data, dict):
        for key in ("response", "data"):
            if key in data and data[key] is not None:
                return data[key]
    return data


def _first_user(data: Any) -> Optional[dict]:
    body = _unwrap(data)
    if isinstance(body, dict) and isinstance(body.get("users"), list):
        body = body["users"]
    if isinstance(body, list):
        body = body[0] if body else None
    if isinstance(body, dict) and isinstance(body.get("uuid"), str):
        return body
    return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _format_datetime(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def entitlement_from_payload(user: dict) -> Entitlement:
    squads: list[str] = []
    for squad in user.get("activeInternalSquads") or []:
        squad_uuid = squad.get("uuid") if isinstance(squad, dict) else squad
        if isinstance(squad_uuid, str):
            squads.append(squad_uuid)
    return Entitlement(
        uuid=user["uuid"],
        expire_at=_parse_datetime(user.get("expireAt")),
        traffic_limit_bytes=_to_int(user.get("trafficLimitBytes")) or 0,
        device_limit=_to_int(user.get("hwidDeviceLimit")),
        squad_uuids=squads,
        username=user.get("username") if isinstance(user.get("username"), str) else None,
    )


class RemnawaveClient(BaseAPIClient):
    """Remnawave `/api/users` endpoints with Bearer admin token."""

    service_name = "remnawave"

    def __init__(
        self,
        api_url: Optional[str] = None,
        admin_token: Optional[str] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        api_url = api_url or payment_settings.remnawave.api_url
        admin_token = admin_token or payment_settings.remnawave.admin_token
        if not api_url or not admin_token:
            raise ControlPlaneError("Remnawave API is not configured")
        timeouts = payment_settings.timeouts
        super().__init__(
            api_url,
            timeout=httpx.Timeout(
                timeouts.total,
                connect=timeouts.connect,
                read=timeouts.read,
                write=timeouts.write,
            ),
            max_retries=payment_settings.retry.max,
            retry_delay=payment_settings.retry.base_backoff,
            transport=transport,
        )
        self.set_auth_token(admin_token)

    async def _call(self, method: str, endpoint: str, *, json_data: Optional[dict] = None, not_found_ok: bool = False) -> Any:
        try:
            response = await self._request(method, endpoint, json_data=json_data)
        except NotFoundError:
            if not_found_ok:
                return None
            raise ControlPlaneError(f"Remnawave {method} {endpoint} not found", status_code=404)
        except APIError as exc:
            logger.warning(
                "remnawave_request_failed",
                method=method,
                endpoint=endpoint,
                status_code=exc.status_code,
                error=exc.message,
            )
            raise ControlPlaneError(exc.message, status_code=exc.status_code) from exc
        return response.data

    async def get_user(self, uuid: str) -> Optional[Entitlement]:
        data = await self._call("GET", f"/api/users/{quote(uuid, safe='')}", not_found_ok=True)
        user = _first_user(data)
        return entitlement_from_payload(user) if user else None

    async def find_user_by_telegram_id(self, telegram_id: str) -> Optional[Entitlement]:
        data = await self._call("GET", f"/api/users/by-telegram-id/{quote(telegram_id, safe='')}", not_found_ok=True)
        user = _first_user(data)
        return entitlement_from_payload(user) if user else None

    async def find_user_by_email(self, email: str) -> Optional[Entitlement]:
        data = await self._call("GET", f"/api/users/by-email/{quote(email, safe='')}", not_found_ok=True)
        user = _first_user(data)
        return entitlement_from_payload(user) if user else None

    async def create_user(
        self,
        *,
        username: str,
        expire_at: datetime,
        telegram_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Entitlement:
        body: dict[str, Any] = {
            "username": username,
            "expireAt": _format_datetime(expire_at),
            "trafficLimitStrategy": "NO_RESET",
        }
        if telegram_id and telegram_id.strip().isdigit():
            body["telegramId"] = int(telegram_id.strip())
        if email and email.strip():
            body["email"] = email.strip()

        user = _first_user(await self._call("POST", "/api/users", json_data=body))
        if user is None:
            raise ControlPlaneError("Remnawave did not return the created user", details={"username": username})
        logger.info("remnawave_user_created", uuid=user["uuid"], username=username)
        return entitlement_from_payload(user)

    async def update_user(self, update: EntitlementUpdate) -> Entitlement:
        body: dict[str, Any] = {"uuid": update.uuid}
        if update.expire_at is not None:
            body["expireAt"] = _format_datetime(update.expire_at)
        if update.traffic_limit_bytes is not None:
            body["trafficLimitBytes"] = update.traffic_limit_bytes
        if update.device_limit is not None:
            body["hwidDeviceLimit"] = update.device_limit
        if update.squad_uuids is not None:
            body["activeInternalSquads"] = update.squad_uuids

        user = _first_user(await self._call("PATCH", "/api/users", json_data=body))
        if user is None:
            # Some versions answer PATCH with an empty body
            return Entitlement(
                uuid=update.uuid,
                expire_at=update.expire_at,
                traffic_limit_bytes=update.traffic_limit_bytes or 0,
                device_limit=update.device_limit,
                squad_uuids=list(update.squad_uuids or []),
            )
        return entitlement_from_payload(user)
