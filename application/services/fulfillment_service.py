"""
Fulfillment dispatcher and the three entitlement grants it routes to.

Each grant loads what it needs, performs control-plane calls outside any
database transaction, and reports a FulfillmentResult. Expected failures
(missing tariff, exhausted capacity, control-plane errors) become
``FulfillmentResult.failure``; the caller records them on the claim.
"""
from __future__ import annotations

import asyncio
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from application.dtos.payments import FulfillmentResult
from application.ports.control_plane import ControlPlane, ControlPlaneError, Entitlement, EntitlementUpdate
from core.logging_config import get_logger
from core.settings import payment_settings
from domain.catalog.entity import ProxyNode, ProxySlot, plan_slot_placement
from domain.client.entity import Client
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import ExtraOptionKind, Payment, SubjectKind


logger = get_logger(__name__)

_USERNAME_INVALID = re.compile(r"[^A-Za-z0-9_-]")
_USERNAME_MAX = 36


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def control_plane_username(client: Client) -> str:
    """3–36 chars of [A-Za-z0-9_-]: telegram username, tg<id>, e-mail local part, then client id."""

    def sanitize(value: str) -> str:
        return _USERNAME_INVALID.sub("_", value)[:_USERNAME_MAX]

    if client.telegram_username and client.telegram_username.strip():
        candidate = sanitize(client.telegram_username.strip().lstrip("@"))
        if len(candidate) >= 3:
            return candidate
    if client.telegram_id and client.telegram_id.strip():
        digits = re.sub(r"\D", "", client.telegram_id)
        if digits:
            return f"tg{digits}"[:_USERNAME_MAX]
    if client.email and client.email.strip():
        local = client.email.strip().split("@")[0]
        candidate = sanitize(local) if local else ""
        if len(candidate) >= 3:
            return candidate
        candidate = sanitize(client.email.strip())
        if len(candidate) >= 3:
            return candidate
    return sanitize("user" + _USERNAME_INVALID.sub("0", client.id[-8:]))


def _random_token(length: int) -> str:
    token = "".join(ch for ch in secrets.token_urlsafe(24) if ch.isalnum())
    return token[:length]


def _extend_expiry(current: Optional[Entitlement], now: datetime, duration_days: int) -> datetime:
    base = now
    if current is not None and current.expire_at is not None and current.expire_at > now:
        base = current.expire_at
    return base + timedelta(days=duration_days)


def _add_traffic(current_limit: int, extra_bytes: int) -> int:
    # 0 means unlimited and stays unlimited
    if current_limit == 0:
        return 0
    return current_limit + extra_bytes


class TariffActivator:
    """Extends (or starts) the client's VPN subscription for a tariff purchase."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        control_plane: Optional[ControlPlane],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._control_plane = control_plane
        self._clock = clock

    async def fulfill(self, payment: Payment) -> FulfillmentResult:
        async with self._uow_factory(readonly=True) as uow:
            tariff = await uow.tariff_repository.get_by_id(payment.tariff_id)
            client = await uow.client_repository.get_by_id(payment.client_id)
        if tariff is None:
            return FulfillmentResult.failure(f"Tariff {payment.tariff_id} not found")
        if client is None:
            return FulfillmentResult.failure(f"Client {payment.client_id} not found")
        if self._control_plane is None:
            return FulfillmentResult.failure("Control plane is not configured")

        cp = self._control_plane
        now = self._clock()

        current: Optional[Entitlement] = None
        if client.remnawave_uuid:
            current = await cp.get_user(client.remnawave_uuid)
            if current is None:
                logger.warning(
                    "control_plane_user_vanished",
                    client_id=client.id,
                    remnawave_uuid=client.remnawave_uuid,
                )
        if current is None and client.telegram_id:
            current = await cp.find_user_by_telegram_id(client.telegram_id.strip())
        if current is None and client.email:
            current = await cp.find_user_by_email(client.email.strip())

        if current is None:
            # Created without the purchased period; only update_user grants it
            current = await cp.create_user(
                username=control_plane_username(client),
                expire_at=now,
                telegram_id=client.telegram_id,
                email=client.email,
            )
        if client.remnawave_uuid != current.uuid:
            async with self._uow_factory() as uow:
                await uow.client_repository.set_remnawave_uuid(client.id, current.uuid)

        expire_at = _extend_expiry(current, now, tariff.duration_days)
        await cp.update_user(
            EntitlementUpdate(
                uuid=current.uuid,
                expire_at=expire_at,
                traffic_limit_bytes=tariff.traffic_limit_bytes or 0,
                device_limit=tariff.device_limit,
                squad_uuids=list(tariff.internal_squad_uuids),
            )
        )

        logger.info(
            "tariff_activated",
            payment_id=payment.id,
            client_id=client.id,
            tariff_id=tariff.id,
            remnawave_uuid=current.uuid,
            expire_at=expire_at.isoformat(),
        )
        return FulfillmentResult.success(
            tariff_name=tariff.name,
            remnawave_uuid=current.uuid,
            expire_at=expire_at.isoformat(),
        )


class ProxySlotProvisioner:
    """Creates all proxy slots of a proxy tariff in one transaction, or none."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._uow_factory = uow_factory
        self._clock = clock

    @staticmethod
    def _connections(slots: list[ProxySlot], nodes: dict[str, ProxyNode]) -> list[dict]:
        out = []
        for slot in slots:
            node = nodes.get(slot.node_id)
            if node is None:
                continue
            out.append({
                "login": slot.login,
                "password": slot.password,
                "host": node.public_host,
                "socks_port": node.socks_port,
                "http_port": node.http_port,
            })
        return out

    async def fulfill(self, payment: Payment) -> FulfillmentResult:
        now = self._clock()
        async with self._uow_factory() as uow:
            repo = uow.proxy_repository
            tariff = await repo.get_tariff(payment.proxy_tariff_id)
            if tariff is None or not tariff.enabled:
                return FulfillmentResult.failure(f"Proxy tariff {payment.proxy_tariff_id} not found or disabled")

            nodes = await repo.list_online_nodes(tariff.id)
            nodes_by_id = {node.id: node for node in nodes}

            # A crashed earlier attempt may already have committed the slots
            existing = await repo.list_slots_by_payment(payment.id)
            if existing:
                logger.info("proxy_slots_already_present", payment_id=payment.id, count=len(existing))
                return FulfillmentResult.success(
                    slot_ids=[slot.id for slot in existing],
                    tariff_name=tariff.name,
                    connections=self._connections(existing, nodes_by_id),
                )

            if not nodes:
                return FulfillmentResult.failure("No proxy nodes available")

            used = await repo.count_active_slots(list(nodes_by_id))
            placement = plan_slot_placement(nodes, used, tariff.proxy_count)
            if len(placement) < tariff.proxy_count:
                logger.warning(
                    "proxy_capacity_exhausted",
                    payment_id=payment.id,
                    requested=tariff.proxy_count,
                    available=len(placement),
                )
                return FulfillmentResult.failure(
                    f"Proxy capacity exhausted: {len(placement)} of {tariff.proxy_count} slots available"
                )

            expires_at = now + timedelta(days=tariff.duration_days)
            slots = [
                ProxySlot(
                    id=str(uuid.uuid4()),
                    node_id=node.id,
                    client_id=payment.client_id,
                    proxy_tariff_id=tariff.id,
                    payment_id=payment.id,
                    login=_random_token(20),
                    password=_random_token(16),
                    expires_at=expires_at,
                    traffic_limit_bytes=tariff.traffic_limit_bytes,
                    connection_limit=tariff.connection_limit,
                )
                for node in placement
            ]
            created = await repo.add_slots(slots)

        logger.info(
            "proxy_slots_provisioned",
            payment_id=payment.id,
            proxy_tariff_id=tariff.id,
            count=len(created),
        )
        return FulfillmentResult.success(
            slot_ids=[slot.id for slot in created],
            tariff_name=tariff.name,
            connections=self._connections(created, nodes_by_id),
        )


class ExtraOptionGranter:
    """Adds traffic, devices or a server squad on top of the current entitlement."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        control_plane: Optional[ControlPlane],
    ) -> None:
        self._uow_factory = uow_factory
        self._control_plane = control_plane

    async def fulfill(self, payment: Payment) -> FulfillmentResult:
        option = payment.extra_option
        if option is None:
            return FulfillmentResult.failure("Payment carries no extra option")
        if self._control_plane is None:
            return FulfillmentResult.failure("Control plane is not configured")

        async with self._uow_factory(readonly=True) as uow:
            client = await uow.client_repository.get_by_id(payment.client_id)
        if client is None or not client.remnawave_uuid:
            return FulfillmentResult.failure("Client has no VPN subscription yet")

        current = await self._control_plane.get_user(client.remnawave_uuid)
        if current is None:
            return FulfillmentResult.failure(f"Control-plane user {client.remnawave_uuid} not found")

        update = EntitlementUpdate(uuid=current.uuid)
        if option.kind is ExtraOptionKind.TRAFFIC:
            update.traffic_limit_bytes = _add_traffic(current.traffic_limit_bytes, option.traffic_bytes)
        elif option.kind is ExtraOptionKind.DEVICES:
            update.device_limit = (current.device_limit or 0) + option.device_count
        else:
            squads = list(current.squad_uuids)
            if option.squad_uuid not in squads:
                squads.append(option.squad_uuid)
            update.squad_uuids = squads
            if option.traffic_bytes > 0:
                update.traffic_limit_bytes = _add_traffic(current.traffic_limit_bytes, option.traffic_bytes)

        await self._control_plane.update_user(update)
        logger.info(
            "extra_option_applied",
            payment_id=payment.id,
            client_id=client.id,
            kind=option.kind.value,
        )
        return FulfillmentResult.success(
            kind=option.kind.value,
            traffic_bytes=option.traffic_bytes,
            device_count=option.device_count,
            squad_uuid=option.squad_uuid,
        )


class FulfillmentDispatcher:
    """Routes a claimed payment to exactly one grant and bounds it with a timeout."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        control_plane: Optional[ControlPlane],
        *,
        timeout_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._timeout = timeout_seconds or payment_settings.activation.timeout_seconds
        self._handlers = {
            SubjectKind.EXTRA_OPTION: ExtraOptionGranter(uow_factory, control_plane),
            SubjectKind.PROXY_TARIFF: ProxySlotProvisioner(uow_factory, clock),
            SubjectKind.TARIFF: TariffActivator(uow_factory, control_plane, clock),
        }

    async def dispatch(self, payment: Payment) -> FulfillmentResult:
        kind = payment.subject_kind
        handler = self._handlers.get(kind)
        if handler is None:
            return FulfillmentResult.failure(f"Nothing to fulfil for subject {kind.value}")

        try:
            result = await asyncio.wait_for(handler.fulfill(payment), timeout=self._timeout)
        except asyncio.TimeoutError:
            result = FulfillmentResult.failure(f"Fulfillment timed out after {self._timeout:g}s")
        except ControlPlaneError as exc:
            result = FulfillmentResult.failure(f"Control plane error: {exc.message}")
        except BusinessException as exc:
            result = FulfillmentResult.failure(exc.message)
        except Exception as exc:
            logger.exception("fulfillment_unexpected_error", payment_id=payment.id, subject=kind.value)
            result = FulfillmentResult.failure(f"{type(exc).__name__}: {exc}")

        if not result.ok:
            logger.warning(
                "fulfillment_failed",
                payment_id=payment.id,
                subject=kind.value,
                error=result.error,
            )
        return result
