"""
VPN control-plane port (application/ports).

Application services depend on this Protocol; the Remnawave REST adapter in
infrastructure implements it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


class ControlPlaneError(BusinessException):
    """Any failed control-plane call (transport, auth, unexpected payload)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, details: Optional[dict] = None):
        full_details = {"status_code": status_code}
        if details:
            full_details.update(details)
        super().__init__(
            code=PaymentCode.CONTROL_PLANE_ERROR,
            message=message,
            error_type="ControlPlaneError",
            details=full_details,
        )
        self.status_code = status_code


@dataclass
class Entitlement:
    """Current state of one control-plane user."""

    uuid: str
    expire_at: Optional[datetime] = None
    traffic_limit_bytes: int = 0  # 0 = unlimited
    device_limit: Optional[int] = None
    squad_uuids: list[str] = field(default_factory=list)
    username: Optional[str] = None


@dataclass
class EntitlementUpdate:
    """Partial update; None fields are left untouched."""

    uuid: str
    expire_at: Optional[datetime] = None
    traffic_limit_bytes: Optional[int] = None
    device_limit: Optional[int] = None
    squad_uuids: Optional[list[str]] = None


@runtime_checkable
class ControlPlane(Protocol):
    async def get_user(self, uuid: str) -> Optional[Entitlement]: ...

    async def find_user_by_telegram_id(self, telegram_id: str) -> Optional[Entitlement]: ...

    async def find_user_by_email(self, email: str) -> Optional[Entitlement]: ...

    async def create_user(
        self,
        *,
        username: str,
        expire_at: datetime,
        telegram_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Entitlement: ...

    async def update_user(self, update: EntitlementUpdate) -> Entitlement: ...
