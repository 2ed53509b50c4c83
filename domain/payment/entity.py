"""
支付领域实体 - 支付聚合根与激活占用（Activation Claim）状态机
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


class PaymentStatus(str, Enum):
    """支付状态枚举：PENDING 为唯一合法起点，PAID/FAILED 为终态"""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


class SubjectKind(str, Enum):
    """支付标的类型（创建时确定，之后不可变）"""
    TOPUP = "topup"
    TARIFF = "tariff"
    PROXY_TARIFF = "proxy_tariff"
    EXTRA_OPTION = "extra_option"


class ExtraOptionKind(str, Enum):
    TRAFFIC = "traffic"
    DEVICES = "devices"
    SERVERS = "servers"


class ClaimDecision(str, Enum):
    """激活占用判定结果"""
    CLAIMABLE = "claimable"
    ALREADY_APPLIED = "already_applied"
    IN_PROGRESS = "in_progress"


# metadata 中的持久化键名（与历史数据保持一致，不可更改）
IN_PROGRESS_AT_KEY = "activationInProgressAt"
APPLIED_AT_KEY = "activationAppliedAt"
ATTEMPTS_KEY = "activationAttempts"
LAST_ERROR_KEY = "activationLastError"
EXTRA_OPTION_KEY = "extraOption"

CLAIM_KEYS = (IN_PROGRESS_AT_KEY, APPLIED_AT_KEY, ATTEMPTS_KEY, LAST_ERROR_KEY)


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _parse_iso(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return _ensure_utc(datetime.fromisoformat(value.strip().replace("Z", "+00:00")))
    except ValueError:
        return None


def _format_iso(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return _ensure_utc(dt).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ExtraOption:
    """附加选项描述（metadata.extraOption）"""

    kind: ExtraOptionKind
    traffic_bytes: int = 0
    device_count: int = 0
    squad_uuid: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Optional[dict]) -> Optional["ExtraOption"]:
        """解析 extraOption；不存在返回 None，格式非法抛出 DomainValidationException"""
        raw = (metadata or {}).get(EXTRA_OPTION_KEY)
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise DomainValidationException("extraOption must be an object", field=EXTRA_OPTION_KEY)

        kind = raw.get("kind")
        traffic = raw.get("trafficBytes")
        traffic_ok = isinstance(traffic, (int, float)) and not isinstance(traffic, bool) and traffic > 0

        if kind == ExtraOptionKind.TRAFFIC.value and traffic_ok:
            return cls(kind=ExtraOptionKind.TRAFFIC, traffic_bytes=int(traffic))
        if kind == ExtraOptionKind.DEVICES.value:
            count = raw.get("deviceCount")
            if isinstance(count, (int, float)) and not isinstance(count, bool) and count > 0:
                return cls(kind=ExtraOptionKind.DEVICES, device_count=int(count))
        if kind == ExtraOptionKind.SERVERS.value:
            squad = raw.get("squadUuid")
            if isinstance(squad, str) and squad:
                return cls(
                    kind=ExtraOptionKind.SERVERS,
                    squad_uuid=squad,
                    traffic_bytes=int(traffic) if traffic_ok else 0,
                )
        raise DomainValidationException(
            f"Invalid extraOption descriptor: {raw!r}",
            field=EXTRA_OPTION_KEY,
        )


@dataclass(frozen=True)
class ActivationClaim:
    """
    激活占用状态（存储于 Payment.metadata 的四个字段）

    状态机：
    - applied_at 非空：已履约（终态）
    - in_progress_at 非空且未过期：有进行中的尝试
    - 其他：可占用
    """

    in_progress_at: Optional[datetime] = None
    applied_at: Optional[datetime] = None
    attempts: int = 0
    last_error: Optional[str] = None

    @classmethod
    def from_metadata(cls, metadata: Optional[dict]) -> "ActivationClaim":
        data = metadata or {}
        attempts = data.get(ATTEMPTS_KEY)
        last_error = data.get(LAST_ERROR_KEY)
        return cls(
            in_progress_at=_parse_iso(data.get(IN_PROGRESS_AT_KEY)),
            applied_at=_parse_iso(data.get(APPLIED_AT_KEY)),
            attempts=attempts if isinstance(attempts, int) and attempts >= 0 else 0,
            last_error=last_error if isinstance(last_error, str) else None,
        )

    def decide(self, now: datetime, stale_after: timedelta) -> ClaimDecision:
        if self.applied_at is not None:
            return ClaimDecision.ALREADY_APPLIED
        if self.in_progress_at is not None and _ensure_utc(now) - self.in_progress_at < stale_after:
            return ClaimDecision.IN_PROGRESS
        return ClaimDecision.CLAIMABLE

    def is_stale(self, now: datetime, stale_after: timedelta) -> bool:
        return (
            self.in_progress_at is not None
            and self.applied_at is None
            and _ensure_utc(now) - self.in_progress_at >= stale_after
        )

    def claimed(self, now: datetime) -> "ActivationClaim":
        return replace(self, in_progress_at=_ensure_utc(now), attempts=self.attempts + 1)

    def succeeded(self, now: datetime) -> "ActivationClaim":
        return replace(self, in_progress_at=None, applied_at=_ensure_utc(now), last_error=None)

    def failed(self, error: str) -> "ActivationClaim":
        return replace(self, in_progress_at=None, last_error=error)

    def merge_into(self, metadata: Optional[dict]) -> dict:
        """只改写占用相关字段，其余 metadata 键原样保留"""
        merged = dict(metadata or {})
        for key in CLAIM_KEYS:
            merged.pop(key, None)
        merged[ATTEMPTS_KEY] = self.attempts
        if self.in_progress_at is not None:
            merged[IN_PROGRESS_AT_KEY] = _format_iso(self.in_progress_at)
        if self.applied_at is not None:
            merged[APPLIED_AT_KEY] = _format_iso(self.applied_at)
        if self.last_error is not None:
            merged[LAST_ERROR_KEY] = self.last_error
        return merged


@dataclass
class Payment:
    """
    支付聚合根

    业务规则：
    1. 状态只能从 PENDING 迁移一次到 PAID 或 FAILED
    2. 标的（充值/套餐/代理套餐/附加选项）创建时确定，互斥
    3. metadata 写入必须读-合并-写，并受 version 乐观锁保护
    """

    id: str
    provider: str  # platega, yookassa, yoomoney
    order_id: str
    client_id: str
    amount: Decimal
    currency: str = "RUB"
    status: PaymentStatus = PaymentStatus.PENDING
    external_id: Optional[str] = None
    tariff_id: Optional[str] = None
    proxy_tariff_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    version: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    def __post_init__(self):
        if self.metadata is None:
            self.metadata = {}
        if not isinstance(self.status, PaymentStatus):
            self.status = PaymentStatus(self.status)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.paid_at = _ensure_utc(self.paid_at)

    @property
    def subject_kind(self) -> SubjectKind:
        """按固定优先级判定：附加选项 > 代理套餐 > 套餐 > 充值"""
        if isinstance(self.metadata.get(EXTRA_OPTION_KEY), dict):
            return SubjectKind.EXTRA_OPTION
        if self.proxy_tariff_id:
            return SubjectKind.PROXY_TARIFF
        if self.tariff_id:
            return SubjectKind.TARIFF
        return SubjectKind.TOPUP

    @property
    def is_topup(self) -> bool:
        return self.subject_kind is SubjectKind.TOPUP

    @property
    def activation(self) -> ActivationClaim:
        return ActivationClaim.from_metadata(self.metadata)

    @property
    def extra_option(self) -> Optional[ExtraOption]:
        return ExtraOption.from_metadata(self.metadata)

    @property
    def is_fulfilled(self) -> bool:
        """已支付且履约完成（充值在状态迁移时即完成）"""
        if self.status is not PaymentStatus.PAID:
            return False
        return self.is_topup or self.activation.applied_at is not None
