"""
商品目录领域实体 - VPN 套餐、代理套餐、代理节点与代理槽位
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence


class ProxyNodeStatus(str, Enum):
    ONLINE = "ONLINE"
    OFFLINE = "OFFLINE"
    DISABLED = "DISABLED"


class ProxySlotStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


@dataclass
class Tariff:
    """VPN 套餐：时长 + 流量/设备上限 + 内部服务器组"""

    id: str
    name: str
    duration_days: int
    traffic_limit_bytes: Optional[int] = None  # None 表示不限
    device_limit: Optional[int] = None
    internal_squad_uuids: list[str] = field(default_factory=list)


@dataclass
class ProxyTariff:
    id: str
    name: str
    proxy_count: int
    duration_days: int
    enabled: bool = True
    traffic_limit_bytes: Optional[int] = None
    connection_limit: Optional[int] = None


@dataclass
class ProxyNode:
    id: str
    public_host: str
    socks_port: int
    http_port: int
    capacity: Optional[int] = None  # None 表示不限
    status: ProxyNodeStatus = ProxyNodeStatus.ONLINE
    updated_at: Optional[datetime] = None


@dataclass
class ProxySlot:
    id: str
    node_id: str
    client_id: str
    proxy_tariff_id: str
    login: str
    password: str
    expires_at: datetime
    payment_id: Optional[str] = None
    traffic_limit_bytes: Optional[int] = None
    connection_limit: Optional[int] = None
    status: ProxySlotStatus = ProxySlotStatus.ACTIVE


def plan_slot_placement(
    nodes: Sequence[ProxyNode],
    used: dict[str, int],
    count: int,
) -> list[ProxyNode]:
    """
    轮询分配 count 个槽位到节点，跳过已满节点。

    used 为各节点当前已占用的槽位数；容量不足时返回的列表短于 count。
    """
    load = {node.id: used.get(node.id, 0) for node in nodes}
    placement: list[ProxyNode] = []
    if not nodes:
        return placement

    index = 0
    for _ in range(count):
        chosen = None
        for offset in range(len(nodes)):
            node = nodes[(index + offset) % len(nodes)]
            if node.capacity is None or load[node.id] < node.capacity:
                chosen = node
                index = (index + offset + 1) % len(nodes)
                break
        if chosen is None:
            break
        load[chosen.id] += 1
        placement.append(chosen)
    return placement
