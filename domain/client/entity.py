"""
客户端领域实体
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional


@dataclass
class Client:
    """面板客户（VPN 终端用户），余额与推荐关系的承载者"""

    id: str
    balance: Decimal = Decimal("0")
    referrer_id: Optional[str] = None
    # 一级推荐比例的个人覆盖值（为空则使用全局配置）
    referral_percent: Optional[Decimal] = None
    telegram_id: Optional[str] = None
    telegram_username: Optional[str] = None
    email: Optional[str] = None
    remnawave_uuid: Optional[str] = None
