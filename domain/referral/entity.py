"""
推荐奖励领域实体
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

MAX_REFERRAL_LEVEL = 3

_CENT = Decimal("0.01")


def compute_reward(amount: Decimal, percent: Decimal) -> Decimal:
    """奖励 = amount * percent / 100，按分四舍五入"""
    return (Decimal(amount) * Decimal(percent) / Decimal(100)).quantize(_CENT, rounding=ROUND_HALF_UP)


@dataclass
class ReferralCredit:
    """一条推荐奖励记录；(referrer_id, payment_id, level) 全局唯一"""

    referrer_id: str
    payment_id: str
    level: int
    amount: Decimal
    percent: Decimal
    id: Optional[int] = None
    created_at: Optional[datetime] = None
