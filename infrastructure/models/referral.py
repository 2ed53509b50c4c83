"""
推荐奖励数据库模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


class ReferralCreditModel(Base):
    """每个 (推荐人, 支付, 层级) 至多一条记录，由唯一约束保证"""
    __tablename__ = "referral_credits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    referrer_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True, comment="推荐人ID")
    payment_id = Column(String(36), ForeignKey("payments.id", ondelete="CASCADE"), nullable=False, index=True, comment="触发支付ID")
    level = Column(Integer, nullable=False, comment="推荐层级 1..3")
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="奖励金额")
    percent = Column(Numeric(precision=5, scale=2), nullable=False, comment="奖励比例")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        UniqueConstraint("referrer_id", "payment_id", "level", name="uq_referral_credit_referrer_payment_level"),
    )

    def __repr__(self):
        return (
            f"<ReferralCreditModel(referrer_id={self.referrer_id}, payment_id={self.payment_id}, "
            f"level={self.level}, amount={self.amount})>"
        )
