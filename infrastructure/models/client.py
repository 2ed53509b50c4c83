"""
客户端数据库模型
"""
from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey
from datetime import datetime, timezone

from .base import Base


class ClientModel(Base):
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True)
    balance = Column(Numeric(precision=15, scale=2), nullable=False, default=0, comment="账户余额")
    referrer_id = Column(
        String(36),
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="推荐人ID",
    )
    referral_percent = Column(Numeric(precision=5, scale=2), nullable=True, comment="一级推荐比例覆盖值")
    telegram_id = Column(String(32), nullable=True, index=True, comment="Telegram 用户ID")
    telegram_username = Column(String(64), nullable=True, comment="Telegram 用户名")
    email = Column(String(255), nullable=True, index=True, comment="邮箱")
    remnawave_uuid = Column(String(36), nullable=True, comment="Remnawave 用户UUID")

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    def __repr__(self):
        return f"<ClientModel(id={self.id}, balance={self.balance})>"
