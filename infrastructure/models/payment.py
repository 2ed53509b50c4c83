"""
支付数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, JSON, Index, ForeignKey
)
from datetime import datetime, timezone

from .base import Base


class PaymentModel(Base):
    """
    支付数据库模型

    这是数据库表的映射，不包含业务逻辑
    所有业务规则都在 domain.payment.entity.Payment 中
    """
    __tablename__ = "payments"

    # 主键（内部支付ID，部分渠道会在回调中原样回传）
    id = Column(String(36), primary_key=True)

    # 订单信息
    order_id = Column(String(100), unique=True, index=True, nullable=False, comment="内部订单号")
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False, index=True, comment="客户ID")

    # 支付渠道信息
    provider = Column(String(50), nullable=False, index=True, comment="支付渠道: platega/yookassa/yoomoney")
    external_id = Column(String(200), nullable=True, comment="渠道交易ID")

    # 金额信息（使用 Numeric 存储精确金额）
    amount = Column(Numeric(precision=15, scale=2), nullable=False, comment="支付金额")
    currency = Column(String(3), nullable=False, default="RUB", comment="货币代码 ISO-4217")

    # 标的：均为空表示余额充值；附加选项位于 metadata.extraOption
    tariff_id = Column(String(36), ForeignKey("tariffs.id", ondelete="SET NULL"), nullable=True, comment="VPN 套餐ID")
    proxy_tariff_id = Column(String(36), ForeignKey("proxy_tariffs.id", ondelete="SET NULL"), nullable=True, comment="代理套餐ID")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="PENDING",
        index=True,
        comment="支付状态: PENDING/PAID/FAILED"
    )

    # 乐观锁版本号，每次 metadata 写入递增
    version = Column(Integer, nullable=False, default=0, comment="乐观锁版本号")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")

    # 元数据（JSON格式，使用 extra_metadata 避免与 SQLAlchemy 的 metadata 冲突）
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据（附加选项/激活占用/渠道回显）")

    # 索引
    __table_args__ = (
        Index("ix_payments_provider_external_id", "provider", "external_id"),
        Index("ix_payments_status_paid_at", "status", "paid_at"),
        Index("ix_payments_created_at", "created_at"),
    )

    def __repr__(self):
        return (
            f"<PaymentModel(id={self.id}, order_id='{self.order_id}', "
            f"provider='{self.provider}', amount={self.amount}, status='{self.status}')>"
        )
