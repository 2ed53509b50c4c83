"""
商品目录数据库模型：VPN 套餐、代理套餐、代理节点、套餐-节点绑定、代理槽位
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Boolean, DateTime, JSON,
    ForeignKey, Index, UniqueConstraint
)
from datetime import datetime, timezone

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TariffModel(Base):
    __tablename__ = "tariffs"

    id = Column(String(36), primary_key=True)
    name = Column(String(120), nullable=False, comment="套餐名称")
    duration_days = Column(Integer, nullable=False, comment="时长（天）")
    traffic_limit_bytes = Column(BigInteger, nullable=True, comment="流量上限（字节），空为不限")
    device_limit = Column(Integer, nullable=True, comment="设备数上限")
    internal_squad_uuids = Column(JSON, nullable=False, default=list, comment="Remnawave 内部服务器组")


class ProxyTariffModel(Base):
    __tablename__ = "proxy_tariffs"

    id = Column(String(36), primary_key=True)
    name = Column(String(120), nullable=False, comment="代理套餐名称")
    enabled = Column(Boolean, nullable=False, default=True, comment="是否启用")
    proxy_count = Column(Integer, nullable=False, comment="槽位数量")
    duration_days = Column(Integer, nullable=False, comment="时长（天）")
    traffic_limit_bytes = Column(BigInteger, nullable=True, comment="流量上限（字节）")
    connection_limit = Column(Integer, nullable=True, comment="并发连接上限")


class ProxyNodeModel(Base):
    __tablename__ = "proxy_nodes"

    id = Column(String(36), primary_key=True)
    public_host = Column(String(255), nullable=False, comment="公网地址")
    socks_port = Column(Integer, nullable=False, comment="SOCKS5 端口")
    http_port = Column(Integer, nullable=False, comment="HTTP 端口")
    capacity = Column(Integer, nullable=True, comment="槽位容量，空为不限")
    status = Column(String(20), nullable=False, default="ONLINE", index=True, comment="ONLINE/OFFLINE/DISABLED")
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False, comment="更新时间")


class ProxyTariffNodeModel(Base):
    __tablename__ = "proxy_tariff_nodes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tariff_id = Column(String(36), ForeignKey("proxy_tariffs.id", ondelete="CASCADE"), nullable=False, index=True)
    node_id = Column(String(36), ForeignKey("proxy_nodes.id", ondelete="CASCADE"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("tariff_id", "node_id", name="uq_proxy_tariff_nodes_tariff_node"),
    )


class ProxySlotModel(Base):
    __tablename__ = "proxy_slots"

    id = Column(String(36), primary_key=True)
    node_id = Column(String(36), ForeignKey("proxy_nodes.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    proxy_tariff_id = Column(String(36), ForeignKey("proxy_tariffs.id", ondelete="SET NULL"), nullable=True)
    payment_id = Column(String(36), ForeignKey("payments.id", ondelete="SET NULL"), nullable=True, index=True)
    login = Column(String(64), nullable=False, unique=True, comment="登录名")
    password = Column(String(64), nullable=False, comment="密码")
    expires_at = Column(DateTime(timezone=True), nullable=False, comment="到期时间")
    traffic_limit_bytes = Column(BigInteger, nullable=True)
    connection_limit = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="ACTIVE", comment="ACTIVE/EXPIRED/REVOKED")
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_proxy_slots_node_status", "node_id", "status"),
    )
