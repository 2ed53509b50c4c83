"""create_payment_fulfillment_schema

Revision ID: 3b1f6c2d9a10
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3b1f6c2d9a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'clients',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('balance', sa.Numeric(precision=15, scale=2), nullable=False, server_default='0', comment='账户余额'),
        sa.Column('referrer_id', sa.String(length=36), nullable=True, comment='推荐人ID'),
        sa.Column('referral_percent', sa.Numeric(precision=5, scale=2), nullable=True, comment='一级推荐比例覆盖值'),
        sa.Column('telegram_id', sa.String(length=32), nullable=True, comment='Telegram 用户ID'),
        sa.Column('telegram_username', sa.String(length=64), nullable=True, comment='Telegram 用户名'),
        sa.Column('email', sa.String(length=255), nullable=True, comment='邮箱'),
        sa.Column('remnawave_uuid', sa.String(length=36), nullable=True, comment='Remnawave 用户UUID'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['referrer_id'], ['clients.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clients_referrer_id', 'clients', ['referrer_id'])
    op.create_index('ix_clients_telegram_id', 'clients', ['telegram_id'])
    op.create_index('ix_clients_email', 'clients', ['email'])

    op.create_table(
        'tariffs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False, comment='套餐名称'),
        sa.Column('duration_days', sa.Integer(), nullable=False, comment='时长（天）'),
        sa.Column('traffic_limit_bytes', sa.BigInteger(), nullable=True, comment='流量上限（字节），空为不限'),
        sa.Column('device_limit', sa.Integer(), nullable=True, comment='设备数上限'),
        sa.Column('internal_squad_uuids', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb"), comment='Remnawave 内部服务器组'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'proxy_tariffs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False, comment='代理套餐名称'),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default='true', comment='是否启用'),
        sa.Column('proxy_count', sa.Integer(), nullable=False, comment='槽位数量'),
        sa.Column('duration_days', sa.Integer(), nullable=False, comment='时长（天）'),
        sa.Column('traffic_limit_bytes', sa.BigInteger(), nullable=True, comment='流量上限（字节）'),
        sa.Column('connection_limit', sa.Integer(), nullable=True, comment='并发连接上限'),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'proxy_nodes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('public_host', sa.String(length=255), nullable=False, comment='公网地址'),
        sa.Column('socks_port', sa.Integer(), nullable=False, comment='SOCKS5 端口'),
        sa.Column('http_port', sa.Integer(), nullable=False, comment='HTTP 端口'),
        sa.Column('capacity', sa.Integer(), nullable=True, comment='槽位容量，空为不限'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ONLINE', comment='ONLINE/OFFLINE/DISABLED'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_proxy_nodes_status', 'proxy_nodes', ['status'])

    op.create_table(
        'proxy_tariff_nodes',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tariff_id', sa.String(length=36), nullable=False),
        sa.Column('node_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['tariff_id'], ['proxy_tariffs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['node_id'], ['proxy_nodes.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tariff_id', 'node_id', name='uq_proxy_tariff_nodes_tariff_node'),
    )
    op.create_index('ix_proxy_tariff_nodes_tariff_id', 'proxy_tariff_nodes', ['tariff_id'])
    op.create_index('ix_proxy_tariff_nodes_node_id', 'proxy_tariff_nodes', ['node_id'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('order_id', sa.String(length=100), nullable=False, comment='内部订单号'),
        sa.Column('client_id', sa.String(length=36), nullable=False, comment='客户ID'),
        sa.Column('provider', sa.String(length=50), nullable=False, comment='支付渠道: platega/yookassa/yoomoney'),
        sa.Column('external_id', sa.String(length=200), nullable=True, comment='渠道交易ID'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='支付金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='RUB', comment='货币代码 ISO-4217'),
        sa.Column('tariff_id', sa.String(length=36), nullable=True, comment='VPN 套餐ID'),
        sa.Column('proxy_tariff_id', sa.String(length=36), nullable=True, comment='代理套餐ID'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING', comment='支付状态: PENDING/PAID/FAILED'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0', comment='乐观锁版本号'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True, comment='扩展元数据（附加选项/激活占用/渠道回显）'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['tariff_id'], ['tariffs.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['proxy_tariff_id'], ['proxy_tariffs.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=True)
    op.create_index('ix_payments_client_id', 'payments', ['client_id'])
    op.create_index('ix_payments_provider', 'payments', ['provider'])
    op.create_index('ix_payments_status', 'payments', ['status'])
    op.create_index('ix_payments_provider_external_id', 'payments', ['provider', 'external_id'])
    op.create_index('ix_payments_status_paid_at', 'payments', ['status', 'paid_at'])
    op.create_index('ix_payments_created_at', 'payments', ['created_at'])

    op.create_table(
        'referral_credits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('referrer_id', sa.String(length=36), nullable=False, comment='推荐人ID'),
        sa.Column('payment_id', sa.String(length=36), nullable=False, comment='触发支付ID'),
        sa.Column('level', sa.Integer(), nullable=False, comment='推荐层级 1..3'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='奖励金额'),
        sa.Column('percent', sa.Numeric(precision=5, scale=2), nullable=False, comment='奖励比例'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['referrer_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referrer_id', 'payment_id', 'level', name='uq_referral_credit_referrer_payment_level'),
    )
    op.create_index('ix_referral_credits_referrer_id', 'referral_credits', ['referrer_id'])
    op.create_index('ix_referral_credits_payment_id', 'referral_credits', ['payment_id'])

    op.create_table(
        'proxy_slots',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('node_id', sa.String(length=36), nullable=False),
        sa.Column('client_id', sa.String(length=36), nullable=False),
        sa.Column('proxy_tariff_id', sa.String(length=36), nullable=True),
        sa.Column('payment_id', sa.String(length=36), nullable=True),
        sa.Column('login', sa.String(length=64), nullable=False, comment='登录名'),
        sa.Column('password', sa.String(length=64), nullable=False, comment='密码'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False, comment='到期时间'),
        sa.Column('traffic_limit_bytes', sa.BigInteger(), nullable=True),
        sa.Column('connection_limit', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ACTIVE', comment='ACTIVE/EXPIRED/REVOKED'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['node_id'], ['proxy_nodes.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['proxy_tariff_id'], ['proxy_tariffs.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('login'),
    )
    op.create_index('ix_proxy_slots_node_id', 'proxy_slots', ['node_id'])
    op.create_index('ix_proxy_slots_client_id', 'proxy_slots', ['client_id'])
    op.create_index('ix_proxy_slots_payment_id', 'proxy_slots', ['payment_id'])
    op.create_index('ix_proxy_slots_node_status', 'proxy_slots', ['node_id', 'status'])


def downgrade() -> None:
    op.drop_table('proxy_slots')
    op.drop_table('referral_credits')
    op.drop_table('payments')
    op.drop_table('proxy_tariff_nodes')
    op.drop_table('proxy_nodes')
    op.drop_table('proxy_tariffs')
    op.drop_table('tariffs')
    op.drop_table('clients')
