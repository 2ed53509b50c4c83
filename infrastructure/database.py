"""
数据库引擎与会话工厂

生产使用 PostgreSQL（asyncpg），测试使用 SQLite（aiosqlite）；表结构由 Alembic 迁移管理。
"""
from typing import Optional

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from core.config import DatabaseSettings, settings
from infrastructure.models import Base


_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _build_async_url(database_url: str) -> str:
    """把同步驱动 URL 换成对应的异步驱动"""
    url = make_url(database_url)
    if "+" in url.drivername:
        return database_url
    if url.drivername not in _ASYNC_DRIVERS:
        raise ValueError(f"不支持的数据库驱动: {url.drivername}. 请使用 async 驱动或更新 DATABASE__URL")
    return url.set(drivername=_ASYNC_DRIVERS[url.drivername]).render_as_string(hide_password=False)


def _engine_kwargs(async_url: str, db: DatabaseSettings) -> dict:
    kwargs: dict = {"echo": db.echo}
    # SQLite 不支持连接池参数
    if not make_url(async_url).drivername.startswith("sqlite"):
        kwargs.update(
            pool_pre_ping=db.pool_pre_ping,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
        )
    return kwargs


def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    async_url = _build_async_url(database_url or settings.database.url)
    return create_async_engine(async_url, **_engine_kwargs(async_url, settings.database))


engine: AsyncEngine = build_engine()

# 仓储在 flush 后仍需读取实体属性，关闭提交后过期
AsyncSessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def create_tables(target: Optional[AsyncEngine] = None):
    """按 ORM 模型建表，仅用于开发与测试"""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

