"""数据库引擎与会话管理."""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

logger = logging.getLogger(__name__)

# 多个抓取任务并发提交时等待 SQLite 写锁的秒数
SQLITE_BUSY_TIMEOUT = 30

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(database_url: str) -> AsyncEngine:
    """创建异步引擎；SQLite 连接设置写锁等待时间."""
    connect_args: dict[str, Any] = {}
    if database_url.startswith("sqlite"):
        connect_args["timeout"] = SQLITE_BUSY_TIMEOUT
    return create_async_engine(database_url, echo=False, connect_args=connect_args)


async def init_db(database_url: str) -> None:
    """创建引擎与会话工厂，并建立 sources / items / checkpoints 表."""
    global _engine, _session_factory

    from feedlingo.models import checkpoint, item, source  # noqa: F401

    _engine = create_engine(database_url)
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    logger.info(f"数据库已就绪: {_engine.url.render_as_string(hide_password=True)}")


async def close_db() -> None:
    """释放数据库连接."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


def async_session_maker() -> async_sessionmaker[AsyncSession]:
    """获取会话工厂（调度任务每次抓取使用独立会话）."""
    if _session_factory is None:
        msg = "数据库未初始化，请先调用 init_db()"
        raise RuntimeError(msg)
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """请求级会话（FastAPI 依赖）."""
    async with async_session_maker()() as session:
        yield session
