"""定时任务定义."""

import logging
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedlingo.config import Settings
from feedlingo.core.repository import SourceRepository
from feedlingo.core.scheduler import IngestionScheduler, SourceFinder

logger = logging.getLogger(__name__)


def due_source_finder(
    session_factory: async_sessionmaker[AsyncSession], settings: Settings
) -> SourceFinder:
    """创建到期源查询函数，每次查询使用独立会话."""

    async def find() -> list[int]:
        async with session_factory() as session:
            sources = await SourceRepository(session).get_due_sources(
                error_backoff=timedelta(minutes=settings.error_backoff_minutes),
                deactivate_threshold=settings.deactivate_threshold,
            )
        return [source.id for source in sources if source.id is not None]

    return find


def active_source_finder(
    session_factory: async_sessionmaker[AsyncSession],
) -> SourceFinder:
    """创建启用源查询函数."""

    async def find() -> list[int]:
        async with session_factory() as session:
            sources = await SourceRepository(session).get_active_sources()
        return [source.id for source in sources if source.id is not None]

    return find


async def ingest_tick(ingestion_scheduler: IngestionScheduler) -> None:
    """调度任务：发现到期的源并入队."""
    try:
        await ingestion_scheduler.tick()
    except Exception as e:
        logger.exception(f"调度任务失败: {e}")


def create_scheduler(
    settings: Settings, ingestion_scheduler: IngestionScheduler
) -> AsyncIOScheduler:
    """创建并启动定时任务调度器."""
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        ingest_tick,
        "interval",
        seconds=settings.scheduler_interval_seconds,
        args=[ingestion_scheduler],
        id="ingest_tick",
        name="到期源抓取调度",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )

    # 启动时立即执行一次
    scheduler.add_job(
        ingest_tick,
        "date",  # 一次性任务
        args=[ingestion_scheduler],
        id="ingest_tick_initial",
        name="初始抓取调度",
    )

    scheduler.start()
    logger.info(
        f"定时任务调度器已启动，调度间隔: {settings.scheduler_interval_seconds} 秒"
    )

    return scheduler


def shutdown_scheduler(scheduler: AsyncIOScheduler | None) -> None:
    """关闭定时任务调度器."""
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("定时任务调度器已关闭")
