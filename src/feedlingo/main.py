"""FeedLingo 主应用入口."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from feedlingo.api import ingest, items, translate
from feedlingo.cache import KeyValueCache
from feedlingo.config import get_settings
from feedlingo.core.ingestion import IngestionRunner
from feedlingo.core.scheduler import IngestionScheduler
from feedlingo.fetcher.extractor import FullTextExtractor
from feedlingo.fetcher.feed_reader import FeedReader
from feedlingo.models.database import async_session_maker, close_db, init_db
from feedlingo.scheduler import create_scheduler, shutdown_scheduler
from feedlingo.scheduler.tasks import active_source_finder, due_source_finder
from feedlingo.translation import (
    RateLimiter,
    TranslationCache,
    TranslationService,
    TranslationTaskManager,
    create_engine_registry,
)

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """应用生命周期管理."""
    app_settings = get_settings()

    # 启动时初始化
    logger.info("正在初始化数据库...")
    await init_db(app_settings.database_url)
    session_factory = async_session_maker()

    logger.info("正在初始化翻译服务...")
    store = KeyValueCache(maxsize=app_settings.translation_cache_size)
    translation_service = TranslationService(
        registry=create_engine_registry(app_settings),
        limiter=RateLimiter(app_settings.translation_max_concurrent),
        cache=TranslationCache(store, ttl=app_settings.translation_cache_ttl_seconds),
    )
    task_manager = TranslationTaskManager(
        translation_service,
        store,
        retention_seconds=app_settings.translation_task_retention_seconds,
    )

    reader = FeedReader(timeout=app_settings.fetch_timeout_seconds)
    extractor = FullTextExtractor(timeout=app_settings.fetch_timeout_seconds)
    runner = IngestionRunner(
        session_factory, reader, translation_service, extractor, app_settings
    )
    ingestion_scheduler = IngestionScheduler(
        find_due_sources=due_source_finder(session_factory, app_settings),
        run_job=runner,
        find_active_sources=active_source_finder(session_factory),
        max_concurrent_jobs=app_settings.max_concurrent_jobs,
    )

    app.state.translation_service = translation_service
    app.state.task_manager = task_manager
    app.state.ingestion_scheduler = ingestion_scheduler

    logger.info("正在启动定时任务...")
    scheduler = create_scheduler(app_settings, ingestion_scheduler)

    logger.info("FeedLingo 启动完成！")
    yield

    # 关闭时清理
    logger.info("正在关闭...")
    shutdown_scheduler(scheduler)
    await ingestion_scheduler.wait_idle()
    await task_manager.drain()
    await reader.close()
    await extractor.close()
    await translation_service.close()
    await close_db()
    logger.info("FeedLingo 已关闭")


app = FastAPI(
    title="FeedLingo",
    description="多语言内容聚合 - Feed 抓取、断点续传与翻译",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 注册路由
app.include_router(ingest.router)
app.include_router(items.router)
app.include_router(translate.router)


@app.get("/")
async def root() -> dict:
    """根路径."""
    return {
        "name": "FeedLingo",
        "version": "0.1.0",
        "description": "多语言内容聚合服务",
    }


@app.get("/health")
async def health() -> dict:
    """健康检查."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "feedlingo.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
