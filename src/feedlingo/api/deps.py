"""API 依赖：从应用状态中取出共享组件."""

from fastapi import Request

from feedlingo.core.scheduler import IngestionScheduler
from feedlingo.translation.service import TranslationService
from feedlingo.translation.tasks import TranslationTaskManager


def get_ingestion_scheduler(request: Request) -> IngestionScheduler:
    """抓取调度器."""
    return request.app.state.ingestion_scheduler


def get_translation_service(request: Request) -> TranslationService:
    """翻译服务."""
    return request.app.state.translation_service


def get_task_manager(request: Request) -> TranslationTaskManager:
    """翻译任务管理器."""
    return request.app.state.task_manager
