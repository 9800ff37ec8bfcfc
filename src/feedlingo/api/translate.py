"""翻译 API."""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from feedlingo.api.deps import get_task_manager, get_translation_service
from feedlingo.translation.base import TranslationError
from feedlingo.translation.service import TranslationService
from feedlingo.translation.tasks import TranslationTaskManager

router = APIRouter(prefix="/api/translate", tags=["translate"])


class TranslateRequest(BaseModel):
    """翻译请求."""

    text: str = Field(min_length=1)
    target: str = "zh"
    source: str | None = None
    engine: str | None = None


@router.post("")
async def translate(
    request: TranslateRequest,
    service: TranslationService = Depends(get_translation_service),
) -> dict[str, Any]:
    """同步翻译文本."""
    try:
        result = await service.translate(
            request.text, request.target, request.source, request.engine
        )
    except TranslationError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return {
        "text": result.text,
        "quality": result.quality,
        "usage": result.usage.model_dump() if result.usage else None,
    }


@router.get("/engines")
async def list_engines(
    service: TranslationService = Depends(get_translation_service),
) -> dict[str, Any]:
    """获取已注册的翻译引擎."""
    return {
        "default": service.registry.default_name,
        "engines": service.engine_names(),
    }


@router.post("/tasks")
async def submit_task(
    request: TranslateRequest,
    manager: TranslationTaskManager = Depends(get_task_manager),
) -> dict[str, Any]:
    """提交异步翻译任务."""
    task = await manager.submit(
        request.text, request.target, request.source, request.engine
    )
    return {"task_id": task.task_id, "status": task.status, "created_at": task.created_at}


@router.get("/tasks/{task_id}")
async def get_task(
    task_id: str,
    manager: TranslationTaskManager = Depends(get_task_manager),
) -> dict[str, Any]:
    """查询翻译任务状态."""
    task = await manager.get_status(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="任务不存在或已过期")

    return {
        "task_id": task.task_id,
        "status": task.status,
        "progress": task.progress,
        "result": task.result,
        "error": task.error,
    }


@router.get("/stats")
async def get_stats(
    service: TranslationService = Depends(get_translation_service),
) -> dict[str, Any]:
    """获取翻译缓存与限流器状态."""
    return await service.stats()


@router.delete("/cache")
async def clear_cache(
    service: TranslationService = Depends(get_translation_service),
) -> dict[str, Any]:
    """清空翻译缓存."""
    return {"cleared": await service.clear_cache()}
