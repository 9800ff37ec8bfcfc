"""内容条目 API."""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from feedlingo.api.deps import get_translation_service
from feedlingo.core.enrichment import ItemNotFoundError, ItemTranslator
from feedlingo.core.repository import ItemRepository
from feedlingo.models.database import get_session
from feedlingo.models.item import Item
from feedlingo.translation.base import TranslationError
from feedlingo.translation.service import TranslationService

router = APIRouter(prefix="/api/items", tags=["items"])


class BatchTranslateRequest(BaseModel):
    """批量翻译请求."""

    item_ids: list[int] = Field(min_length=1, max_length=100)
    target: str = "zh"
    engine: str | None = None
    force: bool = False


def _serialize(item: Item) -> dict[str, Any]:
    return {
        "id": item.id,
        "source_id": item.source_id,
        "guid": item.guid,
        "title": item.title,
        "description": item.description,
        "content": item.content,
        "link": item.link,
        "author": item.author,
        "published_at": item.published_at,
        "categories": item.categories,
        "is_read": item.is_read,
        "is_favorite": item.is_favorite,
        "translations": {
            lang: entry.model_dump() for lang, entry in item.get_translations().items()
        },
        "created_at": item.created_at,
    }


@router.get("")
async def list_items(
    source_id: int | None = Query(None, description="按源筛选"),
    is_read: bool | None = Query(None, description="按已读状态筛选"),
    is_favorite: bool | None = Query(None, description="按收藏状态筛选"),
    page: int = Query(1, ge=1, description="页码"),
    limit: int = Query(20, ge=1, le=100, description="每页数量"),
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """获取条目列表."""
    items, total = await ItemRepository(session).list(
        source_id=source_id,
        is_read=is_read,
        is_favorite=is_favorite,
        page=page,
        limit=limit,
    )

    return {
        "total": total,
        "page": page,
        "limit": limit,
        "items": [_serialize(item) for item in items],
    }


@router.post("/translate-batch")
async def translate_batch(
    request: BatchTranslateRequest,
    session: AsyncSession = Depends(get_session),
    service: TranslationService = Depends(get_translation_service),
) -> dict[str, Any]:
    """批量翻译条目，单个条目失败不影响其他条目."""
    outcomes = await ItemTranslator(session, service).translate_many(
        request.item_ids, request.target, request.engine, request.force
    )
    succeeded = sum(1 for outcome in outcomes if outcome.success)

    return {
        "total": len(outcomes),
        "succeeded": succeeded,
        "failed": len(outcomes) - succeeded,
        "results": [asdict(outcome) for outcome in outcomes],
    }


@router.get("/{item_id}")
async def get_item(
    item_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """获取单个条目."""
    item = await ItemRepository(session).get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="条目不存在")
    return _serialize(item)


@router.get("/{item_id}/translations")
async def get_item_translations(
    item_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """获取条目的所有译文."""
    item = await ItemRepository(session).get(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="条目不存在")
    return {"item_id": item.id, "translations": _serialize(item)["translations"]}


@router.post("/{item_id}/translate")
async def translate_item(
    item_id: int,
    target: str = Query("zh", description="目标语言"),
    engine: str | None = Query(None, description="翻译引擎"),
    force: bool = Query(False, description="覆盖已有译文"),
    session: AsyncSession = Depends(get_session),
    service: TranslationService = Depends(get_translation_service),
) -> dict[str, Any]:
    """翻译单个条目并保存译文."""
    try:
        entry, created = await ItemTranslator(session, service).translate(
            item_id, target, engine, force
        )
    except ItemNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except TranslationError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e

    return {
        "item_id": item_id,
        "language": target,
        "created": created,
        "translation": entry.model_dump(),
    }
