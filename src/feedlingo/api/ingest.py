"""抓取 API."""

import logging
from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from feedlingo.api.deps import get_ingestion_scheduler
from feedlingo.core.checkpoint import CheckpointStore, get_abandoned, get_failed, get_marker
from feedlingo.core.ingestion import IngestionReport, SourceNotFoundError
from feedlingo.core.scheduler import IngestionScheduler, JobConflictError
from feedlingo.fetcher.feed_reader import FeedError
from feedlingo.models.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ingest", tags=["ingest"])


@router.post("")
async def ingest_all(
    force_refresh: bool = Query(False, description="丢弃未完成的进度"),
    scheduler: IngestionScheduler = Depends(get_ingestion_scheduler),
) -> dict[str, Any]:
    """所有启用的源加入抓取队列."""
    queued = await scheduler.trigger_all(force_refresh)
    return {"message": f"已加入 {len(queued)} 个源", "queued": queued}


@router.get("/status")
async def get_status(
    scheduler: IngestionScheduler = Depends(get_ingestion_scheduler),
) -> dict[str, Any]:
    """获取调度器状态."""
    return scheduler.snapshot()


@router.post("/{source_id}")
async def ingest_source(
    source_id: int,
    force_refresh: bool = Query(False, description="丢弃未完成的进度"),
    scheduler: IngestionScheduler = Depends(get_ingestion_scheduler),
) -> dict[str, Any]:
    """立即抓取指定源."""
    try:
        report: IngestionReport = await scheduler.trigger(source_id, force_refresh)
    except SourceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except JobConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except FeedError as e:
        return {"success": False, "source_id": source_id, "error": str(e)}

    return {"success": True, "report": asdict(report)}


@router.get("/{source_id}/progress")
async def get_progress(
    source_id: int,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """获取源最新的抓取进度."""
    checkpoint = await CheckpointStore(session).get_progress(source_id)
    if checkpoint is None:
        raise HTTPException(status_code=404, detail="没有抓取记录")

    marker = get_marker(checkpoint)
    return {
        "id": checkpoint.id,
        "source_id": checkpoint.source_id,
        "processed_count": checkpoint.processed_count,
        "total_count": checkpoint.total_count,
        "is_completed": checkpoint.is_completed,
        "last_processed_item": marker.model_dump() if marker else None,
        "failed_items": [item.model_dump() for item in get_failed(checkpoint).values()],
        "abandoned_items": [
            item.model_dump() for item in get_abandoned(checkpoint).values()
        ],
        "last_error": checkpoint.last_error,
        "created_at": checkpoint.created_at,
        "updated_at": checkpoint.updated_at,
    }
