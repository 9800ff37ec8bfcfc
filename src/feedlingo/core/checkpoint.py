"""Checkpoint 存取与失败条目簿记."""

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from feedlingo.models.checkpoint import Checkpoint, FailedItem, ProcessedMarker
from feedlingo.utils.clock import utcnow

logger = logging.getLogger(__name__)


def get_marker(checkpoint: Checkpoint) -> ProcessedMarker | None:
    """读取最近处理完成的条目."""
    if not checkpoint.last_processed_item:
        return None
    return ProcessedMarker.model_validate(checkpoint.last_processed_item)


def advance(checkpoint: Checkpoint, marker: ProcessedMarker) -> None:
    """将续传位置推进到指定条目."""
    checkpoint.last_processed_item = marker.model_dump(mode="json")


def get_failed(checkpoint: Checkpoint) -> dict[str, FailedItem]:
    """读取失败条目（保持记录顺序）."""
    return {
        guid: FailedItem.model_validate(data)
        for guid, data in (checkpoint.failed_items or {}).items()
    }


def get_abandoned(checkpoint: Checkpoint) -> dict[str, FailedItem]:
    """读取已放弃的条目."""
    return {
        guid: FailedItem.model_validate(data)
        for guid, data in (checkpoint.abandoned_items or {}).items()
    }


def _store_failed(checkpoint: Checkpoint, failed: dict[str, FailedItem]) -> None:
    # JSON 列没有变更追踪，必须整体赋值
    checkpoint.failed_items = {
        guid: item.model_dump(mode="json") for guid, item in failed.items()
    }


def record_failure(
    checkpoint: Checkpoint, guid: str, error: str, now: datetime | None = None
) -> FailedItem:
    """
    记录条目失败.

    新条目以 retry_count=0 加入；已有条目的 retry_count 加一并刷新错误和时间。
    """
    now = now or utcnow()
    failed = get_failed(checkpoint)

    entry = failed.get(guid)
    if entry is None:
        entry = FailedItem(guid=guid, error=error, retry_count=0, last_retry=now)
    else:
        entry = entry.model_copy(
            update={"error": error, "retry_count": entry.retry_count + 1, "last_retry": now}
        )

    failed[guid] = entry
    _store_failed(checkpoint, failed)
    return entry


def clear_failure(checkpoint: Checkpoint, guid: str) -> None:
    """从失败集合中移除条目."""
    failed = get_failed(checkpoint)
    if failed.pop(guid, None) is not None:
        _store_failed(checkpoint, failed)


def abandon(checkpoint: Checkpoint, guid: str) -> None:
    """将重试次数耗尽的条目移入放弃集合."""
    failed = get_failed(checkpoint)
    entry = failed.pop(guid, None)
    if entry is None:
        return

    abandoned = dict(checkpoint.abandoned_items or {})
    abandoned[guid] = entry.model_dump(mode="json")
    checkpoint.abandoned_items = abandoned
    _store_failed(checkpoint, failed)


def eligible_retries(
    checkpoint: Checkpoint,
    now: datetime,
    max_retry_count: int = 3,
    cooldown: timedelta = timedelta(minutes=30),
) -> list[FailedItem]:
    """筛选可重试的失败条目：重试次数未达上限且已过冷却期."""
    return [
        entry
        for entry in get_failed(checkpoint).values()
        if entry.retry_count < max_retry_count and now - entry.last_retry >= cooldown
    ]


def prune_abandoned(checkpoint: Checkpoint, guids: set[str]) -> None:
    """只保留仍在 Feed 中的放弃条目."""
    abandoned = checkpoint.abandoned_items or {}
    kept = {guid: data for guid, data in abandoned.items() if guid in guids}
    if len(kept) != len(abandoned):
        checkpoint.abandoned_items = kept


def update_completion(checkpoint: Checkpoint, reached_end: bool = False) -> bool:
    """
    更新完成状态.

    没有待重试的失败条目，且已处理数加放弃数达到总数（或本轮已遍历到 Feed 末尾）时完成。
    """
    settled = checkpoint.processed_count + len(checkpoint.abandoned_items or {})
    checkpoint.is_completed = not checkpoint.failed_items and (
        reached_end or settled >= checkpoint.total_count
    )
    return checkpoint.is_completed


class CheckpointStore:
    """Checkpoint 的持久化访问."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def load_active(self, source_id: int) -> Checkpoint | None:
        """获取源最近一个未完成的 Checkpoint."""
        stmt = (
            select(Checkpoint)
            .where(Checkpoint.source_id == source_id)
            .where(col(Checkpoint.is_completed).is_(False))
            .order_by(col(Checkpoint.id).desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def start(self, source_id: int, force_refresh: bool = False) -> Checkpoint:
        """
        开始一个抓取周期.

        复用未完成的 Checkpoint 以便续传；新建时沿用上一个 Checkpoint 的放弃集合。
        force_refresh 时丢弃所有未完成的 Checkpoint，放弃集合也清空。
        """
        abandoned: dict[str, Any] = {}
        if force_refresh:
            await self.session.execute(
                delete(Checkpoint)
                .where(col(Checkpoint.source_id) == source_id)
                .where(col(Checkpoint.is_completed).is_(False))
            )
            logger.info(f"源 {source_id} 强制刷新，已丢弃未完成的进度")
        else:
            checkpoint = await self.load_active(source_id)
            if checkpoint is not None:
                logger.info(
                    f"源 {source_id} 从断点续传: 已处理 {checkpoint.processed_count}/"
                    f"{checkpoint.total_count}"
                )
                return checkpoint

            previous = await self.get_progress(source_id)
            if previous is not None:
                abandoned = dict(previous.abandoned_items or {})

        checkpoint = Checkpoint(source_id=source_id, abandoned_items=abandoned)
        self.session.add(checkpoint)
        await self.session.commit()
        await self.session.refresh(checkpoint)
        return checkpoint

    async def save(self, checkpoint: Checkpoint) -> None:
        """保存 Checkpoint（不提交）."""
        checkpoint.updated_at = utcnow()
        self.session.add(checkpoint)

    async def get_progress(self, source_id: int) -> Checkpoint | None:
        """获取源最新的 Checkpoint（无论是否完成）."""
        stmt = (
            select(Checkpoint)
            .where(Checkpoint.source_id == source_id)
            .order_by(col(Checkpoint.id).desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()
