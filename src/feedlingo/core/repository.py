"""Source / Item 数据访问."""

from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from feedlingo.models.item import Item
from feedlingo.models.source import Source
from feedlingo.utils.clock import utcnow


def is_due(
    source: Source,
    now: datetime,
    error_backoff: timedelta = timedelta(minutes=60),
    deactivate_threshold: int = 5,
) -> bool:
    """
    判断源是否到期需要抓取.

    - 正常源：从未成功抓取，或距上次成功抓取已超过 update_interval
    - 出错源（0 < error_count < 阈值）：距上次尝试已超过退避时间
    """
    if not source.active:
        return False

    if 0 < source.error_count < deactivate_threshold:
        last_attempt = source.last_attempt_time or source.last_fetch_time
        return last_attempt is None or now - last_attempt >= error_backoff

    if source.last_fetch_time is None:
        return True
    return now - source.last_fetch_time >= timedelta(minutes=source.update_interval)


class SourceRepository:
    """订阅源访问."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_source(self, source_id: int) -> Source | None:
        """按 ID 获取源."""
        return await self.session.get(Source, source_id)

    async def get_active_sources(self) -> list[Source]:
        """获取所有启用的源."""
        stmt = select(Source).where(col(Source.active).is_(True)).order_by(col(Source.id))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_due_sources(
        self,
        now: datetime | None = None,
        error_backoff: timedelta = timedelta(minutes=60),
        deactivate_threshold: int = 5,
    ) -> list[Source]:
        """获取到期需要抓取的源."""
        now = now or utcnow()
        sources = await self.get_active_sources()
        return [
            source
            for source in sources
            if is_due(source, now, error_backoff, deactivate_threshold)
        ]

    async def save_source(self, source: Source) -> Source:
        """保存源（不提交）."""
        source.updated_at = utcnow()
        self.session.add(source)
        return source


class ItemRepository:
    """内容条目访问."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, item_id: int) -> Item | None:
        """按 ID 获取条目."""
        return await self.session.get(Item, item_id)

    async def find_by_guid(self, guid: str) -> Item | None:
        """按 guid 查找条目."""
        stmt = select(Item).where(Item.guid == guid)
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def save(self, item: Item) -> Item:
        """保存条目（不提交）."""
        self.session.add(item)
        return item

    async def list(
        self,
        source_id: int | None = None,
        is_read: bool | None = None,
        is_favorite: bool | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[Item], int]:
        """分页查询条目，按发布时间倒序."""
        stmt = select(Item)
        if source_id is not None:
            stmt = stmt.where(Item.source_id == source_id)
        if is_read is not None:
            stmt = stmt.where(Item.is_read == is_read)
        if is_favorite is not None:
            stmt = stmt.where(Item.is_favorite == is_favorite)

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()

        offset = (page - 1) * limit
        stmt = (
            stmt.order_by(col(Item.published_at).desc(), col(Item.id).desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all()), total
