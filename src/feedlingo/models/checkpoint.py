"""Checkpoint 抓取进度模型."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from feedlingo.utils.clock import utcnow


class ProcessedMarker(BaseModel):
    """最近一个处理完成的条目."""

    guid: str
    publish_date: datetime | None = None


class FailedItem(BaseModel):
    """处理失败的条目及其重试记录."""

    guid: str
    error: str
    retry_count: int = 0
    last_retry: datetime


class Checkpoint(SQLModel, table=True):
    """单个源一次抓取周期的持久化进度."""

    __tablename__ = "checkpoints"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    source_id: int = Field(foreign_key="sources.id", index=True, description="关联源")
    processed_count: int = Field(default=0, description="已处理条目数")
    total_count: int = Field(default=0, description="本次抓取条目总数")
    last_processed_item: dict[str, Any] | None = Field(
        default=None,
        sa_column=Column(JSON, nullable=True),
        description="最近处理完成的条目 (guid, publish_date)",
    )
    failed_items: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
        description="失败条目，按 guid 索引（保持插入顺序）",
    )
    abandoned_items: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
        description="超过重试上限而放弃的条目",
    )
    is_completed: bool = Field(default=False, index=True, description="是否完成")
    last_error: str | None = Field(default=None, description="整体失败时的错误信息")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
