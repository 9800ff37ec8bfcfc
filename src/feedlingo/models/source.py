"""Source 订阅源模型."""

from datetime import datetime

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from feedlingo.utils.clock import utcnow


class Source(SQLModel, table=True):
    """订阅的内容源."""

    __tablename__ = "sources"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(description="源名称")
    url: str = Field(description="Feed URL")
    active: bool = Field(default=True, index=True, description="是否启用")
    update_interval: int = Field(default=60, ge=1, description="更新间隔（分钟）")
    last_fetch_time: datetime | None = Field(
        default=None, description="最近一次成功抓取时间"
    )
    last_attempt_time: datetime | None = Field(
        default=None, description="最近一次尝试抓取时间（成功或失败）"
    )
    error_count: int = Field(default=0, ge=0, description="连续失败次数")
    last_error: str | None = Field(default=None, description="最近错误信息")
    content_selector: str | None = Field(
        default=None, description="全文提取 CSS 选择器"
    )
    target_languages: list[str] = Field(
        default_factory=lambda: ["zh"],
        sa_column=Column(JSON, nullable=False),
        description="翻译目标语言",
    )
    translation_engine: str | None = Field(
        default=None, description="翻译引擎名称，为空时使用默认引擎"
    )
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
