"""Item 内容条目模型."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from feedlingo.utils.clock import utcnow


class TranslationUsage(BaseModel):
    """翻译调用的用量信息."""

    model: str | None = None
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None


class TranslationEntry(BaseModel):
    """某一目标语言的翻译结果."""

    title: str
    content: str | None = None
    engine: str
    quality: float | None = None
    usage: TranslationUsage | None = None
    translated_at: datetime


class Item(SQLModel, table=True):
    """抓取入库的内容条目."""

    __tablename__ = "items"  # type: ignore[assignment]

    id: int | None = Field(default=None, primary_key=True)
    source_id: int = Field(foreign_key="sources.id", index=True, description="关联源")
    guid: str = Field(unique=True, index=True, description="全局唯一键（GUID 或链接）")
    title: str = Field(description="标题")
    description: str | None = Field(default=None, description="摘要")
    content: str | None = Field(default=None, description="清洗后的纯文本内容")
    content_html: str | None = Field(default=None, description="原始 HTML 内容")
    link: str | None = Field(default=None, description="原文链接")
    author: str | None = Field(default=None, description="作者")
    published_at: datetime | None = Field(default=None, index=True, description="发布时间")
    categories: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
        description="分类",
    )
    is_read: bool = Field(default=False, description="是否已读")
    is_favorite: bool = Field(default=False, description="是否收藏")
    translations: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False),
        description="翻译结果，按语言代码索引",
    )
    created_at: datetime = Field(default_factory=utcnow)

    def get_translations(self) -> dict[str, TranslationEntry]:
        """读取翻译映射."""
        return {
            lang: TranslationEntry.model_validate(data)
            for lang, data in (self.translations or {}).items()
        }

    def set_translation(self, language: str, entry: TranslationEntry) -> None:
        """添加或替换某一语言的翻译（整体赋值以触发变更检测）."""
        translations = dict(self.translations or {})
        translations[language] = entry.model_dump(mode="json")
        self.translations = translations
