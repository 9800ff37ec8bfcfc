"""Feed 读取器 - 抓取并解析 RSS/Atom."""

import asyncio
import logging
from datetime import datetime
from typing import Any

import feedparser
import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "FeedLingo/0.1 (+https://github.com/feedlingo/feedlingo)"


class FeedError(Exception):
    """Feed 读取错误基类."""


class FeedFetchError(FeedError):
    """Feed 下载失败（网络或 HTTP 错误）."""


class FeedParseError(FeedError):
    """Feed 文档无法解析."""


class FeedEntry(BaseModel):
    """Feed 中的一个条目."""

    guid: str
    title: str
    link: str | None = None
    description: str | None = None
    content: str | None = None  # 原始 HTML
    author: str | None = None
    published_at: datetime | None = None
    categories: list[str] = []


def _parse_date(entry: Any) -> datetime | None:
    """解析发布时间，优先 published，其次 updated."""
    for key in ("published_parsed", "updated_parsed"):
        value = entry.get(key)
        if value:
            try:
                return datetime(*value[:6])
            except (TypeError, ValueError):
                continue
    return None


def _parse_entry(entry: Any) -> FeedEntry | None:
    """将 feedparser 条目转换为 FeedEntry，无法确定 guid 时返回 None."""
    link = entry.get("link") or None
    guid = entry.get("id") or link
    if not guid:
        return None

    # 内容优先取 content:encoded，其次 summary
    content = None
    if entry.get("content"):
        content = entry["content"][0].get("value")
    summary = entry.get("summary") or entry.get("description")
    if not content:
        content = summary

    categories = [tag.get("term") for tag in entry.get("tags", []) if tag.get("term")]

    return FeedEntry(
        guid=guid,
        title=entry.get("title") or "无标题",
        link=link,
        description=summary,
        content=content,
        author=entry.get("author"),
        published_at=_parse_date(entry),
        categories=categories,
    )


def parse_feed(content: bytes | str, limit: int | None = None) -> list[FeedEntry]:
    """
    解析 Feed 文档.

    Args:
        content: Feed 原文（XML）
        limit: 最多返回的条目数，按 Feed 顺序截取

    Returns:
        按 Feed 顺序排列的条目列表

    Raises:
        FeedParseError: 文档无法解析且没有任何条目
    """
    parsed = feedparser.parse(content)

    if parsed.bozo and not parsed.entries:
        msg = f"Feed 解析失败: {parsed.get('bozo_exception')}"
        raise FeedParseError(msg)

    entries: list[FeedEntry] = []
    for raw in parsed.entries:
        entry = _parse_entry(raw)
        if entry is None:
            logger.warning(f"跳过无 guid 和链接的条目: {raw.get('title')}")
            continue
        entries.append(entry)
        if limit is not None and len(entries) >= limit:
            break

    return entries


class FeedReader:
    """Feed 读取器，每次调用无状态."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={
                "User-Agent": user_agent,
                "Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml",
            },
        )

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def fetch(self, url: str, limit: int | None = None) -> list[FeedEntry]:
        """下载并解析 Feed."""
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"Feed 下载失败 {url}: {e}"
            raise FeedFetchError(msg) from e

        # feedparser 是同步解析，放到线程池避免阻塞事件循环
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, parse_feed, response.content, limit)
