"""全文提取器."""

import asyncio
import re
from concurrent.futures import ThreadPoolExecutor

import httpx
from pydantic import BaseModel
from soupsieve import SelectorSyntaxError
from trafilatura import extract

from feedlingo.utils.html_parser import select_block

# 模拟浏览器的 User-Agent 以规避简单的 403
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class ExtractionError(Exception):
    """全文页面下载失败或选择器无效."""


class FullTextResult(BaseModel):
    """全文抓取结果."""

    success: bool
    content: str | None = None
    extractor: str | None = None  # selector | trafilatura
    word_count: int = 0
    error: str | None = None


class FullTextExtractor:
    """
    抓取原文页面并提取正文.

    优先使用调用方提供的 CSS 选择器；选择器未命中时回退到 trafilatura。
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": BROWSER_USER_AGENT},
        )
        self._executor = ThreadPoolExecutor(max_workers=4)

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()
        self._executor.shutdown(wait=False)

    async def extract(self, url: str, selector: str | None = None) -> FullTextResult:
        """
        抓取指定 URL 并提取正文.

        Raises:
            ExtractionError: 页面下载失败或选择器语法错误
        """
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            msg = f"下载页面失败 {url}: {e}"
            raise ExtractionError(msg) from e

        html = response.text
        # BeautifulSoup 和 trafilatura 都是同步库，这里用线程池包装成异步
        loop = asyncio.get_running_loop()

        if selector:
            try:
                block = await loop.run_in_executor(
                    self._executor, select_block, html, selector
                )
            except SelectorSyntaxError as e:
                msg = f"CSS 选择器无效 {selector!r}: {e}"
                raise ExtractionError(msg) from e
            if block:
                return self._success(block, "selector")

        text = await loop.run_in_executor(self._executor, self._extract_sync, html)
        if text:
            return self._success(text, "trafilatura")

        return FullTextResult(success=False, error="无法从页面内容中提取正文")

    def _extract_sync(self, html: str) -> str | None:
        """同步提取纯文本正文."""
        text = extract(
            html,
            include_comments=False,
            include_tables=True,
            output_format="txt",
            favor_precision=False,
        )
        return self._clean_text(text) if text else None

    def _success(self, text: str, extractor: str) -> FullTextResult:
        return FullTextResult(
            success=True,
            content=text,
            extractor=extractor,
            word_count=len(text),
        )

    def _clean_text(self, text: str) -> str:
        """清理纯文本内容."""
        # 移除多余空行
        text = re.sub(r"\n{3,}", "\n\n", text)
        # 移除行首尾空白
        lines = [line.strip() for line in text.split("\n")]
        text = "\n".join(lines)
        # 移除常见的无效字符
        text = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f]", "", text)
        return text.strip()
