"""翻译服务 - 缓存、限流、语言识别与引擎调用的组合."""

import logging
from typing import Any

from feedlingo.models.item import TranslationEntry, TranslationUsage
from feedlingo.translation.base import (
    TranslationConfig,
    TranslationEngine,
    TranslationError,
    TranslationResult,
)
from feedlingo.translation.cache import TranslationCache
from feedlingo.translation.detect import detect_language as detect_by_script
from feedlingo.translation.factory import EngineRegistry
from feedlingo.translation.limiter import RateLimiter
from feedlingo.utils.clock import utcnow

logger = logging.getLogger(__name__)


def _merge_usage(
    first: TranslationUsage | None, second: TranslationUsage | None
) -> TranslationUsage | None:
    """合并两次调用的用量."""
    if first is None or second is None:
        return first or second

    def add(a: int | None, b: int | None) -> int | None:
        if a is None and b is None:
            return None
        return (a or 0) + (b or 0)

    return TranslationUsage(
        model=first.model or second.model,
        prompt_tokens=add(first.prompt_tokens, second.prompt_tokens),
        completion_tokens=add(first.completion_tokens, second.completion_tokens),
        total_tokens=add(first.total_tokens, second.total_tokens),
    )


class TranslationService:
    """
    翻译服务.

    调用顺序：
    1. 查询缓存，命中则直接返回（不经过限流器）
    2. 进入限流器
    3. 未指定源语言时先识别语言（引擎识别失败则按字符区段猜测）
    4. 调用引擎翻译并写入缓存
    """

    def __init__(
        self,
        registry: EngineRegistry,
        limiter: RateLimiter,
        cache: TranslationCache,
    ) -> None:
        self.registry = registry
        self.limiter = limiter
        self.cache = cache

    def engine_names(self) -> list[str]:
        """已注册的引擎名称."""
        return self.registry.names()

    async def close(self) -> None:
        """释放所有引擎."""
        await self.registry.close()

    async def detect_language(
        self, text: str, engine: TranslationEngine | None = None
    ) -> str:
        """识别文本语言，引擎识别失败时回退到字符区段猜测."""
        translator = engine or self.registry.get_default()
        try:
            return await translator.detect_language(text)
        except TranslationError as e:
            fallback = detect_by_script(text)
            logger.warning(f"引擎语言识别失败，回退为 {fallback}: {e}")
            return fallback

    async def translate(
        self,
        text: str,
        target: str,
        source: str | None = None,
        engine: str | None = None,
        config: TranslationConfig | None = None,
    ) -> TranslationResult:
        """
        翻译单段文本.

        Args:
            text: 待翻译文本
            target: 目标语言代码
            source: 源语言代码，为空时自动识别
            engine: 引擎名称，为空或未知时使用默认引擎
            config: 单次调用配置

        Raises:
            TranslationError: 引擎调用失败
        """
        if not text or not text.strip():
            return TranslationResult(text=text or "")

        cached = await self.cache.get(text, target, source)
        if cached is not None:
            logger.debug(f"翻译缓存命中: {target}")
            return cached

        translator = self.registry.get(engine)

        async with self.limiter:
            source_lang = source or await self.detect_language(text, translator)
            if source_lang == target:
                result = TranslationResult(text=text, quality=1.0)
            else:
                result = await translator.translate(text, target, source_lang, config)

        await self.cache.set(text, target, source, result)
        return result

    async def translate_item(
        self,
        title: str,
        content: str | None,
        target: str,
        source: str | None = None,
        engine: str | None = None,
    ) -> TranslationEntry:
        """翻译条目的标题和正文，返回可直接存入 Item 的翻译记录."""
        translator = self.registry.get(engine)

        title_result = await self.translate(title, target, source, translator.name)
        content_result = None
        if content:
            content_result = await self.translate(content, target, source, translator.name)

        qualities = [
            r.quality for r in (title_result, content_result) if r and r.quality is not None
        ]

        return TranslationEntry(
            title=title_result.text,
            content=content_result.text if content_result else None,
            engine=translator.name,
            quality=min(qualities) if qualities else None,
            usage=_merge_usage(
                title_result.usage, content_result.usage if content_result else None
            ),
            translated_at=utcnow(),
        )

    async def stats(self) -> dict[str, Any]:
        """缓存与限流器的运行状态."""
        return {
            "default_engine": self.registry.default_name,
            "engines": self.engine_names(),
            "cache": {
                "entries": await self.cache.size(),
                "hits": self.cache.hits,
                "misses": self.cache.misses,
            },
            "limiter": {
                "max_concurrent": self.limiter.max_concurrent,
                "in_flight": self.limiter.in_flight,
                "peak": self.limiter.peak,
            },
        }

    async def clear_cache(self) -> int:
        """清空翻译缓存."""
        count = await self.cache.clear()
        logger.info(f"翻译缓存已清空: {count} 条")
        return count
