"""翻译结果缓存."""

import hashlib

from feedlingo.cache import KeyValueCache
from feedlingo.translation.base import TranslationResult
from feedlingo.utils.html_parser import clean_text

# 翻译结果键的前缀（异步任务记录使用 translation_task: 前缀，不会被匹配）
KEY_PREFIX = "translation:"


def normalize_text(text: str) -> str:
    """缓存键使用的规范化文本（合并空白）."""
    return clean_text(text)


def cache_key(text: str, target: str, source: str | None = None) -> str:
    """由 (规范化文本, 源语言或 auto, 目标语言) 计算缓存键."""
    digest = hashlib.sha256(normalize_text(text).encode("utf-8")).hexdigest()
    return f"{KEY_PREFIX}{digest}:{source or 'auto'}:{target}"


class TranslationCache:
    """以 KeyValueCache 为存储的翻译缓存."""

    def __init__(self, store: KeyValueCache, ttl: float | None = 24 * 60 * 60) -> None:
        self.store = store
        self.ttl = ttl
        self.hits = 0
        self.misses = 0

    async def get(
        self, text: str, target: str, source: str | None = None
    ) -> TranslationResult | None:
        """读取缓存的翻译结果."""
        data = await self.store.get(cache_key(text, target, source))
        if data is None:
            self.misses += 1
            return None
        self.hits += 1
        return TranslationResult.model_validate(data)

    async def set(
        self,
        text: str,
        target: str,
        source: str | None,
        result: TranslationResult,
    ) -> None:
        """写入翻译结果."""
        await self.store.set(
            cache_key(text, target, source), result.model_dump(mode="json"), self.ttl
        )

    async def size(self) -> int:
        """当前缓存的翻译结果数量."""
        return len(await self.store.keys(KEY_PREFIX))

    async def clear(self) -> int:
        """清空翻译结果缓存，返回删除的条目数."""
        return await self.store.clear(KEY_PREFIX)
