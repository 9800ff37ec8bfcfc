"""翻译引擎抽象基类."""

import logging
import re
from abc import ABC, abstractmethod

from pydantic import BaseModel
from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt, wait_fixed
from tenacity.wait import wait_base

from feedlingo.models.item import TranslationUsage

logger = logging.getLogger(__name__)

LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "zh": "简体中文",
    "ja": "日本語",
    "ko": "한국어",
    "fr": "Français",
    "de": "Deutsch",
    "es": "Español",
    "it": "Italiano",
    "pt": "Português",
    "ru": "Русский",
    "ar": "العربية",
    "hi": "हिन्दी",
    "bn": "বাংলা",
    "id": "Bahasa Indonesia",
    "ms": "Bahasa Melayu",
    "th": "ไทย",
    "vi": "Tiếng Việt",
    "nl": "Nederlands",
    "tr": "Türkçe",
    "pl": "Polski",
}

TRANSLATE_SYSTEM_PROMPT = """你是一名专业译者。

## 要求
- 将用户提供的文本从{source}翻译为{target}
- 保持原文的含义、语气和风格
- 保留段落、列表、强调等格式
- 只返回译文，不要任何解释或备注"""

DETECT_SYSTEM_PROMPT = (
    "你是一个语言识别工具。只返回文本的 ISO 639-1 语言代码（例如 en、zh、ja），不要其他内容。"
)


class TranslationError(Exception):
    """翻译失败（重试耗尽或响应无效）."""


class TranslationConfig(BaseModel):
    """翻译调用配置."""

    model: str
    temperature: float = 0.3
    max_tokens: int = 4000
    retry_count: int = 2  # 首次调用之外的重试次数
    retry_delay: float = 1.0  # 秒


class TranslationResult(BaseModel):
    """单次翻译结果."""

    text: str
    quality: float | None = None
    usage: TranslationUsage | None = None


def language_name(code: str | None) -> str:
    """语言代码转为提示词中的语言名称."""
    if not code:
        return "原文语言"
    return LANGUAGE_NAMES.get(code, code)


def build_translate_messages(
    text: str, target: str, source: str | None = None
) -> list[dict[str, str]]:
    """构建翻译对话消息."""
    system = TRANSLATE_SYSTEM_PROMPT.format(
        source=language_name(source), target=language_name(target)
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": text},
    ]


def build_detect_messages(text: str) -> list[dict[str, str]]:
    """构建语言识别对话消息."""
    return [
        {"role": "system", "content": DETECT_SYSTEM_PROMPT},
        {"role": "user", "content": text[:500]},
    ]


class TranslationEngine(ABC):
    """
    翻译引擎抽象基类.

    子类只需实现一次对话补全调用 `_complete`；重试、语言校验和结果封装由基类完成。
    """

    name: str = ""
    # 引擎未给出质量评估时使用的固定值
    default_quality: float | None = None

    def __init__(self, config: TranslationConfig) -> None:
        self.config = config

    @abstractmethod
    async def _complete(
        self, messages: list[dict[str, str]], config: TranslationConfig
    ) -> tuple[str, TranslationUsage]:
        """执行一次对话补全，返回 (文本, 用量)."""
        ...

    def _retry_wait(self, config: TranslationConfig) -> wait_base:
        """重试间隔策略，默认固定间隔."""
        return wait_fixed(config.retry_delay)

    def supported_languages(self) -> list[str]:
        """支持的目标语言代码."""
        return list(LANGUAGE_NAMES)

    async def close(self) -> None:
        """释放底层客户端."""
        return None

    async def translate(
        self,
        text: str,
        target: str,
        source: str | None = None,
        config: TranslationConfig | None = None,
    ) -> TranslationResult:
        """
        翻译文本.

        Args:
            text: 待翻译文本
            target: 目标语言代码
            source: 源语言代码，为空时由模型自行判断
            config: 单次调用配置，为空时使用引擎默认配置

        Raises:
            TranslationError: 目标语言不受支持，或所有尝试均失败
        """
        cfg = config or self.config
        if target not in self.supported_languages():
            msg = f"引擎 {self.name} 不支持目标语言: {target}"
            raise TranslationError(msg)

        messages = build_translate_messages(text, target, source)
        content = ""
        usage: TranslationUsage | None = None

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(cfg.retry_count + 1),
                wait=self._retry_wait(cfg),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    content, usage = await self._complete(messages, cfg)
        except TranslationError:
            raise
        except Exception as e:
            msg = f"{self.name} 翻译失败（共尝试 {cfg.retry_count + 1} 次）: {e}"
            raise TranslationError(msg) from e

        return TranslationResult(text=content, quality=self.default_quality, usage=usage)

    async def detect_language(self, text: str) -> str:
        """
        识别文本语言，返回 ISO 639-1 代码.

        Raises:
            TranslationError: 调用失败或返回值不是已知语言代码
        """
        cfg = self.config.model_copy(
            update={"temperature": 0.1, "max_tokens": 10, "retry_count": 0}
        )
        try:
            content, _ = await self._complete(build_detect_messages(text), cfg)
        except TranslationError:
            raise
        except Exception as e:
            msg = f"{self.name} 语言识别失败: {e}"
            raise TranslationError(msg) from e

        match = re.search(r"\b([a-z]{2})\b", content.strip().lower())
        if not match or match.group(1) not in LANGUAGE_NAMES:
            msg = f"{self.name} 返回了无法识别的语言代码: {content!r}"
            raise TranslationError(msg)
        return match.group(1)
