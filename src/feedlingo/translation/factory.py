"""翻译引擎注册表与工厂."""

import logging

from feedlingo.config import Settings
from feedlingo.translation.base import TranslationConfig, TranslationEngine
from feedlingo.translation.deepseek import DeepSeekTranslationEngine
from feedlingo.translation.openai import OpenAITranslationEngine

logger = logging.getLogger(__name__)


class EngineRegistry:
    """按名称管理翻译引擎."""

    def __init__(self, default: str) -> None:
        self.default_name = default
        self._engines: dict[str, TranslationEngine] = {}

    def register(self, engine: TranslationEngine) -> None:
        """注册引擎，同名引擎会被覆盖."""
        self._engines[engine.name] = engine

    def get(self, name: str | None = None) -> TranslationEngine:
        """按名称获取引擎，未知名称回退到默认引擎."""
        if name is None:
            return self.get_default()
        engine = self._engines.get(name)
        if engine is None:
            logger.warning(f"未知翻译引擎 {name}，使用默认引擎 {self.default_name}")
            return self.get_default()
        return engine

    def get_default(self) -> TranslationEngine:
        """获取默认引擎."""
        engine = self._engines.get(self.default_name)
        if engine is None:
            msg = f"默认翻译引擎未注册: {self.default_name}"
            raise LookupError(msg)
        return engine

    def names(self) -> list[str]:
        """已注册的引擎名称."""
        return list(self._engines)

    async def close(self) -> None:
        """关闭所有引擎."""
        for engine in self._engines.values():
            await engine.close()


def create_engine_registry(settings: Settings) -> EngineRegistry:
    """根据配置创建并注册所有翻译引擎."""
    registry = EngineRegistry(default=settings.translation_engine)

    registry.register(
        OpenAITranslationEngine(
            config=TranslationConfig(model=settings.openai_model),
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
        )
    )
    registry.register(
        DeepSeekTranslationEngine(
            config=TranslationConfig(model=settings.deepseek_model, temperature=0.2),
            api_key=settings.deepseek_api_key,
            base_url=settings.deepseek_base_url,
        )
    )

    return registry
