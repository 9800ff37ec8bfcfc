"""翻译抽象层."""

from feedlingo.translation.base import (
    TranslationConfig,
    TranslationEngine,
    TranslationError,
    TranslationResult,
)
from feedlingo.translation.cache import TranslationCache
from feedlingo.translation.deepseek import DeepSeekTranslationEngine
from feedlingo.translation.factory import EngineRegistry, create_engine_registry
from feedlingo.translation.limiter import RateLimiter
from feedlingo.translation.openai import OpenAITranslationEngine
from feedlingo.translation.service import TranslationService
from feedlingo.translation.tasks import TranslationTask, TranslationTaskManager

__all__ = [
    "DeepSeekTranslationEngine",
    "EngineRegistry",
    "OpenAITranslationEngine",
    "RateLimiter",
    "TranslationCache",
    "TranslationConfig",
    "TranslationEngine",
    "TranslationError",
    "TranslationResult",
    "TranslationService",
    "TranslationTask",
    "TranslationTaskManager",
    "create_engine_registry",
]
