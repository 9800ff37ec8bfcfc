"""应用配置管理."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置（环境变量）."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 数据库
    database_url: str = "sqlite+aiosqlite:///./feedlingo.db"

    # 翻译引擎配置
    translation_engine: Literal["openai", "deepseek"] = "openai"
    target_languages: list[str] = ["zh"]

    # OpenAI 配置
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"

    # DeepSeek 配置
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com/v1"
    deepseek_model: str = "deepseek-chat"

    # 翻译限流与缓存
    translation_max_concurrent: int = 5
    translation_cache_ttl_seconds: int = 24 * 60 * 60
    translation_cache_size: int = 2048
    translation_task_retention_seconds: int = 24 * 60 * 60

    # 调度配置
    scheduler_interval_seconds: int = 60
    max_concurrent_jobs: int = 5
    error_backoff_minutes: int = 60

    # 抓取配置
    fetch_batch_size: int = 50
    fetch_timeout_seconds: int = 30
    max_retry_count: int = 3
    retry_cooldown_minutes: int = 30
    deactivate_threshold: int = 5


@lru_cache
def get_settings() -> Settings:
    """获取应用配置（带缓存）."""
    return Settings()
