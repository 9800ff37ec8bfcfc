"""OpenAI 翻译引擎."""

import logging
from typing import Any

from openai import AsyncOpenAI
from tenacity import wait_exponential
from tenacity.wait import wait_base

from feedlingo.models.item import TranslationUsage
from feedlingo.translation.base import TranslationConfig, TranslationEngine, TranslationError

logger = logging.getLogger(__name__)


class OpenAITranslationEngine(TranslationEngine):
    """OpenAI API 翻译引擎（支持所有 OpenAI 兼容接口）."""

    name = "openai"

    def __init__(
        self,
        config: TranslationConfig,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        super().__init__(config)
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self._client = client
        if not api_key and client is None:
            logger.warning("未配置 OPENAI_API_KEY，OpenAI 翻译引擎将无法正常工作")

    @property
    def client(self) -> AsyncOpenAI:
        """首次调用时才创建客户端（未配置密钥时构造会失败）."""
        if self._client is None:
            # 重试由引擎自身控制，关闭 SDK 内置重试
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
        return self._client

    def _retry_wait(self, config: TranslationConfig) -> wait_base:
        return wait_exponential(multiplier=config.retry_delay, max=30)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()

    async def _complete(
        self, messages: list[dict[str, str]], config: TranslationConfig
    ) -> tuple[str, TranslationUsage]:
        openai_messages: list[Any] = list(messages)

        response = await self.client.chat.completions.create(
            model=config.model,
            messages=openai_messages,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            msg = "OpenAI 返回了空的翻译结果"
            raise TranslationError(msg)

        usage = TranslationUsage(model=response.model or config.model)
        if response.usage is not None:
            usage.prompt_tokens = response.usage.prompt_tokens
            usage.completion_tokens = response.usage.completion_tokens
            usage.total_tokens = response.usage.total_tokens

        return content.strip(), usage
