"""DeepSeek 翻译引擎."""

import logging

import httpx

from feedlingo.models.item import TranslationUsage
from feedlingo.translation.base import TranslationConfig, TranslationEngine, TranslationError

logger = logging.getLogger(__name__)


class DeepSeekTranslationEngine(TranslationEngine):
    """DeepSeek 对话补全接口翻译引擎，失败后按固定间隔重试."""

    name = "deepseek"
    default_quality = 0.9

    def __init__(
        self,
        config: TranslationConfig,
        api_key: str,
        base_url: str = "https://api.deepseek.com/v1",
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(config)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)
        if not api_key:
            logger.warning("未配置 DEEPSEEK_API_KEY，DeepSeek 翻译引擎将无法正常工作")

    async def close(self) -> None:
        """关闭客户端."""
        await self._client.aclose()

    async def _complete(
        self, messages: list[dict[str, str]], config: TranslationConfig
    ) -> tuple[str, TranslationUsage]:
        url = f"{self.base_url}/chat/completions"
        payload = {
            "model": config.model,
            "messages": messages,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        response = await self._client.post(url, json=payload, headers=headers)
        response.raise_for_status()

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            msg = f"DeepSeek 响应格式无效: {e}"
            raise TranslationError(msg) from e

        if not content or not content.strip():
            msg = "DeepSeek 返回了空的翻译结果"
            raise TranslationError(msg)

        raw_usage = data.get("usage") or {}
        usage = TranslationUsage(
            model=data.get("model") or config.model,
            prompt_tokens=raw_usage.get("prompt_tokens"),
            completion_tokens=raw_usage.get("completion_tokens"),
            total_tokens=raw_usage.get("total_tokens"),
        )
        return content.strip(), usage
