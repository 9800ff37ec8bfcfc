"""测试翻译后端：限流、缓存、重试与引擎选择."""

import asyncio
import json
import logging
from contextlib import AsyncExitStack

import httpx
import pytest
from conftest import FakeEngine, make_service
from openai import AsyncOpenAI

from feedlingo.cache import KeyValueCache
from feedlingo.config import Settings
from feedlingo.translation.base import TranslationConfig, TranslationError
from feedlingo.translation.cache import cache_key
from feedlingo.translation.deepseek import DeepSeekTranslationEngine
from feedlingo.translation.detect import detect_language
from feedlingo.translation.factory import EngineRegistry, create_engine_registry
from feedlingo.translation.limiter import RateLimiter
from feedlingo.translation.openai import OpenAITranslationEngine


class FlakyEngine(FakeEngine):
    """前 N 次调用失败的引擎."""

    def __init__(self, failures: int) -> None:
        super().__init__(name="flaky")
        self.failures = failures

    async def _complete(self, messages, config):  # type: ignore[no-untyped-def]
        if self.failures > 0:
            self.failures -= 1
            self.calls.append(messages[-1]["content"])
            msg = "临时错误"
            raise ConnectionError(msg)
        return await super()._complete(messages, config)


class BrokenDetectorEngine(FakeEngine):
    """语言识别总是失败的引擎."""

    async def detect_language(self, text: str) -> str:
        msg = "识别失败"
        raise TranslationError(msg)


class KeyValueCacheClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestKeyValueCache:
    """测试键值缓存."""

    async def test_set_get_delete(self) -> None:
        store = KeyValueCache()
        await store.set("a", {"x": 1})
        assert await store.get("a") == {"x": 1}
        await store.delete("a")
        assert await store.get("a") is None

    async def test_entry_expires_after_ttl(self) -> None:
        """超过 TTL 后读取为 None."""
        timer = KeyValueCacheClock()
        store = KeyValueCache(timer=timer)
        await store.set("short", "v", ttl=10)
        await store.set("forever", "v")

        timer.now = 5
        assert await store.get("short") == "v"

        timer.now = 11
        assert await store.get("short") is None
        assert await store.get("forever") == "v"

    async def test_keys_and_clear_by_prefix(self) -> None:
        """按前缀列出和删除键，过期键不计入."""
        timer = KeyValueCacheClock()
        store = KeyValueCache(timer=timer)
        await store.set("translation:a", 1)
        await store.set("translation:b", 2, ttl=10)
        await store.set("translation_task:t1", 3)

        assert sorted(await store.keys("translation:")) == ["translation:a", "translation:b"]

        timer.now = 11
        assert await store.keys("translation:") == ["translation:a"]

        assert await store.clear("translation:") == 1
        assert await store.keys() == ["translation_task:t1"]


class TestRateLimiter:
    """测试并发限流."""

    async def test_peak_never_exceeds_max(self) -> None:
        """超过上限的并发请求排队等待."""
        engine = FakeEngine(delay=0.02)
        service = make_service(engine, max_concurrent=5)

        texts = [f"text number {i}" for i in range(12)]
        results = await asyncio.gather(*(service.translate(t, "zh") for t in texts))

        assert len(results) == 12
        assert engine.peak <= 5
        assert service.limiter.peak <= 5
        assert service.limiter.in_flight == 0

    async def test_waiters_released_in_arrival_order(self) -> None:
        """等待者按到达顺序获得许可."""
        limiter = RateLimiter(1)
        order: list[int] = []

        async def worker(n: int) -> None:
            async with limiter:
                order.append(n)
                await asyncio.sleep(0)

        await asyncio.gather(*(worker(n) for n in range(5)))
        assert order == [0, 1, 2, 3, 4]

    def test_rejects_invalid_limit(self) -> None:
        with pytest.raises(ValueError):
            RateLimiter(0)


class TestTranslationCache:
    """测试翻译缓存."""

    async def test_cache_hit_skips_engine(self, fake_engine: FakeEngine) -> None:
        """缓存命中不再调用引擎."""
        service = make_service(fake_engine)

        first = await service.translate("Hello world", "zh", "en")
        second = await service.translate("Hello   world", "zh", "en")

        assert first.text == second.text == "译:Hello world"
        assert len(fake_engine.calls) == 1

    async def test_cache_hit_bypasses_limiter(self, fake_engine: FakeEngine) -> None:
        """缓存命中时即使限流器已满也能立即返回."""
        service = make_service(fake_engine, max_concurrent=2)
        await service.translate("cached text", "zh", "en")

        async with AsyncExitStack() as stack:
            await stack.enter_async_context(service.limiter)
            await stack.enter_async_context(service.limiter)
            result = await asyncio.wait_for(
                service.translate("cached text", "zh", "en"), timeout=1
            )

        assert result.text == "译:cached text"

    async def test_key_includes_languages(self) -> None:
        """缓存键区分源语言和目标语言."""
        assert cache_key("hi", "zh") != cache_key("hi", "ja")
        assert cache_key("hi", "zh") == cache_key("hi", "zh", None)
        assert cache_key("hi", "zh").endswith(":auto:zh")
        assert cache_key("hi", "zh", "en").endswith(":en:zh")

    async def test_identity_round_trip(self) -> None:
        """恒等引擎下 A->B->A 得到原文."""
        engine = FakeEngine(prefix="")
        service = make_service(engine)
        original = "The quick brown fox"

        forward = await service.translate(original, "zh", "en")
        back = await service.translate(forward.text, "en", "zh")

        assert back.text == original

    async def test_empty_text_short_circuits(self, fake_engine: FakeEngine) -> None:
        service = make_service(fake_engine)
        result = await service.translate("   ", "zh")
        assert result.text == "   "
        assert fake_engine.calls == []

    async def test_same_language_returns_original(self, fake_engine: FakeEngine) -> None:
        """源语言与目标语言相同时不调用引擎."""
        service = make_service(fake_engine)
        result = await service.translate("Hello", "en")
        assert result.text == "Hello"
        assert fake_engine.calls == []

    async def test_stats_and_clear(self, fake_engine: FakeEngine) -> None:
        """统计命中次数；清空缓存不影响翻译任务记录."""
        store = KeyValueCache()
        service = make_service(fake_engine, store=store)
        await store.set("translation_task:t1", {"status": "pending"})

        await service.translate("Hello", "zh", "en")
        await service.translate("Hello", "zh", "en")
        await service.translate("World", "zh", "en")

        stats = await service.stats()
        assert stats["cache"] == {"entries": 2, "hits": 1, "misses": 2}
        assert stats["limiter"] == {"max_concurrent": 5, "in_flight": 0, "peak": 1}
        assert stats["engines"] == ["fake"]

        assert await service.clear_cache() == 2
        assert (await service.stats())["cache"]["entries"] == 0
        assert await store.get("translation_task:t1") == {"status": "pending"}

        await service.translate("Hello", "zh", "en")
        assert fake_engine.calls_for("Hello") == 2


class TestRetries:
    """测试有界重试."""

    async def test_gives_up_after_bounded_attempts(self) -> None:
        """retry_count=2 时共尝试 3 次后抛出 TranslationError."""
        engine = FakeEngine(fail_on=["boom"])
        service = make_service(engine)

        with pytest.raises(TranslationError):
            await service.translate("boom", "zh", "en")

        assert engine.calls_for("boom") == 3

    async def test_per_call_config_overrides_retry_count(self) -> None:
        engine = FakeEngine(fail_on=["boom"])
        config = TranslationConfig(model="fake-model", retry_count=0, retry_delay=0)

        with pytest.raises(TranslationError):
            await engine.translate("boom", "zh", "en", config)

        assert engine.calls_for("boom") == 1

    async def test_recovers_from_transient_failure(self) -> None:
        """临时错误后重试成功."""
        engine = FlakyEngine(failures=2)
        result = await engine.translate("hello", "zh", "en")
        assert result.text == "译:hello"
        assert len(engine.calls) == 3

    async def test_unsupported_target_fails_fast(self, fake_engine: FakeEngine) -> None:
        with pytest.raises(TranslationError):
            await fake_engine.translate("hello", "xx", "en")
        assert fake_engine.calls == []


class TestLanguageDetection:
    """测试语言识别."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("今天天气很好", "zh"),
            ("こんにちは、世界", "ja"),
            ("東京は晴れです", "ja"),
            ("안녕하세요", "ko"),
            ("Привет, мир", "ru"),
            ("مرحبا بالعالم", "ar"),
            ("Hello world", "en"),
            ("", "en"),
            ("12345 !!!", "en"),
        ],
    )
    def test_script_heuristic(self, text: str, expected: str) -> None:
        assert detect_language(text) == expected

    async def test_falls_back_to_heuristic(self) -> None:
        """引擎识别失败时回退到字符区段猜测."""
        engine = BrokenDetectorEngine()
        service = make_service(engine)
        assert await service.detect_language("这是一段中文") == "zh"

    async def test_translate_uses_fallback_detection(self) -> None:
        engine = BrokenDetectorEngine()
        service = make_service(engine)
        result = await service.translate("这是一段中文", "en")
        assert result.text == "译:这是一段中文"


class TestEngineRegistry:
    """测试引擎注册表."""

    def test_unknown_name_falls_back_to_default(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        registry = EngineRegistry(default="fake")
        default = FakeEngine("fake")
        other = FakeEngine("other")
        registry.register(default)
        registry.register(other)

        with caplog.at_level(logging.WARNING):
            assert registry.get("missing") is default
        assert "missing" in caplog.text
        assert registry.get("other") is other
        assert registry.get(None) is default
        assert registry.names() == ["fake", "other"]

    def test_missing_default_raises(self) -> None:
        registry = EngineRegistry(default="nothing")
        with pytest.raises(LookupError):
            registry.get_default()

    def test_create_from_settings(self) -> None:
        settings = Settings(translation_engine="deepseek")
        registry = create_engine_registry(settings)
        assert set(registry.names()) == {"openai", "deepseek"}
        assert registry.get_default().name == "deepseek"


class TestTranslateItem:
    """测试条目翻译."""

    async def test_builds_translation_entry(self, fake_engine: FakeEngine) -> None:
        service = make_service(fake_engine)
        entry = await service.translate_item("Title", "Body text", "zh", "en")

        assert entry.title == "译:Title"
        assert entry.content == "译:Body text"
        assert entry.engine == "fake"
        assert entry.usage is not None
        assert entry.usage.total_tokens == 10

    async def test_without_content(self, fake_engine: FakeEngine) -> None:
        service = make_service(fake_engine)
        entry = await service.translate_item("Title", None, "zh", "en")
        assert entry.content is None
        assert fake_engine.calls == ["Title"]


def _chat_completion(content: str) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 0,
        "model": "test-model",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 7, "completion_tokens": 3, "total_tokens": 10},
    }


class TestProviderEngines:
    """测试具体引擎的请求与响应解析."""

    async def test_deepseek_retries_then_succeeds(self) -> None:
        """DeepSeek 服务端错误后按固定间隔重试."""
        requests: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            if len(requests) == 1:
                return httpx.Response(500)
            return httpx.Response(200, json=_chat_completion("你好"))

        engine = DeepSeekTranslationEngine(
            TranslationConfig(model="deepseek-chat", retry_delay=0),
            api_key="test-key",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        try:
            result = await engine.translate("Hello", "zh", "en")
        finally:
            await engine.close()

        assert result.text == "你好"
        assert result.quality == 0.9
        assert result.usage is not None
        assert result.usage.total_tokens == 10
        assert len(requests) == 2
        assert requests[0]["model"] == "deepseek-chat"
        assert requests[0]["messages"][-1]["content"] == "Hello"

    async def test_deepseek_invalid_response(self) -> None:
        engine = DeepSeekTranslationEngine(
            TranslationConfig(model="deepseek-chat", retry_count=0, retry_delay=0),
            api_key="test-key",
            client=httpx.AsyncClient(
                transport=httpx.MockTransport(
                    lambda request: httpx.Response(200, json={"choices": []})
                )
            ),
        )
        with pytest.raises(TranslationError):
            await engine.translate("Hello", "zh", "en")
        await engine.close()

    async def test_openai_engine(self) -> None:
        """OpenAI 引擎通过 SDK 调用并解析用量."""

        def handler(request: httpx.Request) -> httpx.Response:
            system_prompt = json.loads(request.content)["messages"][0]["content"]
            content = "fr" if "语言识别" in system_prompt else "Bonjour"
            return httpx.Response(200, json=_chat_completion(content))

        client = AsyncOpenAI(
            api_key="test-key",
            base_url="https://api.test/v1",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        engine = OpenAITranslationEngine(
            TranslationConfig(model="gpt-4o-mini", retry_delay=0),
            api_key="test-key",
            client=client,
        )

        result = await engine.translate("Hello", "fr", "en")
        assert result.text == "Bonjour"
        assert result.usage is not None
        assert result.usage.prompt_tokens == 7

        assert await engine.detect_language("Hello there") == "fr"
        await engine.close()
