"""测试配置和 fixtures."""

import asyncio
from collections.abc import AsyncGenerator, Sequence
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from feedlingo.cache import KeyValueCache
from feedlingo.fetcher.extractor import ExtractionError, FullTextResult
from feedlingo.fetcher.feed_reader import FeedEntry, FeedFetchError
from feedlingo.models.database import create_engine
from feedlingo.models.item import TranslationUsage
from feedlingo.models.source import Source
from feedlingo.translation.base import TranslationConfig, TranslationEngine
from feedlingo.translation.cache import TranslationCache
from feedlingo.translation.factory import EngineRegistry
from feedlingo.translation.limiter import RateLimiter
from feedlingo.translation.service import TranslationService

START_TIME = datetime(2026, 10, 1, 8, 0, 0)


class FakeClock:
    """可手动推进的时钟."""

    def __init__(self, now: datetime = START_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeEngine(TranslationEngine):
    """测试用翻译引擎：译文为 "译:" 前缀加原文."""

    def __init__(
        self,
        name: str = "fake",
        fail_on: Sequence[str] = (),
        delay: float = 0.0,
        prefix: str = "译:",
    ) -> None:
        super().__init__(TranslationConfig(model="fake-model", retry_count=2, retry_delay=0))
        self.name = name
        self.fail_on = set(fail_on)
        self.delay = delay
        self.prefix = prefix
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak = 0

    def calls_for(self, text: str) -> int:
        return sum(1 for call in self.calls if call == text)

    async def detect_language(self, text: str) -> str:
        return "en"

    async def _complete(
        self, messages: list[dict[str, str]], config: TranslationConfig
    ) -> tuple[str, TranslationUsage]:
        text = messages[-1]["content"]
        self.calls.append(text)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if any(marker in text for marker in self.fail_on):
                msg = f"后端拒绝翻译: {text}"
                raise RuntimeError(msg)
            return f"{self.prefix}{text}", TranslationUsage(
                model=config.model, prompt_tokens=2, completion_tokens=3, total_tokens=5
            )
        finally:
            self.in_flight -= 1


class FakeReader:
    """测试用 Feed 读取器."""

    def __init__(self, entries: Sequence[FeedEntry] = ()) -> None:
        self.entries = list(entries)
        self.error: Exception | None = None
        self.calls = 0

    async def fetch(self, url: str, limit: int | None = None) -> list[FeedEntry]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        entries = list(self.entries)
        return entries[:limit] if limit is not None else entries

    def fail(self, message: str = "连接被拒绝") -> None:
        self.error = FeedFetchError(message)

    async def close(self) -> None:
        return None


class FakeExtractor:
    """测试用全文提取器."""

    def __init__(self, content: str | None = None, error: str | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[tuple[str, str | None]] = []

    async def extract(self, url: str, selector: str | None = None) -> FullTextResult:
        self.calls.append((url, selector))
        if self.error:
            raise ExtractionError(self.error)
        if self.content is None:
            return FullTextResult(success=False, error="无正文")
        return FullTextResult(
            success=True,
            content=self.content,
            extractor="selector",
            word_count=len(self.content),
        )


def make_entry(n: int) -> FeedEntry:
    """构造第 n 个 Feed 条目."""
    return FeedEntry(
        guid=f"guid-{n}",
        title=f"Item {n}",
        link=f"https://example.com/items/{n}",
        description=f"<p>Summary {n}</p>",
        content=f"<p>Content {n}</p>",
        author="Alice",
        published_at=datetime(2026, 9, n, 12, 0, 0),
        categories=["news"],
    )


def make_service(
    engine: TranslationEngine, max_concurrent: int = 5, store: KeyValueCache | None = None
) -> TranslationService:
    """用单个引擎构造翻译服务."""
    registry = EngineRegistry(default=engine.name)
    registry.register(engine)
    return TranslationService(
        registry=registry,
        limiter=RateLimiter(max_concurrent),
        cache=TranslationCache(store or KeyValueCache()),
    )


@pytest.fixture
def clock() -> FakeClock:
    """测试时钟."""
    return FakeClock()


@pytest.fixture
def fake_engine() -> FakeEngine:
    """测试翻译引擎."""
    return FakeEngine()


@pytest_asyncio.fixture
async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """创建测试用的内存数据库会话."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """基于临时文件数据库的会话工厂（多个会话共享数据）."""
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def sample_source(async_session: AsyncSession) -> Source:
    """创建测试用的源."""
    source = Source(
        name="Test Source",
        url="https://example.com/feed.xml",
        target_languages=["zh"],
    )
    async_session.add(source)
    await async_session.commit()
    await async_session.refresh(source)
    return source
