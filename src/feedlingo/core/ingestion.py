"""抓取引擎 - 可断点续传的批量入库 + 失败条目重试."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feedlingo.config import Settings
from feedlingo.core.checkpoint import (
    CheckpointStore,
    abandon,
    advance,
    clear_failure,
    eligible_retries,
    get_abandoned,
    get_failed,
    get_marker,
    prune_abandoned,
    record_failure,
    update_completion,
)
from feedlingo.core.repository import ItemRepository, SourceRepository
from feedlingo.fetcher.extractor import ExtractionError, FullTextExtractor
from feedlingo.fetcher.feed_reader import FeedEntry, FeedReader
from feedlingo.models.checkpoint import Checkpoint, ProcessedMarker
from feedlingo.models.item import Item
from feedlingo.models.source import Source
from feedlingo.translation.service import TranslationService
from feedlingo.utils.clock import utcnow
from feedlingo.utils.html_parser import clean_html, html_to_text

logger = logging.getLogger(__name__)


class IngestionError(Exception):
    """抓取引擎错误基类."""


class SourceNotFoundError(IngestionError):
    """源不存在."""


@dataclass
class ItemCreated:
    """条目已新建入库."""

    guid: str
    item_id: int | None = None


@dataclass
class ItemSkipped:
    """条目被跳过."""

    guid: str
    reason: str  # exists | tracked | resumed


@dataclass
class ItemFailed:
    """条目处理失败，已记入 Checkpoint."""

    guid: str
    error: str


ItemOutcome = ItemCreated | ItemSkipped | ItemFailed


@dataclass
class IngestionReport:
    """一次抓取周期的结果."""

    source_id: int
    checkpoint_id: int | None = None
    total: int = 0
    created: int = 0
    skipped: int = 0
    failed: int = 0
    retried: int = 0
    completed: bool = False

    def add(self, outcome: ItemOutcome) -> None:
        """累计单个条目的结果."""
        if isinstance(outcome, ItemCreated):
            self.created += 1
        elif isinstance(outcome, ItemSkipped):
            self.skipped += 1
        else:
            self.failed += 1


def _require_id(source: Source) -> int:
    """返回已入库源的 ID."""
    if source.id is None:
        msg = f"源 {source.name} 尚未保存，无法抓取"
        raise IngestionError(msg)
    return source.id


def _marker_for(entry: FeedEntry) -> ProcessedMarker:
    return ProcessedMarker(guid=entry.guid, publish_date=entry.published_at)


class IngestionEngine:
    """
    单个源的抓取引擎.

    每个条目与其 Checkpoint 推进在同一个事务中提交；条目级失败只记入 Checkpoint，
    不会中断整批处理。Feed 下载或解析失败属于周期级错误，会更新源的健康状态后向上抛出。
    """

    def __init__(
        self,
        session: AsyncSession,
        reader: FeedReader,
        translator: TranslationService,
        extractor: FullTextExtractor | None = None,
        *,
        batch_size: int = 50,
        max_retry_count: int = 3,
        retry_cooldown: timedelta = timedelta(minutes=30),
        deactivate_threshold: int = 5,
        default_languages: Sequence[str] = ("zh",),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session = session
        self.reader = reader
        self.translator = translator
        self.extractor = extractor
        self.batch_size = batch_size
        self.max_retry_count = max_retry_count
        self.retry_cooldown = retry_cooldown
        self.deactivate_threshold = deactivate_threshold
        self.default_languages = list(default_languages)
        self.clock = clock

        self.checkpoints = CheckpointStore(session)
        self.sources = SourceRepository(session)
        self.items = ItemRepository(session)

    async def ingest(self, source: Source, force_refresh: bool = False) -> IngestionReport:
        """
        执行一次抓取周期.

        Args:
            source: 要抓取的源
            force_refresh: 丢弃未完成的进度，从头开始

        Raises:
            FeedError: Feed 下载或解析失败（已记录到源和 Checkpoint）
            IngestionError: 源尚未保存
        """
        source_id = _require_id(source)
        checkpoint = await self.checkpoints.start(source_id, force_refresh)
        report = IngestionReport(source_id=source_id, checkpoint_id=checkpoint.id)
        started_at = self.clock()

        try:
            entries = await self.reader.fetch(source.url, limit=self.batch_size)
            checkpoint.total_count = len(entries)
            report.total = len(entries)
            prune_abandoned(checkpoint, {entry.guid for entry in entries})
            await self._commit(checkpoint)

            # 失败和已放弃的条目归重试流程管理，主循环不再处理
            tracked = set(get_failed(checkpoint)) | set(get_abandoned(checkpoint))
            report.retried = await self.retry_failed(source, checkpoint, entries)

            for entry in self._pending_entries(checkpoint, entries, report):
                if entry.guid in tracked:
                    report.add(ItemSkipped(entry.guid, "tracked"))
                    continue
                report.add(await self._process_entry(source, checkpoint, entry))

            update_completion(checkpoint, reached_end=True)
            report.completed = checkpoint.is_completed
            self._update_health(source, checkpoint, started_at)
            await self._commit(checkpoint, source)
        except Exception as e:
            logger.exception(f"源 {source.name} 抓取失败")
            await self._record_fatal(source, checkpoint, e, started_at)
            raise

        logger.info(
            f"源 {source.name} 抓取完成: 共 {report.total} 条, 新增 {report.created}, "
            f"跳过 {report.skipped}, 失败 {report.failed}, 重试成功 {report.retried}"
        )
        return report

    async def retry_failed(
        self,
        source: Source,
        checkpoint: Checkpoint,
        entries: Sequence[FeedEntry] | None = None,
    ) -> int:
        """
        重试 Checkpoint 中的失败条目.

        只处理重试次数未达上限且已过冷却期的条目；Feed 中已不存在的条目直接移除；
        重试次数耗尽的条目移入放弃集合。

        Returns:
            重试成功的条目数
        """
        now = self.clock()
        eligible = eligible_retries(
            checkpoint, now, self.max_retry_count, self.retry_cooldown
        )
        if not eligible:
            return 0

        if entries is None:
            entries = await self.reader.fetch(source.url, limit=self.batch_size)
        by_guid = {entry.guid: entry for entry in entries}

        recovered = 0
        for failed in eligible:
            entry = by_guid.get(failed.guid)
            if entry is None:
                logger.info(f"失败条目已不在 Feed 中，移除: {failed.guid}")
                clear_failure(checkpoint, failed.guid)
                await self._commit(checkpoint)
                continue

            outcome = await self._retry_entry(source, checkpoint, entry, now)
            if isinstance(outcome, ItemFailed):
                continue
            recovered += 1

        return recovered

    def _pending_entries(
        self,
        checkpoint: Checkpoint,
        entries: Sequence[FeedEntry],
        report: IngestionReport,
    ) -> Sequence[FeedEntry]:
        """跳过续传位置及其之前的条目."""
        marker = get_marker(checkpoint)
        if marker is None:
            return entries

        guids = [entry.guid for entry in entries]
        if marker.guid not in guids:
            # 续传位置已不在 Feed 中，依靠 guid 去重从头处理
            return entries

        start = guids.index(marker.guid) + 1
        for entry in entries[:start]:
            report.add(ItemSkipped(entry.guid, "resumed"))
        return entries[start:]

    async def _process_entry(
        self, source: Source, checkpoint: Checkpoint, entry: FeedEntry
    ) -> ItemOutcome:
        """处理单个条目：去重、构建、翻译并与 Checkpoint 一起提交."""
        marker = _marker_for(entry)

        existing = await self.items.find_by_guid(entry.guid)
        if existing is not None:
            checkpoint.processed_count += 1
            advance(checkpoint, marker)
            await self._commit(checkpoint)
            return ItemSkipped(entry.guid, "exists")

        try:
            item = await self._build_item(source, entry)
        except Exception as e:
            return await self._fail_entry(checkpoint, entry, e, marker)

        await self.items.save(item)
        checkpoint.processed_count += 1
        advance(checkpoint, marker)
        try:
            await self._commit(checkpoint)
        except SQLAlchemyError as e:
            await self._restore(source, checkpoint)
            return await self._fail_entry(checkpoint, entry, e, marker)

        return ItemCreated(entry.guid, item.id)

    async def _retry_entry(
        self,
        source: Source,
        checkpoint: Checkpoint,
        entry: FeedEntry,
        now: datetime,
    ) -> ItemOutcome:
        """重试单个失败条目."""
        existing = await self.items.find_by_guid(entry.guid)
        if existing is not None:
            clear_failure(checkpoint, entry.guid)
            checkpoint.processed_count += 1
            await self._commit(checkpoint)
            return ItemSkipped(entry.guid, "exists")

        try:
            item = await self._build_item(source, entry)
            await self.items.save(item)
            clear_failure(checkpoint, entry.guid)
            checkpoint.processed_count += 1
            await self._commit(checkpoint)
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                await self._restore(source, checkpoint)
            failed = record_failure(checkpoint, entry.guid, str(e), now)
            logger.warning(
                f"条目重试失败 ({failed.retry_count}/{self.max_retry_count}): "
                f"{entry.guid}: {e}"
            )
            if failed.retry_count >= self.max_retry_count:
                logger.warning(f"条目重试次数耗尽，放弃: {entry.guid}")
                abandon(checkpoint, entry.guid)
            await self._commit(checkpoint)
            return ItemFailed(entry.guid, str(e))

        logger.info(f"条目重试成功: {entry.guid}")
        return ItemCreated(entry.guid, item.id)

    async def _fail_entry(
        self,
        checkpoint: Checkpoint,
        entry: FeedEntry,
        error: Exception,
        marker: ProcessedMarker,
    ) -> ItemFailed:
        """记录条目失败；续传位置照常推进，处理数不增加."""
        logger.warning(f"条目处理失败: {entry.guid}: {error}")
        record_failure(checkpoint, entry.guid, str(error), self.clock())
        advance(checkpoint, marker)
        await self._commit(checkpoint)
        return ItemFailed(entry.guid, str(error))

    async def _build_item(self, source: Source, entry: FeedEntry) -> Item:
        """规范化 Feed 条目，必要时抓取全文，并翻译为目标语言."""
        source_id = _require_id(source)
        content_html = entry.content or entry.description
        content = html_to_text(content_html)

        if source.content_selector and entry.link and self.extractor is not None:
            try:
                result = await self.extractor.extract(entry.link, source.content_selector)
            except ExtractionError as e:
                logger.warning(f"全文抓取失败，使用 Feed 内容: {e}")
            else:
                if result.success and result.content:
                    content = result.content

        item = Item(
            source_id=source_id,
            guid=entry.guid,
            title=clean_html(entry.title) or "无标题",
            description=clean_html(entry.description) or None,
            content=content or None,
            content_html=content_html,
            link=entry.link,
            author=entry.author,
            published_at=entry.published_at,
            categories=list(entry.categories),
        )

        for language in source.target_languages or self.default_languages:
            translation = await self.translator.translate_item(
                item.title,
                item.content,
                language,
                engine=source.translation_engine,
            )
            item.set_translation(language, translation)

        return item

    def _update_health(
        self, source: Source, checkpoint: Checkpoint, started_at: datetime
    ) -> None:
        """周期正常结束后更新源的健康状态."""
        source.last_fetch_time = started_at
        source.last_attempt_time = started_at

        failed_count = len(checkpoint.failed_items or {})
        if failed_count:
            # 部分失败不计入连续错误
            source.last_error = f"{failed_count} 个条目处理失败"
        else:
            source.error_count = 0
            source.last_error = None

    async def _record_fatal(
        self,
        source: Source,
        checkpoint: Checkpoint,
        error: Exception,
        started_at: datetime,
    ) -> None:
        """周期级失败：增加错误计数，达到阈值时停用源."""
        await self._restore(source, checkpoint)

        source.error_count += 1
        source.last_error = str(error)
        source.last_attempt_time = started_at
        if source.error_count >= self.deactivate_threshold:
            source.active = False
            logger.warning(
                f"源 {source.name} 连续失败 {source.error_count} 次，已停用"
            )

        checkpoint.last_error = str(error)
        await self._commit(checkpoint, source)

    async def _restore(self, source: Source, checkpoint: Checkpoint) -> None:
        """回滚未提交的修改，并重新加载源和 Checkpoint."""
        await self.session.rollback()
        await self.session.refresh(source)
        await self.session.refresh(checkpoint)

    async def _commit(self, checkpoint: Checkpoint, source: Source | None = None) -> None:
        """提交 Checkpoint（以及同一事务中的其他修改）."""
        await self.checkpoints.save(checkpoint)
        if source is not None:
            await self.sources.save_source(source)
        await self.session.commit()


class IngestionRunner:
    """按源 ID 执行抓取周期，每次使用独立会话."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        reader: FeedReader,
        translator: TranslationService,
        extractor: FullTextExtractor | None,
        settings: Settings,
    ) -> None:
        self.session_factory = session_factory
        self.reader = reader
        self.translator = translator
        self.extractor = extractor
        self.settings = settings

    def create_engine(self, session: AsyncSession) -> IngestionEngine:
        """按配置创建抓取引擎."""
        return IngestionEngine(
            session,
            self.reader,
            self.translator,
            self.extractor,
            batch_size=self.settings.fetch_batch_size,
            max_retry_count=self.settings.max_retry_count,
            retry_cooldown=timedelta(minutes=self.settings.retry_cooldown_minutes),
            deactivate_threshold=self.settings.deactivate_threshold,
            default_languages=self.settings.target_languages,
        )

    async def __call__(self, source_id: int, force_refresh: bool = False) -> IngestionReport:
        async with self.session_factory() as session:
            source = await SourceRepository(session).get_source(source_id)
            if source is None:
                msg = f"源不存在: {source_id}"
                raise SourceNotFoundError(msg)
            return await self.create_engine(session).ingest(source, force_refresh)
