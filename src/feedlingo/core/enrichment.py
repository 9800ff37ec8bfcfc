"""已入库条目的按需翻译."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from feedlingo.core.repository import ItemRepository
from feedlingo.models.item import TranslationEntry
from feedlingo.translation.base import TranslationError
from feedlingo.translation.service import TranslationService

logger = logging.getLogger(__name__)


class ItemNotFoundError(Exception):
    """条目不存在."""


@dataclass
class ItemTranslationOutcome:
    """批量翻译中单个条目的结果."""

    item_id: int
    success: bool
    skipped: bool = False
    error: str | None = None


class ItemTranslator:
    """
    为已入库的条目补充或重新生成翻译.

    抓取时按源配置的目标语言翻译；这里用于追加新语言，
    或在 force=True 时用另一个引擎覆盖已有译文。
    """

    def __init__(self, session: AsyncSession, translator: TranslationService) -> None:
        self.session = session
        self.translator = translator
        self.items = ItemRepository(session)

    async def translate(
        self,
        item_id: int,
        target: str,
        engine: str | None = None,
        force: bool = False,
    ) -> tuple[TranslationEntry, bool]:
        """
        翻译一个条目.

        Returns:
            (翻译记录, 是否新生成)；已有该语言译文且未强制时返回已有记录

        Raises:
            ItemNotFoundError: 条目不存在
            TranslationError: 翻译失败（条目不做修改）
        """
        item = await self.items.get(item_id)
        if item is None:
            msg = f"条目不存在: {item_id}"
            raise ItemNotFoundError(msg)

        existing = item.get_translations().get(target)
        if existing is not None and not force:
            return existing, False

        entry = await self.translator.translate_item(
            item.title, item.content, target, engine=engine
        )
        item.set_translation(target, entry)
        await self.items.save(item)
        await self.session.commit()

        logger.info(f"条目 {item_id} 已翻译为 {target} ({entry.engine})")
        return entry, True

    async def translate_many(
        self,
        item_ids: Sequence[int],
        target: str,
        engine: str | None = None,
        force: bool = False,
    ) -> list[ItemTranslationOutcome]:
        """逐个翻译多个条目，单个失败不影响其他条目."""
        outcomes: list[ItemTranslationOutcome] = []
        for item_id in item_ids:
            try:
                _, created = await self.translate(item_id, target, engine, force)
            except (ItemNotFoundError, TranslationError) as e:
                logger.warning(f"条目 {item_id} 翻译失败: {e}")
                outcomes.append(ItemTranslationOutcome(item_id, success=False, error=str(e)))
                continue
            outcomes.append(ItemTranslationOutcome(item_id, success=True, skipped=not created))
        return outcomes
