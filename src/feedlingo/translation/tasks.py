"""异步翻译任务."""

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel
from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt, wait_exponential

from feedlingo.cache import KeyValueCache
from feedlingo.translation.service import TranslationService
from feedlingo.utils.clock import utcnow

logger = logging.getLogger(__name__)

TaskStatus = Literal["queued", "processing", "completed", "failed"]


class TranslationTask(BaseModel):
    """翻译任务状态."""

    task_id: str
    status: TaskStatus = "queued"
    progress: int = 0
    target: str
    source: str | None = None
    engine: str | None = None
    result: str | None = None
    error: str | None = None
    created_at: datetime
    updated_at: datetime


def task_key(task_id: str) -> str:
    """任务在缓存中的键."""
    return f"translation_task:{task_id}"


class TranslationTaskManager:
    """
    后台翻译任务管理.

    任务状态保存在键值缓存中，保留期过后自动失效；每个任务最多尝试 max_attempts 次。
    """

    def __init__(
        self,
        service: TranslationService,
        store: KeyValueCache,
        retention_seconds: float = 24 * 60 * 60,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
    ) -> None:
        self.service = service
        self.store = store
        self.retention_seconds = retention_seconds
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        # 持有后台任务引用，避免被垃圾回收
        self._background: set[asyncio.Task[None]] = set()

    async def submit(
        self,
        text: str,
        target: str,
        source: str | None = None,
        engine: str | None = None,
    ) -> TranslationTask:
        """提交翻译任务，立即返回排队状态."""
        now = utcnow()
        task = TranslationTask(
            task_id=uuid.uuid4().hex,
            target=target,
            source=source,
            engine=engine,
            created_at=now,
            updated_at=now,
        )
        await self._save(task)

        job = asyncio.create_task(self._run(task.model_copy(), text))
        self._background.add(job)
        job.add_done_callback(self._background.discard)

        logger.info(f"翻译任务已提交: {task.task_id} -> {target}")
        return task

    async def get_status(self, task_id: str) -> TranslationTask | None:
        """查询任务状态，不存在或已过期时返回 None."""
        data = await self.store.get(task_key(task_id))
        if data is None:
            return None
        return TranslationTask.model_validate(data)

    async def drain(self) -> None:
        """等待所有进行中的任务结束."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _save(self, task: TranslationTask) -> None:
        task.updated_at = utcnow()
        await self.store.set(
            task_key(task.task_id), task.model_dump(mode="json"), self.retention_seconds
        )

    async def _run(self, task: TranslationTask, text: str) -> None:
        """后台执行翻译任务."""
        task.status = "processing"
        task.progress = 25
        await self._save(task)

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=wait_exponential(multiplier=self.retry_delay, max=30),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    result = await self.service.translate(
                        text, task.target, task.source, task.engine
                    )
                    task.progress = 75
                    await self._save(task)
        except Exception as e:
            logger.exception(f"翻译任务失败: {task.task_id}")
            task.status = "failed"
            task.error = str(e)
            await self._save(task)
            return

        task.status = "completed"
        task.progress = 100
        task.result = result.text
        await self._save(task)
        logger.info(f"翻译任务完成: {task.task_id}")
