"""抓取调度器 - 到期源发现、去重排队与并发控制."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from feedlingo.utils.clock import utcnow

logger = logging.getLogger(__name__)

# (source_id, force_refresh) -> 抓取结果
JobRunner = Callable[[int, bool], Awaitable[Any]]
# 返回源 ID 列表
SourceFinder = Callable[[], Awaitable[list[int]]]


class JobConflictError(Exception):
    """源已在队列中或正在抓取."""


@dataclass
class _Job:
    source_id: int
    force_refresh: bool
    # 手动触发的任务由调用方等待结果
    waiter: "asyncio.Future[Any] | None" = None


class IngestionScheduler:
    """
    抓取调度器.

    状态只有三部分：tick 进行中标记、运行中的源集合、先进先出的等待队列。
    同一个源同一时间最多只有一个抓取任务，所有任务（包括手动触发）共享同一个并发上限。
    """

    def __init__(
        self,
        find_due_sources: SourceFinder,
        run_job: JobRunner,
        find_active_sources: SourceFinder | None = None,
        max_concurrent_jobs: int = 5,
    ) -> None:
        self.find_due_sources = find_due_sources
        self.find_active_sources = find_active_sources or find_due_sources
        self.run_job = run_job
        self.max_concurrent_jobs = max_concurrent_jobs

        self._ticking = False
        self._running: set[int] = set()
        self._queue: deque[_Job] = deque()
        self._tasks: set[asyncio.Task[None]] = set()

        self.last_tick_at: datetime | None = None
        self.completed_jobs = 0
        self.failed_jobs = 0

    @property
    def ticking(self) -> bool:
        """是否有 tick 正在执行."""
        return self._ticking

    @property
    def running(self) -> list[int]:
        """正在抓取的源."""
        return sorted(self._running)

    @property
    def queued(self) -> list[int]:
        """排队中的源（按出队顺序）."""
        return [job.source_id for job in self._queue]

    def is_pending(self, source_id: int) -> bool:
        """源是否已在队列中或正在抓取."""
        return source_id in self._running or any(
            job.source_id == source_id for job in self._queue
        )

    async def tick(self) -> int:
        """
        执行一次调度.

        上一次 tick 未结束时直接丢弃本次 tick。

        Returns:
            本次新入队的源数量
        """
        if self._ticking:
            logger.info("上一次调度仍在进行，跳过本次调度")
            return 0

        self._ticking = True
        try:
            self.last_tick_at = utcnow()
            source_ids = await self.find_due_sources()
            enqueued = sum(1 for source_id in source_ids if self.enqueue(source_id))
        finally:
            self._ticking = False

        if enqueued:
            logger.info(f"调度: {enqueued} 个源入队，运行中 {len(self._running)}")
        return enqueued

    def enqueue(self, source_id: int, force_refresh: bool = False) -> bool:
        """源入队，已在队列中或正在运行时忽略."""
        if self.is_pending(source_id):
            return False
        self._queue.append(_Job(source_id, force_refresh))
        self._pump()
        return True

    async def trigger(self, source_id: int, force_refresh: bool = False) -> Any:
        """
        手动抓取一个源并等待结果.

        任务排在队首，有空闲名额时立即执行，否则等待正在运行的任务释放名额。

        Raises:
            JobConflictError: 源已在队列中或正在抓取
        """
        if self.is_pending(source_id):
            msg = f"源 {source_id} 已在抓取队列中"
            raise JobConflictError(msg)

        waiter: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._queue.appendleft(_Job(source_id, force_refresh, waiter))
        self._pump()
        return await waiter

    async def trigger_all(self, force_refresh: bool = False) -> list[int]:
        """所有启用的源入队，返回新入队的源 ID."""
        source_ids = await self.find_active_sources()
        return [
            source_id
            for source_id in source_ids
            if self.enqueue(source_id, force_refresh)
        ]

    async def wait_idle(self) -> None:
        """等待所有排队和运行中的任务完成."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def snapshot(self) -> dict[str, Any]:
        """调度器当前状态."""
        return {
            "ticking": self._ticking,
            "running": self.running,
            "queued": self.queued,
            "max_concurrent_jobs": self.max_concurrent_jobs,
            "last_tick_at": self.last_tick_at,
            "completed_jobs": self.completed_jobs,
            "failed_jobs": self.failed_jobs,
        }

    def _pump(self) -> None:
        """在并发上限内启动排队任务."""
        while self._queue and len(self._running) < self.max_concurrent_jobs:
            job = self._queue.popleft()
            self._running.add(job.source_id)
            task = asyncio.create_task(self._run(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def _run(self, job: _Job) -> None:
        try:
            result = await self.run_job(job.source_id, job.force_refresh)
        except Exception as e:
            self.failed_jobs += 1
            if job.waiter is None:
                logger.exception(f"源 {job.source_id} 抓取任务失败")
            elif not job.waiter.done():
                job.waiter.set_exception(e)
        else:
            self.completed_jobs += 1
            if job.waiter is not None and not job.waiter.done():
                job.waiter.set_result(result)
        finally:
            # 先释放并发名额，再拉起下一个排队任务
            self._running.discard(job.source_id)
            self._pump()
