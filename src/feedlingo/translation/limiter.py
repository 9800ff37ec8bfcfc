"""翻译调用并发限流."""

import asyncio
from types import TracebackType


class RateLimiter:
    """
    全局共享的并发上限.

    基于 asyncio.Semaphore，等待者按先进先出获得许可；记录当前和历史最高并发数。
    """

    def __init__(self, max_concurrent: int = 5) -> None:
        if max_concurrent < 1:
            msg = f"max_concurrent 必须大于 0: {max_concurrent}"
            raise ValueError(msg)
        self.max_concurrent = max_concurrent
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self.in_flight = 0
        self.peak = 0

    async def __aenter__(self) -> "RateLimiter":
        await self._semaphore.acquire()
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.in_flight -= 1
        self._semaphore.release()
