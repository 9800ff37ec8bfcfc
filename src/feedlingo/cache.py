"""进程内键值缓存（带逐键 TTL）."""

import math
import time
from collections.abc import Callable
from typing import Any

from cachetools import TLRUCache


def _time_to_use(_key: str, entry: tuple[Any, float | None], now: float) -> float:
    """计算条目过期时间，ttl 为空时永不过期."""
    ttl = entry[1]
    return now + ttl if ttl is not None else math.inf


class KeyValueCache:
    """
    键值缓存.

    接口为异步形式，以便替换为外部缓存服务；当前实现基于 cachetools.TLRUCache，
    每个键可以有独立的过期时间。
    """

    def __init__(
        self,
        maxsize: int = 4096,
        default_ttl: float | None = None,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._store: TLRUCache[str, tuple[Any, float | None]] = TLRUCache(
            maxsize=maxsize, ttu=_time_to_use, timer=timer
        )

    async def get(self, key: str) -> Any | None:
        """读取缓存值，不存在或已过期时返回 None."""
        entry = self._store.get(key)
        if entry is None:
            return None
        return entry[0]

    async def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """写入缓存值，ttl 单位为秒."""
        self._store[key] = (value, ttl if ttl is not None else self.default_ttl)

    async def delete(self, key: str) -> None:
        """删除缓存值."""
        self._store.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        """列出未过期的键，可按前缀过滤."""
        self._store.expire()
        return [key for key in list(self._store) if key.startswith(prefix)]

    async def clear(self, prefix: str = "") -> int:
        """删除匹配前缀的所有键，返回删除数量."""
        keys = await self.keys(prefix)
        for key in keys:
            self._store.pop(key, None)
        return len(keys)

    def __len__(self) -> int:
        return len(self._store)
