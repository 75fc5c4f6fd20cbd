"""客户端响应缓存

按 "接口路径 + 参数" 缓存 GET 响应，写操作后按资源前缀整体失效。
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from taskweave.common.config import settings
from taskweave.common.serialization import to_json


@dataclass
class CacheConfig:
    """缓存配置"""

    default_ttl: float = 300
    max_size: int = 500

    @classmethod
    def from_settings(cls):
        return cls(default_ttl=settings.RESPONSE_CACHE_TTL)


class ResponseCache:
    """TTL 响应缓存"""

    def __init__(
        self,
        config: CacheConfig | None = None,
        name: str = "api",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig.from_settings()
        self.name = name
        self._clock = clock
        self._items: dict[str, dict[str, Any]] = {}
        self._stats = {"hits": 0, "misses": 0, "sets": 0, "invalidations": 0}

    @staticmethod
    def make_key(endpoint: str, params: dict[str, Any] | None = None) -> str:
        """生成缓存键：路径 + 排序后的参数"""
        if not params:
            return endpoint
        return f"{endpoint}?{to_json(params, sort_keys=True)}"

    def get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any | None:
        key = self.make_key(endpoint, params)
        item = self._items.get(key)
        if item is None:
            self._stats["misses"] += 1
            return None

        if self._clock() >= item["expires_at"]:
            del self._items[key]
            self._stats["misses"] += 1
            return None

        self._stats["hits"] += 1
        logger.debug(f"缓存 '{self.name}' 命中: {key}")
        return item["value"]

    def set(
        self,
        endpoint: str,
        value: Any,
        params: dict[str, Any] | None = None,
        ttl: float | None = None,
    ) -> None:
        if ttl is None:
            ttl = self.config.default_ttl
        self._evict()

        now = self._clock()
        self._items[self.make_key(endpoint, params)] = {
            "value": value,
            "created_at": now,
            "expires_at": now + ttl,
        }
        self._stats["sets"] += 1

    def invalidate(self, prefix: str) -> int:
        """清除指定前缀下的全部键，返回清除数量"""
        to_delete = [k for k in self._items if k.startswith(prefix)]
        for k in to_delete:
            del self._items[k]
        if to_delete:
            self._stats["invalidations"] += 1
            logger.debug(f"缓存 '{self.name}' 前缀已清除: {prefix} ({len(to_delete)} items)")
        return len(to_delete)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def get_stats(self) -> dict[str, Any]:
        total = self._stats["hits"] + self._stats["misses"]
        hit_rate = (self._stats["hits"] / total * 100) if total > 0 else 0
        return {
            "name": self.name,
            **self._stats,
            "hit_rate": round(hit_rate, 2),
            "items": len(self._items),
        }

    def _evict(self) -> None:
        if len(self._items) < self.config.max_size:
            return

        now = self._clock()
        for key in [k for k, item in self._items.items() if now >= item["expires_at"]]:
            del self._items[key]

        if len(self._items) >= self.config.max_size:
            oldest = sorted(self._items.items(), key=lambda x: x[1]["created_at"])
            for key, _ in oldest[: len(self._items) - self.config.max_size + 1]:
                del self._items[key]
