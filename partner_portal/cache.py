from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from partner_portal.metrics import StoreMetrics

logger = logging.getLogger(__name__)


class CacheLayer:
    """JSON values with a TTL, kept in the same store as the data they summarize.

    Writers call :meth:`invalidate` for every cache key their change could
    affect; the TTL bounds staleness on paths that do not.
    """

    def __init__(self, kv: Any, *, metrics: StoreMetrics | None = None) -> None:
        self._kv = kv
        self._metrics = metrics

    def _count(self, name: str) -> None:
        if self._metrics is not None:
            self._metrics.increment(name)

    async def get_or_compute(
        self,
        key: str,
        ttl_seconds: int,
        compute: Callable[[], Awaitable[Any]],
    ) -> Any:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        raw = await self._kv.get(key)
        if raw is not None:
            try:
                value = json.loads(raw)
            except (json.JSONDecodeError, TypeError):
                logger.warning("cache_decode_failure key=%s", key)
                self._count("cache_decode_failures_total")
            else:
                self._count("cache_hits_total")
                return value
        self._count("cache_misses_total")
        value = await compute()
        await self._kv.set(key, json.dumps(value, ensure_ascii=True, sort_keys=True), ex=int(ttl_seconds))
        return value

    async def invalidate(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._kv.delete(*keys))

    async def invalidate_by_prefix(self, prefix: str) -> int:
        if not prefix:
            raise ValueError("prefix must not be empty")
        matched = await self._kv.scan_keys(prefix)
        if not matched:
            return 0
        removed = int(await self._kv.delete(*matched))
        logger.info("cache_invalidated_by_prefix prefix=%s removed=%s", prefix, removed)
        return removed
