"""Cursor pagination over index structures.

Ordered indexes page by numeric offset; a page is the slice
``[cursor, cursor + limit)`` and ``has_more`` is decided on the raw identifier
count, before stale references are filtered out. Membership indexes page with
the store's scan cursor and end when the store hands back cursor ``0``. Either
way a page may hold fewer than ``limit`` items while ``has_more`` is true.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from partner_portal.metrics import StoreMetrics

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

T = TypeVar("T")

Resolver = Callable[[str], Awaitable["T | None"]]


@dataclass(frozen=True)
class Page(Generic[T]):
    items: list[T]
    next_cursor: int | None
    has_more: bool
    total: int | None = None

    def to_dict(self, serialize: Callable[[T], Any] | None = None) -> dict[str, Any]:
        items = [serialize(item) for item in self.items] if serialize else list(self.items)
        out: dict[str, Any] = {
            "items": items,
            "next_cursor": self.next_cursor,
            "has_more": self.has_more,
        }
        if self.total is not None:
            out["total"] = self.total
        return out


class Paginator:
    def __init__(
        self,
        kv: Any,
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
        metrics: StoreMetrics | None = None,
    ) -> None:
        self._kv = kv
        self.max_page_size = max(1, int(max_page_size))
        self.default_page_size = min(max(1, int(default_page_size)), self.max_page_size)
        self._metrics = metrics

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None or limit <= 0:
            return self.default_page_size
        return min(int(limit), self.max_page_size)

    async def resolve(self, key: str, ids: list[str], resolver: Resolver) -> list[Any]:
        resolved = await asyncio.gather(*(resolver(entity_id) for entity_id in ids))
        items = [item for item in resolved if item is not None]
        stale = len(ids) - len(items)
        if stale:
            logger.debug("stale_index_references key=%s count=%s", key, stale)
            if self._metrics is not None:
                self._metrics.increment("stale_index_references_total", stale)
        return items

    async def paginate_ordered(
        self,
        key: str,
        resolver: Resolver,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        descending: bool = True,
        with_total: bool = False,
    ) -> Page[Any]:
        offset = max(0, int(cursor or 0))
        size = self.clamp_limit(limit)
        ids = await self._kv.zrange(key, offset, offset + size - 1, desc=descending)
        items = await self.resolve(key, ids, resolver)
        has_more = len(ids) == size
        total = await self._kv.zcard(key) if with_total else None
        return Page(
            items=items,
            next_cursor=offset + size if has_more else None,
            has_more=has_more,
            total=total,
        )

    async def paginate_set(
        self,
        key: str,
        resolver: Resolver,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Any]:
        """One SSCAN step over a set index.

        ``limit`` is passed as the SSCAN ``COUNT``, which Redis treats as a hint:
        small sets come back whole in one call, so a page can hold more than
        ``limit`` items. Every id of the step is kept, since the returned cursor
        has already moved past them.
        """
        size = self.clamp_limit(limit)
        next_cursor, ids = await self._kv.sscan(key, cursor=int(cursor or 0), count=size)
        items = await self.resolve(key, list(ids), resolver)
        has_more = int(next_cursor) != 0
        total = await self._kv.scard(key) if with_total else None
        return Page(
            items=items,
            next_cursor=int(next_cursor) if has_more else None,
            has_more=has_more,
            total=total,
        )
