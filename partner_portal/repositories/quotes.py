from __future__ import annotations

from partner_portal.indexes import QUOTE_INDEXES
from partner_portal.models import Quote
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository


class QuoteRepository(EntityRepository[Quote]):
    table = QUOTE_INDEXES
    model = Quote

    async def list_for_deal(
        self,
        deal_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Quote]:
        """Latest version first."""
        return await self._page_ordered(
            self._keys.deal_quotes(deal_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_partner(
        self,
        partner_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Quote]:
        return await self._page_ordered(
            self._keys.partner_quotes(partner_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_for_deal(self, deal_id: str, limit: int = 100) -> list[Quote]:
        return await self._collect_ordered(self._keys.deal_quotes(deal_id), limit)

    async def get_by_partner(self, partner_id: str, limit: int = 50) -> list[Quote]:
        return await self._collect_ordered(self._keys.partner_quotes(partner_id), limit)

    async def next_version(self, deal_id: str) -> int:
        key = self._keys.deal_quotes(deal_id)
        top = await self._kv.zrange(key, 0, 0, desc=True)
        if not top:
            return 1
        score = await self._kv.zscore(key, top[0])
        return int(score or 0) + 1
