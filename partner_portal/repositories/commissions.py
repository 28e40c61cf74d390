from __future__ import annotations

from partner_portal.indexes import COMMISSION_INDEXES
from partner_portal.models import Commission
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository


class CommissionRepository(EntityRepository[Commission]):
    table = COMMISSION_INDEXES
    model = Commission

    async def list_by_partner(
        self,
        partner_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Commission]:
        return await self._page_set(
            self._keys.partner_commissions(partner_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_status(
        self,
        status: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Commission]:
        return await self._page_set(
            self._keys.commissions_by_status(status), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_by_partner(self, partner_id: str, limit: int = 100) -> list[Commission]:
        return await self._collect_set(self._keys.partner_commissions(partner_id), limit)

    async def get_for_deal(self, deal_id: str) -> Commission | None:
        commission_id = await self._kv.get(self._keys.deal_commission(deal_id))
        if not commission_id:
            return None
        return await self.get(commission_id)
