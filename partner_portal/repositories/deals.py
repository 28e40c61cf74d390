from __future__ import annotations

from partner_portal.indexes import DEAL_INDEXES
from partner_portal.models import Deal
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository

PENDING_APPROVAL = "pending_approval"
APPROVED = "approved"
IN_PROGRESS = "in_progress"
CLOSED_WON = "closed_won"
CLOSED_LOST = "closed_lost"
REJECTED = "rejected"

DEAL_STATUSES = (PENDING_APPROVAL, APPROVED, IN_PROGRESS, CLOSED_WON, CLOSED_LOST, REJECTED)
CLOSED_STATUSES = frozenset({CLOSED_WON, CLOSED_LOST, REJECTED})


class DealRepository(EntityRepository[Deal]):
    table = DEAL_INDEXES
    model = Deal

    async def list_all(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Deal]:
        return await self._page_ordered(self._keys.all_deals(), cursor=cursor, limit=limit, with_total=with_total)

    async def list_by_partner(
        self,
        partner_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Deal]:
        return await self._page_ordered(
            self._keys.partner_deals(partner_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_status(
        self,
        status: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Deal]:
        return await self._page_set(
            self._keys.deals_by_status(status), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_stage(
        self,
        stage: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Deal]:
        return await self._page_set(
            self._keys.deals_by_stage(stage), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_all(self, limit: int = 100) -> list[Deal]:
        return await self._collect_ordered(self._keys.all_deals(), limit)

    async def get_by_partner(self, partner_id: str, limit: int = 50) -> list[Deal]:
        return await self._collect_ordered(self._keys.partner_deals(partner_id), limit)

    async def get_by_status(self, status: str, limit: int = 100) -> list[Deal]:
        return await self._collect_set(self._keys.deals_by_status(status), limit)

    async def get_by_stage(self, stage: str, limit: int = 100) -> list[Deal]:
        return await self._collect_set(self._keys.deals_by_stage(stage), limit)

    async def domain_conflicts(self, domain: str, *, exclude_deal_id: str | None = None) -> list[str]:
        """Identifiers of other deals registered for the same company domain."""
        if not domain.strip():
            return []
        ids = await self._kv.smembers(self._keys.deals_by_domain(domain))
        return sorted(deal_id for deal_id in ids if deal_id != exclude_deal_id)

    async def transition(self, deal_id: str, status: str) -> Deal:
        if status not in DEAL_STATUSES:
            raise ValueError(f"unknown deal status: {status}")
        return await self.update(deal_id, status=status)
