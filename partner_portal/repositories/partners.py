from __future__ import annotations

from partner_portal.indexes import PARTNER_INDEXES
from partner_portal.models import Partner, utc_now_iso
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository

SUSPENDED = "suspended"
ACTIVE = "active"


class PartnerRepository(EntityRepository[Partner]):
    table = PARTNER_INDEXES
    model = Partner

    async def list_all(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Partner]:
        """Newest partners first."""
        return await self._page_ordered(self._keys.all_partners(), cursor=cursor, limit=limit, with_total=with_total)

    async def list_by_tier(
        self,
        tier: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Partner]:
        """Highest rating first."""
        return await self._page_ordered(
            self._keys.partners_by_tier(tier), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_status(
        self,
        status: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Partner]:
        return await self._page_set(
            self._keys.partners_by_status(status), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_country(
        self,
        country: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Partner]:
        return await self._page_set(
            self._keys.partners_by_country(country), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_all(self, limit: int = 100) -> list[Partner]:
        return await self._collect_ordered(self._keys.all_partners(), limit)

    async def get_by_tier(self, tier: str, limit: int = 100) -> list[Partner]:
        return await self._collect_ordered(self._keys.partners_by_tier(tier), limit)

    async def get_by_status(self, status: str, limit: int = 100) -> list[Partner]:
        return await self._collect_set(self._keys.partners_by_status(status), limit)

    async def get_by_country(self, country: str, limit: int = 100) -> list[Partner]:
        return await self._collect_set(self._keys.partners_by_country(country), limit)

    async def search(self, query: str, *, limit: int = 10, scan_limit: int = 1000) -> list[Partner]:
        """Case-insensitive substring match over the newest ``scan_limit`` partners."""
        needle = query.strip().lower()
        if not needle:
            return []
        matches: list[Partner] = []
        for partner in await self.get_all(scan_limit):
            haystack = " ".join(
                value
                for value in (
                    partner.company_name,
                    partner.contact_name,
                    partner.contact_email,
                    partner.country or "",
                    partner.name,
                    partner.email,
                )
                if value
            ).lower()
            if needle in haystack:
                matches.append(partner)
                if len(matches) >= limit:
                    break
        return matches

    async def suspend(self, partner_id: str, *, suspended_by: str, reason: str) -> Partner:
        return await self.update(
            partner_id,
            status=SUSPENDED,
            suspended_at=utc_now_iso(),
            suspended_by=suspended_by,
            suspended_reason=reason,
        )

    async def reactivate(self, partner_id: str) -> Partner:
        return await self.update(
            partner_id,
            status=ACTIVE,
            suspended_at=None,
            suspended_by=None,
            suspended_reason=None,
        )
