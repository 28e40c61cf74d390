from __future__ import annotations

from partner_portal.indexes import USER_INDEXES
from partner_portal.models import User
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository


class UserRepository(EntityRepository[User]):
    table = USER_INDEXES
    model = User

    async def get_by_email(self, email: str) -> User | None:
        if not email.strip():
            return None
        user_id = await self._kv.get(self._keys.user_by_email(email))
        if not user_id:
            return None
        return await self.get(user_id)

    async def list_by_partner(
        self,
        partner_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[User]:
        return await self._page_set(
            self._keys.partner_users(partner_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_by_partner(self, partner_id: str, limit: int = 100) -> list[User]:
        return await self._collect_set(self._keys.partner_users(partner_id), limit)
