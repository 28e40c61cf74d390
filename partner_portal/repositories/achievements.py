from __future__ import annotations

import logging

from partner_portal.context import StoreContext
from partner_portal.models import utc_now_iso

logger = logging.getLogger(__name__)


class AchievementRepository:
    """Completed achievements per partner: one hash of achievement id to completion time."""

    def __init__(self, ctx: StoreContext) -> None:
        self._ctx = ctx

    async def record(self, partner_id: str, achievement_id: str, completed_at: str | None = None) -> str:
        if not achievement_id.strip():
            raise ValueError("achievement id must not be empty")
        completed_at = completed_at or utc_now_iso()
        await self._ctx.kv.hset(self._ctx.keys.partner_achievements(partner_id), {achievement_id: completed_at})
        logger.info("achievement_recorded partner_id=%s achievement_id=%s", partner_id, achievement_id)
        return completed_at

    async def get(self, partner_id: str) -> dict[str, str]:
        return await self._ctx.kv.hgetall(self._ctx.keys.partner_achievements(partner_id))

    async def remove(self, partner_id: str, achievement_id: str) -> bool:
        removed = await self._ctx.kv.hdel(self._ctx.keys.partner_achievements(partner_id), achievement_id)
        return removed > 0
