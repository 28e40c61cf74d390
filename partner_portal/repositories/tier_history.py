from __future__ import annotations

import json
import logging

from partner_portal.batch import WriteBatch
from partner_portal.context import StoreContext
from partner_portal.errors import PreconditionFailed
from partner_portal.models import Partner, TierChange, timestamp_score, utc_now_iso
from partner_portal.repositories.partners import PartnerRepository

logger = logging.getLogger(__name__)

TIER_CHANGE_REASONS = ("achievement", "annual_renewal", "manual")


class TierHistoryRepository:
    """Append-only tier changes per partner, newest first.

    The partner's own tier goes through :class:`PartnerRepository` so its tier
    index moves with it; the history entry is a JSON member of a sorted set
    scored by the change time.
    """

    def __init__(self, ctx: StoreContext, partners: PartnerRepository) -> None:
        self._ctx = ctx
        self._partners = partners

    async def record_change(self, partner_id: str, tier: str, *, reason: str = "manual") -> Partner:
        if reason not in TIER_CHANGE_REASONS:
            raise ValueError(f"unknown tier change reason: {reason}")
        current = await self._partners.get(partner_id)
        if current is None:
            raise PreconditionFailed(entity_type="partner", entity_id=partner_id)
        updated = await self._partners.update(partner_id, tier=tier)
        entry = TierChange(
            tier=tier,
            changed_at=updated.updated_at or utc_now_iso(),
            reason=reason,
            previous_tier=current.tier if current.tier != tier else None,
        )
        batch = WriteBatch(self._ctx.kv, entity_type="tier_history", entity_id=partner_id, metrics=self._ctx.metrics)
        batch.zadd(
            self._ctx.keys.partner_tier_history(partner_id),
            json.dumps(entry.model_dump(mode="json"), ensure_ascii=True, sort_keys=True),
            timestamp_score(entry.changed_at),
        )
        (await batch.submit()).raise_for_partial_failure()
        logger.info(
            "partner_tier_changed partner_id=%s previous=%s tier=%s reason=%s",
            partner_id,
            current.tier,
            tier,
            reason,
        )
        return updated

    async def history(self, partner_id: str, limit: int = 50) -> list[TierChange]:
        if limit <= 0:
            return []
        members = await self._ctx.kv.zrange(self._ctx.keys.partner_tier_history(partner_id), 0, limit - 1, desc=True)
        entries: list[TierChange] = []
        for member in members:
            try:
                entries.append(TierChange.model_validate(json.loads(member)))
            except (json.JSONDecodeError, ValueError):
                logger.warning("tier_history_entry_undecodable partner_id=%s", partner_id)
        return entries
