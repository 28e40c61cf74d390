from __future__ import annotations

import logging

from partner_portal.context import StoreContext

logger = logging.getLogger(__name__)

ANNUAL_METRICS = ("opportunities", "deals_won", "certifications")


def _count(raw: str | None) -> int:
    try:
        return int(raw or "0", 10)
    except ValueError:
        return 0


def _check_metric(metric: str) -> None:
    if metric not in ANNUAL_METRICS:
        raise ValueError(f"unknown annual progress metric: {metric}")


class AnnualProgressRepository:
    """Per-partner counters toward the yearly tier review.

    Unset counters read as zero; a counter that is not an integer also reads
    as zero rather than failing the whole read.
    """

    def __init__(self, ctx: StoreContext) -> None:
        self._ctx = ctx

    async def get(self, partner_id: str) -> dict[str, int]:
        raw = await self._ctx.kv.hgetall(self._ctx.keys.partner_annual_progress(partner_id))
        return {metric: _count(raw.get(metric)) for metric in ANNUAL_METRICS}

    async def update(self, partner_id: str, **counts: int | None) -> dict[str, int]:
        for metric in counts:
            _check_metric(metric)
        mapping = {metric: str(int(value)) for metric, value in counts.items() if value is not None}
        if mapping:
            await self._ctx.kv.hset(self._ctx.keys.partner_annual_progress(partner_id), mapping)
        return await self.get(partner_id)

    async def increment(self, partner_id: str, metric: str, amount: int = 1) -> int:
        _check_metric(metric)
        value = await self._ctx.kv.hincrby(self._ctx.keys.partner_annual_progress(partner_id), metric, amount)
        logger.debug("annual_progress_incremented partner_id=%s metric=%s value=%s", partner_id, metric, value)
        return value
