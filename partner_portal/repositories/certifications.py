from __future__ import annotations

from typing import Any

from partner_portal.indexes import CERTIFICATION_INDEXES, TRAINING_CERTIFICATION_INDEXES
from partner_portal.models import Certification, TrainingCertification
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository

CERTIFICATION_STATUSES = ("issued", "claimed", "expired", "revoked")


class CertificationRepository(EntityRepository[Certification]):
    table = CERTIFICATION_INDEXES
    model = Certification

    async def list_by_user(
        self,
        user_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Certification]:
        return await self._page_set(
            self._keys.user_certifications(user_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_partner(
        self,
        partner_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Certification]:
        return await self._page_set(
            self._keys.partner_certifications(partner_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_by_user(self, user_id: str, limit: int = 100) -> list[Certification]:
        return await self._collect_set(self._keys.user_certifications(user_id), limit)

    async def get_by_partner(self, partner_id: str, limit: int = 100) -> list[Certification]:
        return await self._collect_set(self._keys.partner_certifications(partner_id), limit)


class TrainingCertificationRepository(EntityRepository[TrainingCertification]):
    """Course completion certificates; every write drops the credential and overview aggregates."""

    table = TRAINING_CERTIFICATION_INDEXES
    model = TrainingCertification

    async def _after_write(self, old: TrainingCertification | None, new: TrainingCertification) -> None:
        await self._invalidate()

    async def _after_delete(self, entity: TrainingCertification) -> None:
        await self._invalidate()

    async def _invalidate(self) -> None:
        await self._ctx.cache.invalidate(
            self._keys.credential_analytics_cache(),
            self._keys.overview_metrics_cache(),
        )

    async def issue(self, certification: TrainingCertification) -> TrainingCertification:
        return await self.create(certification)

    async def update_status(
        self,
        certification_id: str,
        status: str,
        *,
        claimed_at: str | None = None,
    ) -> TrainingCertification:
        if status not in CERTIFICATION_STATUSES:
            raise ValueError(f"unknown certification status: {status}")
        changes: dict[str, Any] = {"status": status}
        if claimed_at:
            changes["claimed_at"] = claimed_at
        return await self.update(certification_id, **changes)

    async def list_all(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[TrainingCertification]:
        return await self._page_set(
            self._keys.all_training_certifications(), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_status(
        self,
        status: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[TrainingCertification]:
        return await self._page_set(
            self._keys.training_certifications_by_status(status), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_all(self, limit: int = 10_000) -> list[TrainingCertification]:
        return await self._collect_set(self._keys.all_training_certifications(), limit)

    async def status_counts(self) -> dict[str, int]:
        counts = {
            status: await self._kv.scard(self._keys.training_certifications_by_status(status))
            for status in ("issued", "claimed", "expired")
        }
        counts["pending"] = max(0, counts["issued"] - counts["claimed"])
        return counts
