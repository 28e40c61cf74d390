from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from partner_portal.analytics import TrainingAnalytics
from partner_portal.audit import AuditTrail
from partner_portal.config import PortalSettings
from partner_portal.context import StoreContext
from partner_portal.kv_backend import create_kv_from_env
from partner_portal.repositories import (
    AchievementRepository,
    AnnualProgressRepository,
    CertificationRepository,
    CommissionRepository,
    CredentialRepository,
    DealRepository,
    LegalDocumentRepository,
    PartnerRepository,
    QuoteRepository,
    TierHistoryRepository,
    TrainingCertificationRepository,
    TrainingCourseRepository,
    UserRepository,
)
from partner_portal.repositories.deals import CLOSED_LOST, CLOSED_STATUSES, CLOSED_WON
from partner_portal.team import TeamAnalytics

logger = logging.getLogger(__name__)

PARTNER_STATS_DEAL_LIMIT = 10_000


class Portal:
    """One store context and every repository built on it."""

    def __init__(self, ctx: StoreContext) -> None:
        self.ctx = ctx
        self.partners = PartnerRepository(ctx)
        self.users = UserRepository(ctx)
        self.deals = DealRepository(ctx)
        self.quotes = QuoteRepository(ctx)
        self.documents = LegalDocumentRepository(ctx)
        self.credentials = CredentialRepository(ctx)
        self.certifications = CertificationRepository(ctx)
        self.commissions = CommissionRepository(ctx)
        self.courses = TrainingCourseRepository(ctx)
        self.training_certifications = TrainingCertificationRepository(ctx)
        self.tier_history = TierHistoryRepository(ctx, self.partners)
        self.achievements = AchievementRepository(ctx)
        self.annual_progress = AnnualProgressRepository(ctx)
        self.audit = AuditTrail(ctx)
        self.analytics = TrainingAnalytics(
            ctx,
            courses=self.courses,
            certifications=self.training_certifications,
        )
        self.team = TeamAnalytics(
            users=self.users,
            deals=self.deals,
            certifications=self.certifications,
            achievements=self.achievements,
        )

    async def partner_stats(self, partner_id: str) -> dict[str, Any]:
        deals, credentials = await asyncio.gather(
            self.deals.get_by_partner(partner_id, limit=PARTNER_STATS_DEAL_LIMIT),
            self.credentials.get_by_partner(partner_id, limit=PARTNER_STATS_DEAL_LIMIT),
        )
        won = [deal for deal in deals if deal.status == CLOSED_WON]
        return {
            "total_deals": len(deals),
            "won_deals": len(won),
            "lost_deals": sum(1 for deal in deals if deal.status == CLOSED_LOST),
            "pending_deals": sum(1 for deal in deals if deal.status not in CLOSED_STATUSES),
            "total_revenue": round(sum(deal.deal_value for deal in won), 2),
            "credentials_count": len(credentials),
            "active_credentials": sum(1 for credential in credentials if credential.status == "active"),
        }

    async def close(self) -> None:
        await self.ctx.kv.close()


def create_portal(
    kv: Any | None = None,
    *,
    settings: PortalSettings | None = None,
    environ: Mapping[str, str] | None = None,
) -> Portal:
    settings = settings or PortalSettings.from_env(environ)
    if kv is None:
        kv = create_kv_from_env(environ, settings=settings)
    logger.info(
        "portal_created store_backend=%s key_prefix=%s",
        type(kv).__name__,
        settings.key_prefix or "-",
    )
    return Portal(StoreContext.build(kv, settings))
