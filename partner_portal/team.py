from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Any

from partner_portal.models import Certification, Deal, User
from partner_portal.repositories import (
    AchievementRepository,
    CertificationRepository,
    DealRepository,
    UserRepository,
)
from partner_portal.repositories.deals import CLOSED_LOST, CLOSED_STATUSES, CLOSED_WON

logger = logging.getLogger(__name__)

TEAM_READ_LIMIT = 10_000
TOP_PERFORMER_METRICS = ("deals", "revenue", "certifications")


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _revenue(deals: list[Deal]) -> float:
    return round(sum(deal.deal_value for deal in deals if deal.status == CLOSED_WON), 2)


class TeamAnalytics:
    """Per-partner team rollups: totals for the partner and a row per member.

    A deal belongs to the member recorded in its ``created_by``; deals without
    one count toward the partner totals only.
    """

    def __init__(
        self,
        *,
        users: UserRepository,
        deals: DealRepository,
        certifications: CertificationRepository,
        achievements: AchievementRepository,
    ) -> None:
        self._users = users
        self._deals = deals
        self._certifications = certifications
        self._achievements = achievements

    async def _load(self, partner_id: str) -> tuple[list[User], list[Deal], list[Certification]]:
        users, deals, certifications = await asyncio.gather(
            self._users.get_by_partner(partner_id, limit=TEAM_READ_LIMIT),
            self._deals.get_by_partner(partner_id, limit=TEAM_READ_LIMIT),
            self._certifications.get_by_partner(partner_id, limit=TEAM_READ_LIMIT),
        )
        return users, deals, certifications

    async def team_performance(self, partner_id: str) -> dict[str, Any]:
        (users, deals, certifications), achievements = await asyncio.gather(
            self._load(partner_id),
            self._achievements.get(partner_id),
        )
        member_ids = {user.id for user in users}
        certified = {cert.user_id for cert in certifications if cert.user_id in member_ids}
        return {
            "total_deals": len(deals),
            "active_deals": sum(1 for deal in deals if deal.status not in CLOSED_STATUSES),
            "won_deals": sum(1 for deal in deals if deal.status == CLOSED_WON),
            "lost_deals": sum(1 for deal in deals if deal.status == CLOSED_LOST),
            "total_revenue": _revenue(deals),
            "team_size": len(users),
            "certified_members": len(certified),
            "total_certifications": len(certifications),
            "total_achievements": len(achievements),
        }

    async def members_performance(self, partner_id: str) -> list[dict[str, Any]]:
        users, deals, certifications = await self._load(partner_id)
        certs_by_user = Counter(cert.user_id for cert in certifications)
        rows: list[dict[str, Any]] = []
        for user in users:
            own = [deal for deal in deals if deal.created_by == user.id]
            cert_count = certs_by_user.get(user.id, 0)
            rows.append(
                {
                    "user_id": user.id,
                    "user_name": user.name,
                    "user_email": user.email,
                    "role": user.role,
                    "deals": len(own),
                    "won_deals": sum(1 for deal in own if deal.status == CLOSED_WON),
                    "revenue": _revenue(own),
                    "certifications": cert_count,
                    "training_progress": 100 if cert_count else 0,
                }
            )
        return rows

    async def top_performers(self, partner_id: str, by: str = "deals", limit: int = 5) -> list[dict[str, Any]]:
        if by not in TOP_PERFORMER_METRICS:
            raise ValueError(f"unknown top performer metric: {by}")
        if limit <= 0:
            return []
        rows = await self.members_performance(partner_id)
        ranked = sorted(rows, key=lambda row: row[by], reverse=True)[:limit]
        performers = []
        for row in ranked:
            value = row[by]
            if by == "deals":
                label = _plural(value, "deal")
            elif by == "revenue":
                label = f"${value:,.0f}"
            else:
                label = _plural(value, "cert")
            performers.append({"user_id": row["user_id"], "user_name": row["user_name"], "value": value, "label": label})
        logger.debug("top_performers partner_id=%s by=%s count=%s", partner_id, by, len(performers))
        return performers
