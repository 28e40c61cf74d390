"""Cached training aggregates.

Enrollment and completion facts are sets per course (and per module) plus a
counter per UTC day. The aggregates built from them are cached through
:class:`~partner_portal.cache.CacheLayer`; every recording path drops the cache
keys it can affect before returning.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from partner_portal.batch import WriteBatch
from partner_portal.codec import codec_for
from partner_portal.context import StoreContext
from partner_portal.models import CourseProgress
from partner_portal.repositories.certifications import TrainingCertificationRepository
from partner_portal.repositories.courses import TrainingCourseRepository

logger = logging.getLogger(__name__)

CREDENTIAL_EXPIRY_WINDOW = timedelta(days=30)
MAX_SERIES_DAYS = 366


def calculate_percentage(numerator: float, denominator: float, decimals: int = 2) -> float:
    if denominator == 0:
        return 0.0
    return round(numerator / denominator * 100, decimals)


def _parse_time(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _hours_between(start: str | None, end: str | None) -> float | None:
    started = _parse_time(start)
    finished = _parse_time(end)
    if started is None or finished is None or finished <= started:
        return None
    return (finished - started).total_seconds() / 3600


def _date_range(start: str, end: str) -> list[str]:
    try:
        first = date.fromisoformat(start)
        last = date.fromisoformat(end)
    except ValueError:
        return []
    if first > last:
        return []
    span = min((last - first).days, MAX_SERIES_DAYS - 1)
    return [(first + timedelta(days=offset)).isoformat() for offset in range(span + 1)]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrainingAnalytics:
    def __init__(
        self,
        ctx: StoreContext,
        *,
        courses: TrainingCourseRepository,
        certifications: TrainingCertificationRepository,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ctx = ctx
        self._kv = ctx.kv
        self._keys = ctx.keys
        self._courses = courses
        self._certifications = certifications
        self._clock = clock or _utc_now
        self._progress_codec = codec_for(CourseProgress, "user_id")

    def _today(self) -> str:
        return self._clock().astimezone(timezone.utc).date().isoformat()

    async def _record(self, entity_id: str, set_key: str, user_id: str, day_key: str) -> None:
        batch = WriteBatch(self._kv, entity_type="training_activity", entity_id=entity_id, metrics=self._ctx.metrics)
        batch.sadd(set_key, user_id).incr(day_key)
        (await batch.submit()).raise_for_partial_failure()

    async def record_enrollment(self, user_id: str, course_id: str) -> None:
        await self._record(
            course_id,
            self._keys.course_enrollments(course_id),
            user_id,
            self._keys.enrollments_on(self._today()),
        )
        await self._ctx.cache.invalidate(
            self._keys.course_analytics_cache(course_id),
            self._keys.overview_metrics_cache(),
        )
        logger.info("training_enrollment_recorded user_id=%s course_id=%s", user_id, course_id)

    async def record_completion(self, user_id: str, course_id: str) -> None:
        await self._record(
            course_id,
            self._keys.course_completions(course_id),
            user_id,
            self._keys.completions_on(self._today()),
        )
        await self._ctx.cache.invalidate(
            self._keys.course_analytics_cache(course_id),
            self._keys.overview_metrics_cache(),
        )
        logger.info("training_completion_recorded user_id=%s course_id=%s", user_id, course_id)

    async def record_module_start(self, user_id: str, course_id: str, module_id: str) -> None:
        await self._kv.sadd(self._keys.module_enrollments(course_id, module_id), user_id)
        await self._ctx.cache.invalidate(self._keys.course_analytics_cache(course_id))

    async def record_module_completion(self, user_id: str, course_id: str, module_id: str) -> None:
        await self._kv.sadd(self._keys.module_completions(course_id, module_id), user_id)
        await self._ctx.cache.invalidate(self._keys.course_analytics_cache(course_id))

    async def save_course_progress(self, progress: CourseProgress) -> CourseProgress:
        if not progress.course_id:
            raise ValueError("course progress requires course_id")
        batch = WriteBatch(
            self._kv, entity_type="course_progress", entity_id=progress.user_id, metrics=self._ctx.metrics
        )
        batch.hset(self._keys.course_progress(progress.user_id, progress.course_id), self._progress_codec.encode(progress))
        (await batch.submit()).raise_for_partial_failure()
        await self._ctx.cache.invalidate(self._keys.course_analytics_cache(progress.course_id))
        return progress

    async def get_course_progress(self, user_id: str, course_id: str) -> CourseProgress | None:
        raw = await self._kv.hgetall(self._keys.course_progress(user_id, course_id))
        if not raw:
            return None
        # records written without user_id still belong to the user in the key
        raw = {**raw, "user_id": raw.get("user_id") or user_id}
        progress = self._progress_codec.decode(raw)
        if progress is not None and not progress.course_id:
            progress = progress.model_copy(update={"course_id": course_id})
        return progress

    async def module_dropoff_rates(self, course_id: str) -> list[dict[str, Any]]:
        course = await self._courses.get(course_id)
        if course is None or not course.modules:
            return []
        rates = []
        for index, module in enumerate(course.modules):
            enrolled, completed = await asyncio.gather(
                self._kv.scard(self._keys.module_enrollments(course_id, module.id)),
                self._kv.scard(self._keys.module_completions(course_id, module.id)),
            )
            rates.append(
                {
                    "module_id": module.id,
                    "module_name": module.display_name(f"Module {index + 1}"),
                    "dropoff_rate": calculate_percentage(enrolled - completed, enrolled) if enrolled else 0.0,
                }
            )
        return rates

    async def _compute_course_analytics(self, course_id: str) -> dict[str, Any]:
        enrolled_ids = sorted(await self._kv.smembers(self._keys.course_enrollments(course_id)))
        completions = await self._kv.scard(self._keys.course_completions(course_id))
        progresses = await asyncio.gather(*(self.get_course_progress(user_id, course_id) for user_id in enrolled_ids))
        scores = [p.overall_score for p in progresses if p is not None and p.overall_score > 0]
        hours = [
            value
            for value in (_hours_between(p.started_at, p.completed_at) for p in progresses if p is not None)
            if value is not None
        ]
        return {
            "course_id": course_id,
            "enrollments": len(enrolled_ids),
            "completions": completions,
            "completion_rate": calculate_percentage(completions, len(enrolled_ids)),
            "average_score": round(sum(scores) / len(scores)) if scores else 0,
            "average_time_to_complete": round(sum(hours) / len(hours), 1) if hours else 0.0,
            "dropoff_rates": await self.module_dropoff_rates(course_id),
        }

    async def course_analytics(self, course_id: str) -> dict[str, Any]:
        return await self._ctx.cache.get_or_compute(
            self._keys.course_analytics_cache(course_id),
            self._ctx.settings.cache_ttl_analytics_seconds,
            lambda: self._compute_course_analytics(course_id),
        )

    async def _completion_counts(self, course_id: str) -> tuple[int, int]:
        enrolled, completed = await asyncio.gather(
            self._kv.scard(self._keys.course_enrollments(course_id)),
            self._kv.scard(self._keys.course_completions(course_id)),
        )
        return int(enrolled), int(completed)

    async def _compute_overview(self) -> dict[str, Any]:
        courses = await self._courses.get_all()
        counts = await asyncio.gather(*(self._completion_counts(course.id) for course in courses))
        rates = [
            calculate_percentage(completed, enrolled)
            for course, (enrolled, completed) in zip(courses, counts)
            if course.is_published and enrolled > 0
        ]
        published = sum(1 for course in courses if course.is_published)
        return {
            "total_courses": len(courses),
            "published_courses": published,
            "draft_courses": len(courses) - published,
            "total_enrollments": sum(enrolled for enrolled, _ in counts),
            "total_completions": sum(completed for _, completed in counts),
            "average_completion_rate": round(sum(rates) / len(rates), 1) if rates else 0.0,
            "total_certifications": await self._kv.scard(self._keys.all_training_certifications()),
        }

    async def overview_metrics(self) -> dict[str, Any]:
        return await self._ctx.cache.get_or_compute(
            self._keys.overview_metrics_cache(),
            self._ctx.settings.cache_ttl_overview_seconds,
            self._compute_overview,
        )

    async def _compute_credential_claims(self) -> dict[str, Any]:
        now = self._clock()
        horizon = now + CREDENTIAL_EXPIRY_WINDOW
        certifications = await self._certifications.get_all()
        claimed = 0
        claim_hours: list[float] = []
        expiring = 0
        for cert in certifications:
            if cert.status == "claimed" or cert.claimed_at:
                claimed += 1
                hours = _hours_between(cert.issued_at, cert.claimed_at)
                if hours is not None:
                    claim_hours.append(hours)
            expires = _parse_time(cert.expires_at)
            if expires is not None and now < expires <= horizon:
                expiring += 1
        issued = len(certifications)
        return {
            "total_issued": issued,
            "total_claimed": claimed,
            "claim_rate": calculate_percentage(claimed, issued),
            "average_claim_time_hours": round(sum(claim_hours) / len(claim_hours), 1) if claim_hours else 0.0,
            "pending": max(0, issued - claimed),
            "expiring_in_30_days": expiring,
        }

    async def credential_claim_analytics(self) -> dict[str, Any]:
        return await self._ctx.cache.get_or_compute(
            self._keys.credential_analytics_cache(),
            self._ctx.settings.cache_ttl_credentials_seconds,
            self._compute_credential_claims,
        )

    async def _daily(self, start: str, end: str, key_for: Callable[[str], str]) -> list[dict[str, Any]]:
        days = _date_range(start, end)
        values = await asyncio.gather(*(self._kv.get(key_for(day)) for day in days))
        series = []
        for day, raw in zip(days, values):
            try:
                count = int(raw, 10) if raw else 0
            except (TypeError, ValueError):
                count = 0
            series.append({"date": day, "count": count})
        return series

    async def daily_enrollments(self, start: str, end: str) -> list[dict[str, Any]]:
        return await self._daily(start, end, self._keys.enrollments_on)

    async def daily_completions(self, start: str, end: str) -> list[dict[str, Any]]:
        return await self._daily(start, end, self._keys.completions_on)

    async def invalidate_course(self, course_id: str) -> int:
        return await self._ctx.cache.invalidate(
            self._keys.course_analytics_cache(course_id),
            self._keys.overview_metrics_cache(),
        )

    async def invalidate_all(self) -> int:
        removed = await self._ctx.cache.invalidate(
            self._keys.overview_metrics_cache(),
            self._keys.credential_analytics_cache(),
        )
        removed += await self._ctx.cache.invalidate_by_prefix(self._keys.course_analytics_cache_prefix())
        logger.info("training_caches_invalidated removed=%s", removed)
        return removed
