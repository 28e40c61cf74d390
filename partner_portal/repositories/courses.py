from __future__ import annotations

from partner_portal.indexes import TRAINING_COURSE_INDEXES
from partner_portal.models import TrainingCourse
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository


def _by_display_order(courses: list[TrainingCourse]) -> list[TrainingCourse]:
    return sorted(courses, key=lambda course: (course.order, course.id))


class TrainingCourseRepository(EntityRepository[TrainingCourse]):
    table = TRAINING_COURSE_INDEXES
    model = TrainingCourse

    async def _after_write(self, old: TrainingCourse | None, new: TrainingCourse) -> None:
        await self._ctx.cache.invalidate(
            self._keys.course_analytics_cache(new.id),
            self._keys.overview_metrics_cache(),
        )

    async def _after_delete(self, entity: TrainingCourse) -> None:
        await self._after_write(None, entity)

    async def list_all(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[TrainingCourse]:
        """Courses in display order (ascending ``order``)."""
        return await self._page_ordered(
            self._keys.all_training_courses(),
            cursor=cursor,
            limit=limit,
            descending=False,
            with_total=with_total,
        )

    async def list_by_category(
        self,
        category: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[TrainingCourse]:
        return await self._page_set(
            self._keys.training_courses_by_category(category), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_published(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[TrainingCourse]:
        return await self._page_set(
            self._keys.published_training_courses(), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_all(self, limit: int = 1000) -> list[TrainingCourse]:
        courses = await self._collect_ordered(self._keys.all_training_courses(), limit, descending=False)
        return _by_display_order(courses)

    async def get_published(self, limit: int = 1000) -> list[TrainingCourse]:
        return _by_display_order(await self._collect_set(self._keys.published_training_courses(), limit))

    async def get_by_category(self, category: str, limit: int = 1000) -> list[TrainingCourse]:
        return _by_display_order(await self._collect_set(self._keys.training_courses_by_category(category), limit))

    async def publish(self, course_id: str) -> TrainingCourse:
        return await self.update(course_id, is_published=True)

    async def unpublish(self, course_id: str) -> TrainingCourse:
        return await self.update(course_id, is_published=False)
