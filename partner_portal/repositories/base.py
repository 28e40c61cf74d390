from __future__ import annotations

import logging
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from partner_portal.batch import WriteBatch
from partner_portal.codec import codec_for
from partner_portal.context import StoreContext
from partner_portal.errors import PreconditionFailed
from partner_portal.indexes import EntityIndexes
from partner_portal.models import utc_now_iso
from partner_portal.pagination import Page

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class EntityRepository(Generic[M]):
    """Typed CRUD over one entity type with its indexes kept in step.

    Every write is one batch: the primary record first, then the index deltas
    computed from the previous and the new state of the entity.
    """

    table: EntityIndexes
    model: type[M]

    def __init__(self, ctx: StoreContext) -> None:
        self._ctx = ctx
        self._kv = ctx.kv
        self._keys = ctx.keys
        self._codec = codec_for(self.model, self.table.id_field)

    @property
    def entity_type(self) -> str:
        return self.table.entity_type

    def record_key(self, entity_id: str) -> str:
        return self.table.record_key(self._keys, entity_id)

    def _entity_id(self, entity: M) -> str:
        return str(getattr(entity, self.table.id_field))

    def _batch(self, entity_id: str) -> WriteBatch:
        return WriteBatch(self._kv, entity_type=self.entity_type, entity_id=entity_id, metrics=self._ctx.metrics)

    async def get(self, entity_id: str) -> M | None:
        if not entity_id:
            return None
        return self._codec.decode(await self._kv.hgetall(self.record_key(entity_id)))

    async def exists(self, entity_id: str) -> bool:
        return await self.get(entity_id) is not None

    def _stamp_created(self, entity: M) -> M:
        fields = self.model.model_fields
        stamps: dict[str, Any] = {}
        now = utc_now_iso()
        if "created_at" in fields and not getattr(entity, "created_at"):
            stamps["created_at"] = now
        if "updated_at" in fields and not getattr(entity, "updated_at"):
            stamps["updated_at"] = stamps.get("created_at") or getattr(entity, "created_at") or now
        return entity.model_copy(update=stamps) if stamps else entity

    async def create(self, entity: M) -> M:
        entity = self._stamp_created(entity)
        entity_id = self._entity_id(entity)
        existing = await self.get(entity_id)
        batch = self._batch(entity_id)
        batch.hset(self.record_key(entity_id), self._codec.encode(entity))
        batch.apply(self._ctx.indexes.diff(self.table, existing, entity))
        (await batch.submit()).raise_for_partial_failure()
        await self._after_write(existing, entity)
        return entity

    async def update(self, entity_id: str, **changes: Any) -> M:
        current = await self.get(entity_id)
        if current is None:
            raise PreconditionFailed(entity_type=self.entity_type, entity_id=entity_id)
        unknown = sorted(set(changes) - set(self.model.model_fields))
        if unknown:
            raise ValueError(f"unknown field(s) for {self.entity_type}: {', '.join(unknown)}")
        if changes.get(self.table.id_field, entity_id) != entity_id:
            raise ValueError(f"{self.entity_type} identifier cannot change")
        if "updated_at" in self.model.model_fields and "updated_at" not in changes:
            changes["updated_at"] = utc_now_iso()
        updated = self.model.model_validate({**current.model_dump(), **changes})
        batch = self._batch(entity_id)
        batch.hset(self.record_key(entity_id), self._codec.encode(updated))
        batch.apply(self._ctx.indexes.diff(self.table, current, updated))
        (await batch.submit()).raise_for_partial_failure()
        await self._after_write(current, updated)
        return updated

    async def delete(self, entity_id: str) -> M:
        current = await self.get(entity_id)
        if current is None:
            raise PreconditionFailed(entity_type=self.entity_type, entity_id=entity_id)
        batch = self._batch(entity_id)
        batch.delete(self.record_key(entity_id))
        batch.apply(self._ctx.indexes.delete_all(self.table, current))
        (await batch.submit()).raise_for_partial_failure()
        logger.info("entity_deleted entity_type=%s entity_id=%s", self.entity_type, entity_id)
        await self._after_delete(current)
        return current

    async def _after_write(self, old: M | None, new: M) -> None:
        return None

    async def _after_delete(self, entity: M) -> None:
        return None

    async def _page_ordered(
        self,
        key: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        descending: bool = True,
        with_total: bool = False,
    ) -> Page[M]:
        return await self._ctx.paginator.paginate_ordered(
            key,
            self.get,
            cursor=cursor,
            limit=limit,
            descending=descending,
            with_total=with_total,
        )

    async def _page_set(
        self,
        key: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[M]:
        return await self._ctx.paginator.paginate_set(
            key,
            self.get,
            cursor=cursor,
            limit=limit,
            with_total=with_total,
        )

    async def _collect_ordered(self, key: str, limit: int, *, descending: bool = True) -> list[M]:
        if limit <= 0:
            return []
        ids = await self._kv.zrange(key, 0, limit - 1, desc=descending)
        return await self._ctx.paginator.resolve(key, ids, self.get)

    async def _collect_set(self, key: str, limit: int) -> list[M]:
        if limit <= 0:
            return []
        ids = sorted(await self._kv.smembers(key))[:limit]
        return await self._ctx.paginator.resolve(key, ids, self.get)
