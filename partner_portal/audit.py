from __future__ import annotations

import logging
import uuid
from typing import Any

from partner_portal.batch import WriteBatch
from partner_portal.codec import codec_for
from partner_portal.context import StoreContext
from partner_portal.indexes import AUDIT_LOG_INDEXES
from partner_portal.models import Actor, AuditLog, utc_now_iso
from partner_portal.pagination import Page

logger = logging.getLogger(__name__)


class AuditTrail:
    """Append-only audit events.

    Each event is written together with four time-ordered index entries
    (global, by entity, by actor, by action) in one batch. A failed command
    fails the whole call with ``PartialWriteFailure``. There is no update or
    delete.
    """

    def __init__(self, ctx: StoreContext) -> None:
        self._ctx = ctx
        self._codec = codec_for(AuditLog)

    async def record(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        actor: Actor,
        changes: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        *,
        entity_name: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timestamp: str | None = None,
    ) -> AuditLog:
        if not action or not entity_type or not entity_id or not actor.id:
            raise ValueError("audit events require action, entity_type, entity_id and actor id")
        log = AuditLog(
            id=f"audit_{uuid.uuid4().hex}",
            actor_id=actor.id,
            actor_name=actor.name,
            actor_type=actor.type,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            changes=changes,
            metadata=metadata,
            timestamp=timestamp or utc_now_iso(),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        keys = self._ctx.keys
        batch = WriteBatch(self._ctx.kv, entity_type="audit_log", entity_id=log.id, metrics=self._ctx.metrics)
        batch.hset(keys.audit_log(log.id), self._codec.encode(log))
        batch.apply(self._ctx.indexes.diff(AUDIT_LOG_INDEXES, None, log))
        (await batch.submit()).raise_for_partial_failure()
        logger.info(
            "audit_recorded audit_id=%s action=%s entity_type=%s entity_id=%s actor_id=%s",
            log.id,
            action,
            entity_type,
            entity_id,
            actor.id,
        )
        return log

    async def get(self, audit_id: str) -> AuditLog | None:
        if not audit_id:
            return None
        return self._codec.decode(await self._ctx.kv.hgetall(self._ctx.keys.audit_log(audit_id)))

    async def _page(self, key: str, cursor: int | None, limit: int | None, with_total: bool) -> Page[AuditLog]:
        return await self._ctx.paginator.paginate_ordered(
            key,
            self.get,
            cursor=cursor,
            limit=limit,
            with_total=with_total,
        )

    async def get_by_entity(
        self,
        entity_type: str,
        entity_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[AuditLog]:
        return await self._page(self._ctx.keys.audit_logs_by_entity(entity_type, entity_id), cursor, limit, with_total)

    async def get_by_actor(
        self,
        actor_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[AuditLog]:
        return await self._page(self._ctx.keys.audit_logs_by_actor(actor_id), cursor, limit, with_total)

    async def get_by_action(
        self,
        action: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[AuditLog]:
        return await self._page(self._ctx.keys.audit_logs_by_action(action), cursor, limit, with_total)

    async def list_all(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[AuditLog]:
        return await self._page(self._ctx.keys.all_audit_logs(), cursor, limit, with_total)
