from __future__ import annotations

import logging
import uuid
from typing import Any

from partner_portal.codec import codec_for
from partner_portal.errors import PreconditionFailed
from partner_portal.indexes import DOCUMENT_AUDIT_EVENT_INDEXES, LEGAL_DOCUMENT_INDEXES
from partner_portal.models import DocumentAuditEvent, LegalDocument, utc_now_iso
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository

logger = logging.getLogger(__name__)

DOCUMENT_ACTOR_TYPES = ("partner", "admin", "system")


class LegalDocumentRepository(EntityRepository[LegalDocument]):
    table = LEGAL_DOCUMENT_INDEXES
    model = LegalDocument

    async def list_all(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[LegalDocument]:
        return await self._page_ordered(
            self._keys.all_legal_documents(), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_partner(
        self,
        partner_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[LegalDocument]:
        return await self._page_ordered(
            self._keys.partner_legal_documents(partner_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_category(
        self,
        category: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[LegalDocument]:
        return await self._page_set(
            self._keys.legal_documents_by_category(category), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_status(
        self,
        status: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[LegalDocument]:
        return await self._page_set(
            self._keys.legal_documents_by_status(status), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_by_partner(self, partner_id: str, limit: int = 100) -> list[LegalDocument]:
        logger.debug("legal_documents_for_partner partner_id=%s limit=%s", partner_id, limit)
        return await self._collect_ordered(self._keys.partner_legal_documents(partner_id), limit)

    async def get_by_category(self, category: str, limit: int = 100) -> list[LegalDocument]:
        return await self._collect_set(self._keys.legal_documents_by_category(category), limit)

    async def get_by_status(self, status: str, limit: int = 100) -> list[LegalDocument]:
        return await self._collect_set(self._keys.legal_documents_by_status(status), limit)

    async def get_by_envelope(self, envelope_id: str) -> LegalDocument | None:
        if not envelope_id.strip():
            return None
        document_id = await self._kv.get(self._keys.envelope_document(envelope_id))
        if not document_id:
            return None
        return await self.get(document_id)

    # Per-document activity log

    async def add_audit_event(
        self,
        document_id: str,
        action: str,
        *,
        actor_type: str = "partner",
        actor_id: str | None = None,
        actor_name: str | None = None,
        details: dict[str, Any] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        timestamp: str | None = None,
    ) -> DocumentAuditEvent:
        if not action:
            raise ValueError("document audit events require an action")
        if actor_type not in DOCUMENT_ACTOR_TYPES:
            raise ValueError(f"unknown actor type: {actor_type}")
        if not await self.exists(document_id):
            raise PreconditionFailed(entity_type=self.entity_type, entity_id=document_id)
        event = DocumentAuditEvent(
            id=f"docaudit_{uuid.uuid4().hex}",
            document_id=document_id,
            action=action,
            actor_type=actor_type,
            actor_id=actor_id,
            actor_name=actor_name,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=timestamp or utc_now_iso(),
        )
        batch = self._batch(document_id)
        batch.hset(self._keys.document_audit_event(event.id), codec_for(DocumentAuditEvent).encode(event))
        batch.apply(self._ctx.indexes.diff(DOCUMENT_AUDIT_EVENT_INDEXES, None, event))
        (await batch.submit()).raise_for_partial_failure()
        logger.info("document_audit_recorded document_id=%s action=%s event_id=%s", document_id, action, event.id)
        return event

    async def get_audit_event(self, event_id: str) -> DocumentAuditEvent | None:
        if not event_id:
            return None
        raw = await self._kv.hgetall(self._keys.document_audit_event(event_id))
        return codec_for(DocumentAuditEvent).decode(raw)

    async def get_audit_events(self, document_id: str, limit: int = 50) -> list[DocumentAuditEvent]:
        """Newest first."""
        if limit <= 0:
            return []
        key = self._keys.document_audit_events(document_id)
        ids = await self._kv.zrange(key, 0, limit - 1, desc=True)
        return await self._ctx.paginator.resolve(key, ids, self.get_audit_event)

    async def delete(self, document_id: str) -> LegalDocument:
        event_ids = await self._kv.zrange(self._keys.document_audit_events(document_id), 0, -1)
        document = await super().delete(document_id)
        if event_ids:
            batch = self._batch(document_id)
            for event_id in event_ids:
                batch.delete(self._keys.document_audit_event(event_id))
            (await batch.submit()).raise_for_partial_failure()
        return document
