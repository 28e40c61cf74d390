from __future__ import annotations

import logging

from partner_portal.indexes import CREDENTIAL_INDEXES
from partner_portal.models import Credential, utc_now_iso
from partner_portal.pagination import Page
from partner_portal.repositories.base import EntityRepository

logger = logging.getLogger(__name__)

REVOKED = "revoked"
REVOCABLE_STATUSES = frozenset({"active", "claimed", "issued"})


class CredentialRepository(EntityRepository[Credential]):
    table = CREDENTIAL_INDEXES
    model = Credential

    async def get_by_email(self, email: str) -> Credential | None:
        if not email.strip():
            return None
        credential_id = await self._kv.get(self._keys.credential_by_email(email))
        if not credential_id:
            return None
        return await self.get(credential_id)

    async def list_all(
        self,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Credential]:
        return await self._page_ordered(
            self._keys.all_credentials(), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_partner(
        self,
        partner_id: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Credential]:
        return await self._page_ordered(
            self._keys.partner_credentials(partner_id), cursor=cursor, limit=limit, with_total=with_total
        )

    async def list_by_status(
        self,
        status: str,
        *,
        cursor: int | None = 0,
        limit: int | None = None,
        with_total: bool = False,
    ) -> Page[Credential]:
        return await self._page_set(
            self._keys.credentials_by_status(status), cursor=cursor, limit=limit, with_total=with_total
        )

    async def get_by_partner(self, partner_id: str, limit: int = 100) -> list[Credential]:
        return await self._collect_ordered(self._keys.partner_credentials(partner_id), limit)

    async def get_by_status(self, status: str, limit: int = 100) -> list[Credential]:
        return await self._collect_set(self._keys.credentials_by_status(status), limit)

    async def revoke(self, credential_id: str, *, revoked_by: str, reason: str) -> Credential:
        return await self.update(
            credential_id,
            status=REVOKED,
            revoked_at=utc_now_iso(),
            revoked_by=revoked_by,
            revoked_reason=reason,
        )

    async def revoke_all_for_partner(self, partner_id: str, *, revoked_by: str, reason: str) -> list[Credential]:
        revoked: list[Credential] = []
        for credential in await self.get_by_partner(partner_id, limit=10_000):
            if credential.status not in REVOCABLE_STATUSES:
                continue
            revoked.append(await self.revoke(credential.id, revoked_by=revoked_by, reason=reason))
        logger.info("credentials_revoked partner_id=%s count=%s", partner_id, len(revoked))
        return revoked
