"""Secondary-index bookkeeping.

Each entity type declares its indexes as data (:class:`EntityIndexes`). The
:class:`IndexMaintainer` turns an ``(old, new)`` pair into the list of store
deltas that move the entity's identifier into exactly the buckets matching
its current values, and enumerates every structure an entity touches when it
is deleted.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from partner_portal.keys import KeySpace
from partner_portal.kv_backend import Command
from partner_portal.models import (
    AuditLog,
    Certification,
    Commission,
    Credential,
    Deal,
    DocumentAuditEvent,
    LegalDocument,
    Partner,
    Quote,
    TrainingCertification,
    TrainingCourse,
    User,
    timestamp_score,
)

MEMBERSHIP = "membership"
ORDERED = "ordered"
LOOKUP = "lookup"

ADD_MEMBER = "add_member"
REMOVE_MEMBER = "remove_member"
UPSERT_ORDERED = "upsert_ordered"
REMOVE_ORDERED = "remove_ordered"
SET_LOOKUP = "set_lookup"
DELETE_KEY = "delete_key"

_DELTA_COMMANDS = {
    ADD_MEMBER: "sadd",
    REMOVE_MEMBER: "srem",
    UPSERT_ORDERED: "zadd",
    REMOVE_ORDERED: "zrem",
    SET_LOOKUP: "set",
    DELETE_KEY: "delete",
}

BucketFn = Callable[[KeySpace, Any], "str | None"]


@dataclass(frozen=True)
class IndexDelta:
    kind: str
    key: str
    member: str = ""
    score: float | None = None

    def to_command(self) -> Command:
        op = _DELTA_COMMANDS[self.kind]
        if self.kind == UPSERT_ORDERED:
            return (op, (self.key, {self.member: float(self.score or 0.0)}))
        if self.kind == SET_LOOKUP:
            return (op, (self.key, self.member))
        if self.kind == DELETE_KEY:
            return (op, (self.key,))
        return (op, (self.key, self.member))

    def describe(self) -> dict[str, Any]:
        out: dict[str, Any] = {"kind": self.kind, "key": self.key}
        if self.member:
            out["member"] = self.member
        if self.score is not None:
            out["score"] = self.score
        return out


@dataclass(frozen=True)
class IndexSpec:
    """One indexed dimension.

    ``bucket`` maps an entity to the key of the bucket it belongs in, or
    ``None`` when the entity has no value for the dimension. ``score`` is only
    used by ordered indexes.
    """

    name: str
    kind: str
    bucket: BucketFn
    score: Callable[[Any], float] | None = None


@dataclass(frozen=True)
class EntityIndexes:
    entity_type: str
    record_key: Callable[[KeySpace, str], str]
    indexes: tuple[IndexSpec, ...]
    owned: Callable[[KeySpace, Any], Iterable[str]] | None = None
    id_field: str = "id"


def by_field(attr: str, key_fn: Callable[[KeySpace, str], str]) -> BucketFn:
    def bucket(ks: KeySpace, entity: Any) -> str | None:
        value = getattr(entity, attr, None)
        if value is None or not str(value).strip():
            return None
        return key_fn(ks, str(value))

    return bucket


def constant(key_fn: Callable[[KeySpace], str]) -> BucketFn:
    def bucket(ks: KeySpace, entity: Any) -> str | None:
        return key_fn(ks)

    return bucket


def when(predicate: Callable[[Any], bool], key_fn: Callable[[KeySpace], str]) -> BucketFn:
    def bucket(ks: KeySpace, entity: Any) -> str | None:
        return key_fn(ks) if predicate(entity) else None

    return bucket


def created_score(entity: Any) -> float:
    return timestamp_score(getattr(entity, "created_at", ""))


class IndexMaintainer:
    def __init__(self, keyspace: KeySpace) -> None:
        self._keys = keyspace

    def diff(self, table: EntityIndexes, old: Any | None, new: Any) -> list[IndexDelta]:
        entity_id = str(getattr(new, table.id_field))
        deltas: list[IndexDelta] = []
        for spec in table.indexes:
            old_bucket = spec.bucket(self._keys, old) if old is not None else None
            new_bucket = spec.bucket(self._keys, new)
            if spec.kind == ORDERED:
                if old_bucket and old_bucket != new_bucket:
                    deltas.append(IndexDelta(REMOVE_ORDERED, old_bucket, entity_id))
                if new_bucket:
                    assert spec.score is not None
                    deltas.append(IndexDelta(UPSERT_ORDERED, new_bucket, entity_id, spec.score(new)))
                continue
            if old_bucket == new_bucket:
                continue
            if spec.kind == MEMBERSHIP:
                if old_bucket:
                    deltas.append(IndexDelta(REMOVE_MEMBER, old_bucket, entity_id))
                if new_bucket:
                    deltas.append(IndexDelta(ADD_MEMBER, new_bucket, entity_id))
            elif spec.kind == LOOKUP:
                if old_bucket:
                    deltas.append(IndexDelta(DELETE_KEY, old_bucket))
                if new_bucket:
                    deltas.append(IndexDelta(SET_LOOKUP, new_bucket, entity_id))
            else:
                raise ValueError(f"unknown index kind: {spec.kind}")
        if table.owned is not None and old is not None:
            # child collections only the old state owned
            kept = set(table.owned(self._keys, new))
            for key in table.owned(self._keys, old):
                if key not in kept:
                    deltas.append(IndexDelta(DELETE_KEY, key))
        return deltas

    def delete_all(self, table: EntityIndexes, entity: Any) -> list[IndexDelta]:
        entity_id = str(getattr(entity, table.id_field))
        deltas: list[IndexDelta] = []
        for spec in table.indexes:
            bucket = spec.bucket(self._keys, entity)
            if not bucket:
                continue
            if spec.kind == ORDERED:
                deltas.append(IndexDelta(REMOVE_ORDERED, bucket, entity_id))
            elif spec.kind == MEMBERSHIP:
                deltas.append(IndexDelta(REMOVE_MEMBER, bucket, entity_id))
            elif spec.kind == LOOKUP:
                deltas.append(IndexDelta(DELETE_KEY, bucket))
        if table.owned is not None:
            for key in table.owned(self._keys, entity):
                deltas.append(IndexDelta(DELETE_KEY, key))
        return deltas


def _partner_children(ks: KeySpace, partner: Partner) -> list[str]:
    return [
        ks.partner_users(partner.id),
        ks.partner_deals(partner.id),
        ks.partner_quotes(partner.id),
        ks.partner_credentials(partner.id),
        ks.partner_legal_documents(partner.id),
        ks.partner_commissions(partner.id),
        ks.partner_certifications(partner.id),
        ks.partner_tier_history(partner.id),
        ks.partner_achievements(partner.id),
        ks.partner_annual_progress(partner.id),
    ]


def _course_children(ks: KeySpace, course: TrainingCourse) -> list[str]:
    keys = [ks.course_enrollments(course.id), ks.course_completions(course.id)]
    for module in course.modules:
        keys.append(ks.module_enrollments(course.id, module.id))
        keys.append(ks.module_completions(course.id, module.id))
    return keys


PARTNER_INDEXES = EntityIndexes(
    entity_type="partner",
    record_key=KeySpace.partner,
    indexes=(
        IndexSpec("tier", ORDERED, by_field("tier", KeySpace.partners_by_tier), score=lambda p: p.rating),
        IndexSpec("status", MEMBERSHIP, by_field("status", KeySpace.partners_by_status)),
        IndexSpec("country", MEMBERSHIP, by_field("country", KeySpace.partners_by_country)),
        IndexSpec("all", ORDERED, constant(KeySpace.all_partners), score=created_score),
    ),
    owned=_partner_children,
)

USER_INDEXES = EntityIndexes(
    entity_type="user",
    record_key=KeySpace.user,
    indexes=(
        IndexSpec("email", LOOKUP, by_field("email", KeySpace.user_by_email)),
        IndexSpec("partner", MEMBERSHIP, by_field("partner_id", KeySpace.partner_users)),
    ),
    owned=lambda ks, user: [ks.user_certifications(user.id)],
)

DEAL_INDEXES = EntityIndexes(
    entity_type="deal",
    record_key=KeySpace.deal,
    indexes=(
        IndexSpec("partner", ORDERED, by_field("partner_id", KeySpace.partner_deals), score=created_score),
        IndexSpec("all", ORDERED, constant(KeySpace.all_deals), score=created_score),
        IndexSpec("status", MEMBERSHIP, by_field("status", KeySpace.deals_by_status)),
        IndexSpec("stage", MEMBERSHIP, by_field("stage", KeySpace.deals_by_stage)),
        IndexSpec("domain", MEMBERSHIP, by_field("company_domain", KeySpace.deals_by_domain)),
    ),
    owned=lambda ks, deal: [ks.deal_quotes(deal.id), ks.deal_commission(deal.id)],
)

QUOTE_INDEXES = EntityIndexes(
    entity_type="quote",
    record_key=KeySpace.quote,
    indexes=(
        IndexSpec("deal", ORDERED, by_field("deal_id", KeySpace.deal_quotes), score=lambda q: float(q.version)),
        IndexSpec("partner", ORDERED, by_field("partner_id", KeySpace.partner_quotes), score=created_score),
    ),
)

LEGAL_DOCUMENT_INDEXES = EntityIndexes(
    entity_type="legal_document",
    record_key=KeySpace.legal_document,
    indexes=(
        IndexSpec(
            "partner",
            ORDERED,
            by_field("partner_id", KeySpace.partner_legal_documents),
            score=created_score,
        ),
        IndexSpec("all", ORDERED, constant(KeySpace.all_legal_documents), score=created_score),
        IndexSpec("category", MEMBERSHIP, by_field("category", KeySpace.legal_documents_by_category)),
        IndexSpec("status", MEMBERSHIP, by_field("status", KeySpace.legal_documents_by_status)),
        IndexSpec("envelope", LOOKUP, by_field("envelope_id", KeySpace.envelope_document)),
    ),
    owned=lambda ks, document: [ks.document_audit_events(document.id)],
)

DOCUMENT_AUDIT_EVENT_INDEXES = EntityIndexes(
    entity_type="document_audit_event",
    record_key=KeySpace.document_audit_event,
    indexes=(
        IndexSpec(
            "document",
            ORDERED,
            by_field("document_id", KeySpace.document_audit_events),
            score=lambda event: timestamp_score(event.timestamp),
        ),
    ),
)

CREDENTIAL_INDEXES = EntityIndexes(
    entity_type="credential",
    record_key=KeySpace.credential,
    indexes=(
        IndexSpec("partner", ORDERED, by_field("partner_id", KeySpace.partner_credentials), score=created_score),
        IndexSpec("all", ORDERED, constant(KeySpace.all_credentials), score=created_score),
        IndexSpec("status", MEMBERSHIP, by_field("status", KeySpace.credentials_by_status)),
        IndexSpec("email", LOOKUP, by_field("holder_email", KeySpace.credential_by_email)),
    ),
)

CERTIFICATION_INDEXES = EntityIndexes(
    entity_type="certification",
    record_key=KeySpace.certification,
    indexes=(
        IndexSpec("user", MEMBERSHIP, by_field("user_id", KeySpace.user_certifications)),
        IndexSpec("partner", MEMBERSHIP, by_field("partner_id", KeySpace.partner_certifications)),
    ),
)

COMMISSION_INDEXES = EntityIndexes(
    entity_type="commission",
    record_key=KeySpace.commission,
    indexes=(
        IndexSpec("partner", MEMBERSHIP, by_field("partner_id", KeySpace.partner_commissions)),
        IndexSpec("status", MEMBERSHIP, by_field("status", KeySpace.commissions_by_status)),
        IndexSpec("deal", LOOKUP, by_field("deal_id", KeySpace.deal_commission)),
    ),
)

TRAINING_COURSE_INDEXES = EntityIndexes(
    entity_type="training_course",
    record_key=KeySpace.training_course,
    indexes=(
        IndexSpec("all", ORDERED, constant(KeySpace.all_training_courses), score=lambda c: float(c.order)),
        IndexSpec("category", MEMBERSHIP, by_field("category", KeySpace.training_courses_by_category)),
        IndexSpec("published", MEMBERSHIP, when(lambda c: c.is_published, KeySpace.published_training_courses)),
    ),
    owned=_course_children,
)

TRAINING_CERTIFICATION_INDEXES = EntityIndexes(
    entity_type="training_certification",
    record_key=KeySpace.training_certification,
    indexes=(
        IndexSpec("all", MEMBERSHIP, constant(KeySpace.all_training_certifications)),
        IndexSpec("status", MEMBERSHIP, by_field("status", KeySpace.training_certifications_by_status)),
    ),
)


def _audit_score(log: AuditLog) -> float:
    return timestamp_score(log.timestamp)


AUDIT_LOG_INDEXES = EntityIndexes(
    entity_type="audit_log",
    record_key=KeySpace.audit_log,
    indexes=(
        IndexSpec("all", ORDERED, constant(KeySpace.all_audit_logs), score=_audit_score),
        IndexSpec(
            "entity",
            ORDERED,
            lambda ks, log: ks.audit_logs_by_entity(log.entity_type, log.entity_id),
            score=_audit_score,
        ),
        IndexSpec("actor", ORDERED, by_field("actor_id", KeySpace.audit_logs_by_actor), score=_audit_score),
        IndexSpec("action", ORDERED, by_field("action", KeySpace.audit_logs_by_action), score=_audit_score),
    ),
)

ENTITY_INDEXES: dict[str, EntityIndexes] = {
    table.entity_type: table
    for table in (
        PARTNER_INDEXES,
        USER_INDEXES,
        DEAL_INDEXES,
        QUOTE_INDEXES,
        LEGAL_DOCUMENT_INDEXES,
        DOCUMENT_AUDIT_EVENT_INDEXES,
        CREDENTIAL_INDEXES,
        CERTIFICATION_INDEXES,
        COMMISSION_INDEXES,
        TRAINING_COURSE_INDEXES,
        TRAINING_CERTIFICATION_INDEXES,
        AUDIT_LOG_INDEXES,
    )
}

ENTITY_MODELS: dict[str, type] = {
    "partner": Partner,
    "user": User,
    "deal": Deal,
    "quote": Quote,
    "legal_document": LegalDocument,
    "document_audit_event": DocumentAuditEvent,
    "credential": Credential,
    "certification": Certification,
    "commission": Commission,
    "training_course": TrainingCourse,
    "training_certification": TrainingCertification,
    "audit_log": AuditLog,
}
