"""Storage locations for every entity, index, lookup and cache entry.

Every function here is pure. Identifier segments are validated so that two
distinct identifiers can never produce the same key: a segment must be
non-empty and must not contain the ``:`` separator. Free-text dimensions
(emails, company domains) are lower-cased inside the key function itself, so
readers and writers always agree on the normalized form.
"""

from __future__ import annotations

SEPARATOR = ":"
CACHE_PREFIX = "cache"


def _segment(value: object) -> str:
    text = str(value) if value is not None else ""
    if not text:
        raise ValueError("key segment must not be empty")
    if SEPARATOR in text:
        raise ValueError(f"key segment must not contain '{SEPARATOR}': {text!r}")
    return text


def _free_text(value: object) -> str:
    return _segment(str(value if value is not None else "").strip().lower())


class KeySpace:
    def __init__(self, namespace: str = "") -> None:
        namespace = namespace.strip()
        if namespace:
            _segment(namespace)
        self._namespace = namespace

    @property
    def namespace(self) -> str:
        return self._namespace

    def _key(self, *parts: str) -> str:
        if self._namespace:
            return SEPARATOR.join((self._namespace, *parts))
        return SEPARATOR.join(parts)

    def record_prefix(self, entity_type: str) -> str:
        """Prefix shared by all primary records of one entity type."""
        return self._key(*_RECORD_PREFIXES[entity_type]) + SEPARATOR

    # Partners
    def partner(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id))

    def partners_by_tier(self, tier: str) -> str:
        return self._key("partners", "by-tier", _segment(tier))

    def partners_by_status(self, status: str) -> str:
        return self._key("partners", "by-status", _segment(status))

    def partners_by_country(self, country: str) -> str:
        return self._key("partners", "by-country", _segment(country))

    def all_partners(self) -> str:
        return self._key("partners", "all")

    def partner_users(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "users")

    def partner_deals(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "deals")

    def partner_quotes(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "quotes")

    def partner_credentials(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "credentials")

    def partner_legal_documents(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "legal", "documents")

    def partner_commissions(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "commissions")

    def partner_certifications(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "certifications")

    def partner_tier_history(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "tier", "history")

    def partner_achievements(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "achievements")

    def partner_annual_progress(self, partner_id: str) -> str:
        return self._key("partner", _segment(partner_id), "annual", "progress")

    # Users
    def user(self, user_id: str) -> str:
        return self._key("user", _segment(user_id))

    def user_by_email(self, email: str) -> str:
        return self._key("users", "by-email", _free_text(email))

    def user_certifications(self, user_id: str) -> str:
        return self._key("user", _segment(user_id), "certifications")

    # Deals
    def deal(self, deal_id: str) -> str:
        return self._key("deal", _segment(deal_id))

    def deals_by_status(self, status: str) -> str:
        return self._key("deals", "by-status", _segment(status))

    def deals_by_stage(self, stage: str) -> str:
        return self._key("deals", "by-stage", _segment(stage))

    def deals_by_domain(self, domain: str) -> str:
        return self._key("deals", "by-domain", _free_text(domain))

    def all_deals(self) -> str:
        return self._key("deals", "all")

    def deal_quotes(self, deal_id: str) -> str:
        return self._key("deal", _segment(deal_id), "quotes")

    def deal_commission(self, deal_id: str) -> str:
        return self._key("deal", _segment(deal_id), "commission")

    # Quotes
    def quote(self, quote_id: str) -> str:
        return self._key("quote", _segment(quote_id))

    # Legal documents
    def legal_document(self, document_id: str) -> str:
        return self._key("legal", "v2", "document", _segment(document_id))

    def legal_documents_by_category(self, category: str) -> str:
        return self._key("legal", "documents", "category", _segment(category))

    def legal_documents_by_status(self, status: str) -> str:
        return self._key("legal", "documents", "status", _segment(status))

    def all_legal_documents(self) -> str:
        return self._key("legal", "documents", "all")

    def envelope_document(self, envelope_id: str) -> str:
        return self._key("legal", "envelope", _segment(envelope_id))

    def document_audit_event(self, event_id: str) -> str:
        return self._key("legal", "audit", "event", _segment(event_id))

    def document_audit_events(self, document_id: str) -> str:
        return self._key("legal", "audit", "document", _segment(document_id))

    # Partner credentials
    def credential(self, credential_id: str) -> str:
        return self._key("credential", _segment(credential_id))

    def credentials_by_status(self, status: str) -> str:
        return self._key("credentials", "by-status", _segment(status))

    def all_credentials(self) -> str:
        return self._key("credentials", "all")

    def credential_by_email(self, email: str) -> str:
        return self._key("credentials", "by-email", _free_text(email))

    # Certifications
    def certification(self, certification_id: str) -> str:
        return self._key("certification", _segment(certification_id))

    # Commissions
    def commission(self, commission_id: str) -> str:
        return self._key("commission", _segment(commission_id))

    def commissions_by_status(self, status: str) -> str:
        return self._key("commissions", "by-status", _segment(status))

    # Training courses
    def training_course(self, course_id: str) -> str:
        return self._key("training", "course", _segment(course_id))

    def all_training_courses(self) -> str:
        return self._key("training", "courses", "all")

    def training_courses_by_category(self, category: str) -> str:
        return self._key("training", "courses", "category", _segment(category))

    def published_training_courses(self) -> str:
        return self._key("training", "courses", "published")

    # Training progress and certifications
    def course_enrollments(self, course_id: str) -> str:
        return self._key("training", "enrollments", _segment(course_id))

    def course_completions(self, course_id: str) -> str:
        return self._key("training", "completions", _segment(course_id))

    def module_enrollments(self, course_id: str, module_id: str) -> str:
        return self._key("training", "module", "enrolled", _segment(course_id), _segment(module_id))

    def module_completions(self, course_id: str, module_id: str) -> str:
        return self._key("training", "module", "completed", _segment(course_id), _segment(module_id))

    def course_progress(self, user_id: str, course_id: str) -> str:
        return self._key("training", "progress", _segment(user_id), _segment(course_id))

    def enrollments_on(self, day: str) -> str:
        return self._key("training", "enrollment", "date", _segment(day))

    def completions_on(self, day: str) -> str:
        return self._key("training", "completion", "date", _segment(day))

    def training_certification(self, certification_id: str) -> str:
        return self._key("training", "certification", _segment(certification_id))

    def all_training_certifications(self) -> str:
        return self._key("training", "certifications", "all")

    def training_certifications_by_status(self, status: str) -> str:
        return self._key("training", "certifications", "status", _segment(status))

    # Audit trail
    def audit_log(self, audit_id: str) -> str:
        return self._key("audit", "log", _segment(audit_id))

    def all_audit_logs(self) -> str:
        return self._key("audit", "logs", "all")

    def audit_logs_by_entity(self, entity_type: str, entity_id: str) -> str:
        return self._key("audit", "logs", "entity", _segment(entity_type), _segment(entity_id))

    def audit_logs_by_actor(self, actor_id: str) -> str:
        return self._key("audit", "logs", "actor", _segment(actor_id))

    def audit_logs_by_action(self, action: str) -> str:
        return self._key("audit", "logs", "action", _segment(action))

    # Cached aggregates
    def cache(self, *parts: str) -> str:
        return self._key(CACHE_PREFIX, *(_segment(p) for p in parts))

    def course_analytics_cache(self, course_id: str) -> str:
        return self.cache("training", "analytics", "course", course_id)

    def course_analytics_cache_prefix(self) -> str:
        return self.cache("training", "analytics", "course") + SEPARATOR

    def overview_metrics_cache(self) -> str:
        return self.cache("training", "analytics", "overview")

    def credential_analytics_cache(self) -> str:
        return self.cache("training", "analytics", "credentials")


_RECORD_PREFIXES: dict[str, tuple[str, ...]] = {
    "partner": ("partner",),
    "user": ("user",),
    "deal": ("deal",),
    "quote": ("quote",),
    "legal_document": ("legal", "v2", "document"),
    "document_audit_event": ("legal", "audit", "event"),
    "credential": ("credential",),
    "certification": ("certification",),
    "commission": ("commission",),
    "training_course": ("training", "course"),
    "training_certification": ("training", "certification"),
    "audit_log": ("audit", "log"),
}


keys = KeySpace()
