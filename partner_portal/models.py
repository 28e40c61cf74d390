from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, Field


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def timestamp_score(value: str | None) -> float:
    """Milliseconds since the epoch for an ISO-8601 timestamp; 0 when unparseable."""
    if not value:
        return 0.0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return float(int(parsed.timestamp() * 1000))


def _blank_to_none(value: Any) -> Any:
    return None if value == "" else value


# Optional text is stored as "" when absent, so "" and None are the same value.
OptionalText = Annotated[str | None, BeforeValidator(_blank_to_none)]


class MeddicScores(BaseModel):
    metrics: int = 0
    economic_buyer: int = 0
    decision_criteria: int = 0
    decision_process: int = 0
    identify_pain: int = 0
    champion: int = 0


class Partner(BaseModel):
    id: str
    name: str = ""
    company_name: str = ""
    email: str = ""
    phone: str = ""
    contact_name: str = ""
    contact_email: str = ""
    country: OptionalText = None
    tier: str = "bronze"
    rating: float = 0.0
    status: str = "active"
    certifications: list[str] = Field(default_factory=list)
    legal_docs_signed_at: OptionalText = None
    total_deals: int = 0
    won_deals: int = 0
    total_revenue: float = 0.0
    suspended_at: OptionalText = None
    suspended_by: OptionalText = None
    suspended_reason: OptionalText = None
    created_at: str = ""
    updated_at: str = ""


class User(BaseModel):
    id: str
    partner_id: str = ""
    email: str = ""
    name: str = ""
    role: str = "sales"
    password_hash: str = ""
    created_at: str = ""
    updated_at: str = ""


class Deal(BaseModel):
    id: str
    partner_id: str = ""
    company_name: str = ""
    company_domain: OptionalText = None
    contact_name: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    deal_value: float = 0.0
    currency: str = "USD"
    status: str = "pending_approval"
    stage: OptionalText = None
    notes: str = ""
    meddic: MeddicScores | None = None
    population: int = 0
    partner_generated_lead: bool = False
    exclusivity_expires_at: OptionalText = None
    created_by: OptionalText = None
    created_at: str = ""
    updated_at: str = ""


class Quote(BaseModel):
    id: str
    deal_id: str = ""
    partner_id: str = ""
    version: int = 1
    status: str = "draft"
    products: list[dict[str, Any]] = Field(default_factory=list)
    services: list[dict[str, Any]] = Field(default_factory=list)
    discounts: list[dict[str, Any]] = Field(default_factory=list)
    subtotal: float = 0.0
    total_discount: float = 0.0
    total: float = 0.0
    currency: str = "USD"
    created_at: str = ""
    updated_at: str = ""


class LegalDocument(BaseModel):
    id: str
    partner_id: str = ""
    title: str = ""
    category: str = "contract"
    status: str = "draft"
    version: int = 1
    requires_signature: bool = False
    docusign_metadata: dict[str, Any] | None = None
    upload_metadata: dict[str, Any] | None = None
    created_at: str = ""
    updated_at: str = ""

    @property
    def envelope_id(self) -> str | None:
        if not self.docusign_metadata:
            return None
        value = self.docusign_metadata.get("envelope_id")
        return str(value) if value else None


class DocumentAuditEvent(BaseModel):
    """One entry of a legal document's own activity log (views, signatures, downloads)."""

    id: str
    document_id: str = ""
    action: str = ""
    actor_type: str = "partner"
    actor_id: OptionalText = None
    actor_name: OptionalText = None
    details: dict[str, Any] | None = None
    ip_address: OptionalText = None
    user_agent: OptionalText = None
    timestamp: str = ""


class Credential(BaseModel):
    """A partner credential (verifiable identity issued to a partner employee)."""

    id: str
    partner_id: str = ""
    holder_name: str = ""
    holder_email: str = ""
    role: str = ""
    status: str = "issued"
    issued_at: OptionalText = None
    claimed_at: OptionalText = None
    revoked_at: OptionalText = None
    revoked_by: OptionalText = None
    revoked_reason: OptionalText = None
    created_at: str = ""
    updated_at: str = ""


class Certification(BaseModel):
    id: str
    user_id: str = ""
    partner_id: str = ""
    type: str = "sales_fundamentals"
    status: str = "active"
    issued_at: str = ""
    expires_at: OptionalText = None


class Commission(BaseModel):
    id: str
    partner_id: str = ""
    deal_id: str = ""
    amount: float = 0.0
    currency: str = "USD"
    status: str = "pending"
    paid_at: OptionalText = None
    created_at: str = ""


class Actor(BaseModel):
    id: str
    name: str = ""
    type: str = "user"


class AuditLog(BaseModel):
    id: str
    actor_id: str = ""
    actor_name: str = ""
    actor_type: str = "user"
    action: str = ""
    entity_type: str = ""
    entity_id: str = ""
    entity_name: OptionalText = None
    changes: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    timestamp: str = ""
    ip_address: OptionalText = None
    user_agent: OptionalText = None


class TrainingModule(BaseModel):
    id: str
    title: dict[str, str] = Field(default_factory=dict)
    description: dict[str, str] = Field(default_factory=dict)
    duration: int = 0
    order: int = 0
    passing_score: int = 70
    quiz: list[dict[str, Any]] = Field(default_factory=list)

    def display_name(self, fallback: str) -> str:
        return self.title.get("en") or self.title.get("es") or self.title.get("pt") or fallback


class TrainingCourse(BaseModel):
    id: str
    title: dict[str, str] = Field(default_factory=dict)
    description: dict[str, str] = Field(default_factory=dict)
    category: str = "sales"
    modules: list[TrainingModule] = Field(default_factory=list)
    is_published: bool = False
    is_required: bool = False
    certificate_enabled: bool = False
    required_for_tiers: list[str] | None = None
    duration: int = 0
    passing_score: int = 70
    order: int = 0
    created_at: str = ""
    updated_at: str = ""


class CourseProgress(BaseModel):
    """Per-user progress through one course; keyed by user and course rather than an id."""

    user_id: str
    course_id: str = ""
    status: str = "not_started"
    module_progress: list[dict[str, Any]] = Field(default_factory=list)
    overall_score: float = 0.0
    started_at: str = ""
    completed_at: OptionalText = None
    last_accessed_at: str = ""
    total_time_spent_minutes: int = 0
    certificate_id: OptionalText = None


class TrainingCertification(BaseModel):
    id: str
    user_id: str = ""
    course_id: str = ""
    course_name: dict[str, str] = Field(default_factory=dict)
    user_name: str = ""
    user_email: str = ""
    status: str = "issued"
    issued_at: str = ""
    claimed_at: OptionalText = None
    expires_at: OptionalText = None
    credential_url: OptionalText = None
    verification_code: str = ""
    score: float = 0.0


class TierChange(BaseModel):
    tier: str
    changed_at: str
    reason: str = "manual"
    previous_tier: OptionalText = None
