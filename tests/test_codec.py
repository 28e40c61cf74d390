import pytest

from partner_portal.codec import codec_for
from partner_portal.indexes import ENTITY_INDEXES, ENTITY_MODELS
from partner_portal.models import (
    AuditLog,
    Certification,
    Commission,
    CourseProgress,
    Credential,
    Deal,
    DocumentAuditEvent,
    LegalDocument,
    MeddicScores,
    Partner,
    Quote,
    TrainingCertification,
    TrainingCourse,
    TrainingModule,
    User,
)


def test_false_boolean_survives_round_trip():
    codec = codec_for(Deal)
    deal = Deal(id="d1", partner_id="p1", partner_generated_lead=False)
    encoded = codec.encode(deal)
    assert encoded["partner_generated_lead"] == "false"
    decoded = codec.decode(encoded)
    assert decoded is not None
    assert decoded.partner_generated_lead is False


def test_nested_fields_are_single_json_strings():
    codec = codec_for(Deal)
    deal = Deal(id="d1", meddic=MeddicScores(metrics=3, champion=5))
    encoded = codec.encode(deal)
    assert isinstance(encoded["meddic"], str)
    assert '"champion": 5' in encoded["meddic"]
    assert codec.decode(encoded).meddic == MeddicScores(metrics=3, champion=5)

    course = TrainingCourse(
        id="c1",
        title={"en": "Basics"},
        modules=[TrainingModule(id="m1", title={"es": "Uno"}, order=1)],
        is_published=True,
    )
    course_codec = codec_for(TrainingCourse)
    restored = course_codec.decode(course_codec.encode(course))
    assert restored == course


def test_none_encodes_empty_and_decodes_back_to_none():
    codec = codec_for(Partner)
    partner = Partner(id="p1", country=None, suspended_at=None)
    encoded = codec.encode(partner)
    assert encoded["country"] == ""
    decoded = codec.decode(encoded)
    assert decoded.country is None
    assert decoded.suspended_at is None


def test_missing_and_unparseable_fields_fall_back_to_defaults():
    codec = codec_for(Partner)
    decoded = codec.decode({"id": "p1", "rating": "not-a-number", "total_deals": "7x"})
    assert decoded.rating == 0.0
    assert decoded.total_deals == 0
    assert decoded.tier == "bronze"
    assert decoded.certifications == []


def test_broken_json_field_decodes_to_empty_value():
    codec = codec_for(LegalDocument)
    decoded = codec.decode({"id": "doc_1", "docusign_metadata": "{not json"})
    assert decoded is not None
    assert decoded.docusign_metadata is None


def test_record_without_identifier_is_not_found():
    codec = codec_for(Partner)
    assert codec.decode({}) is None
    assert codec.decode(None) is None
    assert codec.decode({"id": "", "name": "ghost"}) is None


def test_numbers_round_trip_base_ten():
    codec = codec_for(Partner)
    partner = Partner(id="p1", rating=4.75, total_deals=12, total_revenue=1250000.5)
    decoded = codec.decode(codec.encode(partner))
    assert decoded.rating == 4.75
    assert decoded.total_deals == 12
    assert decoded.total_revenue == 1250000.5


def test_encode_fields_uses_the_same_field_table():
    codec = codec_for(Partner)
    assert codec.encode_fields({"rating": 3.5, "country": None}) == {"rating": "3.5", "country": ""}
    try:
        codec.encode_fields({"nope": 1})
    except ValueError as exc:
        assert "nope" in str(exc)
    else:
        raise AssertionError("expected ValueError for unknown field")


def test_codec_is_built_once_per_model():
    assert codec_for(Partner) is codec_for(Partner)


TS = "2024-05-01T10:00:00Z"
LATER = "2024-05-02T11:30:00Z"

SAMPLES = {
    "partner": Partner(
        id="p1",
        name="Ana",
        company_name="Acme",
        email="ana@acme.io",
        phone="+54 11 5555",
        contact_name="Ana Diaz",
        contact_email="ops@acme.io",
        country="AR",
        tier="gold",
        rating=4.5,
        status="suspended",
        certifications=["sales_fundamentals", "technical"],
        legal_docs_signed_at=TS,
        total_deals=9,
        won_deals=4,
        total_revenue=125000.75,
        suspended_at=LATER,
        suspended_by="admin_1",
        suspended_reason="overdue contract",
        created_at=TS,
        updated_at=LATER,
    ),
    "user": User(
        id="u1",
        partner_id="p1",
        email="ana@acme.io",
        name="Ana",
        role="admin",
        password_hash="bcrypt$abc",
        created_at=TS,
        updated_at=LATER,
    ),
    "deal": Deal(
        id="d1",
        partner_id="p1",
        company_name="Globex",
        company_domain="globex.com",
        contact_name="Hank",
        contact_email="hank@globex.com",
        contact_phone="+1 555 0100",
        deal_value=48000.5,
        currency="EUR",
        status="approved",
        stage="negotiation",
        notes="multi-year",
        meddic=MeddicScores(
            metrics=1,
            economic_buyer=2,
            decision_criteria=3,
            decision_process=4,
            identify_pain=5,
            champion=6,
        ),
        population=120000,
        partner_generated_lead=False,
        exclusivity_expires_at=LATER,
        created_by="u1",
        created_at=TS,
        updated_at=LATER,
    ),
    "quote": Quote(
        id="q1",
        deal_id="d1",
        partner_id="p1",
        version=3,
        status="sent",
        products=[{"sku": "ID-1", "qty": 2}],
        services=[{"name": "onboarding", "hours": 10}],
        discounts=[{"type": "volume", "percent": 5}],
        subtotal=1000.0,
        total_discount=50.0,
        total=950.0,
        currency="EUR",
        created_at=TS,
        updated_at=LATER,
    ),
    "legal_document": LegalDocument(
        id="doc_1",
        partner_id="p1",
        title="Reseller agreement",
        category="nda",
        status="signed",
        version=2,
        requires_signature=True,
        docusign_metadata={"envelope_id": "env-1", "signers": ["ana@acme.io"]},
        upload_metadata={"size": 2048},
        created_at=TS,
        updated_at=LATER,
    ),
    "document_audit_event": DocumentAuditEvent(
        id="docaudit_1",
        document_id="doc_1",
        action="signed",
        actor_type="admin",
        actor_id="u1",
        actor_name="Ana",
        details={"envelope_id": "env-1", "reminders": 2},
        ip_address="10.0.0.1",
        user_agent="pytest",
        timestamp=LATER,
    ),
    "credential": Credential(
        id="cred_1",
        partner_id="p1",
        holder_name="Ana",
        holder_email="ana@acme.io",
        role="sales",
        status="revoked",
        issued_at=TS,
        claimed_at=TS,
        revoked_at=LATER,
        revoked_by="admin_1",
        revoked_reason="left company",
        created_at=TS,
        updated_at=LATER,
    ),
    "certification": Certification(
        id="cert_1",
        user_id="u1",
        partner_id="p1",
        type="technical",
        status="expired",
        issued_at=TS,
        expires_at=LATER,
    ),
    "commission": Commission(
        id="com_1",
        partner_id="p1",
        deal_id="d1",
        amount=4800.25,
        currency="EUR",
        status="paid",
        paid_at=LATER,
        created_at=TS,
    ),
    "training_course": TrainingCourse(
        id="c1",
        title={"en": "Basics", "es": "Basico"},
        description={"en": "Start here"},
        category="technical",
        modules=[
            TrainingModule(
                id="m1",
                title={"en": "Intro"},
                description={"en": "Overview"},
                duration=15,
                order=1,
                passing_score=80,
                quiz=[{"question": "?", "answer": 1}],
            )
        ],
        is_published=True,
        is_required=False,
        certificate_enabled=True,
        required_for_tiers=["gold", "platinum"],
        duration=90,
        passing_score=75,
        order=2,
        created_at=TS,
        updated_at=LATER,
    ),
    "training_certification": TrainingCertification(
        id="tc1",
        user_id="u1",
        course_id="c1",
        course_name={"en": "Basics"},
        user_name="Ana",
        user_email="ana@acme.io",
        status="claimed",
        issued_at=TS,
        claimed_at=LATER,
        expires_at="2025-05-01T00:00:00Z",
        credential_url="https://credentials.example/tc1",
        verification_code="VC-123",
        score=92.5,
    ),
    "audit_log": AuditLog(
        id="audit_1",
        actor_id="admin_1",
        actor_name="Ada",
        actor_type="admin",
        action="partner.suspended",
        entity_type="partner",
        entity_id="p1",
        entity_name="Acme",
        changes={"status": {"from": "active", "to": "suspended"}},
        metadata={"reason": "overdue"},
        timestamp=TS,
        ip_address="10.0.0.7",
        user_agent="pytest",
    ),
}


@pytest.mark.parametrize("entity_type", sorted(ENTITY_MODELS))
def test_every_entity_type_round_trips(entity_type):
    model = ENTITY_MODELS[entity_type]
    entity = SAMPLES[entity_type]
    assert isinstance(entity, model)
    assert entity.model_fields_set == set(model.model_fields)
    codec = codec_for(model, ENTITY_INDEXES[entity_type].id_field)
    assert codec.decode(codec.encode(entity)) == entity


def test_course_progress_round_trips_by_user_id():
    progress = CourseProgress(
        user_id="u1",
        course_id="c1",
        status="completed",
        module_progress=[{"module_id": "m1", "completed": False, "score": 80}],
        overall_score=88.5,
        started_at=TS,
        completed_at=LATER,
        last_accessed_at=LATER,
        total_time_spent_minutes=95,
        certificate_id="tc1",
    )
    assert progress.model_fields_set == set(CourseProgress.model_fields)
    codec = codec_for(CourseProgress, "user_id")
    assert codec.decode(codec.encode(progress)) == progress


def test_blank_optional_text_is_the_same_as_absent():
    deal = Deal(id="d1", company_domain="", stage="")
    assert deal.company_domain is None
    assert deal.stage is None
    codec = codec_for(Deal)
    assert codec.decode(codec.encode(deal)).model_dump() == deal.model_dump()
    partner_codec = codec_for(Partner)
    partner = Partner(id="p1", country="")
    assert partner_codec.decode(partner_codec.encode(partner)).country is None
