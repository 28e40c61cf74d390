import asyncio

import pytest

from partner_portal.errors import PreconditionFailed
from partner_portal.models import (
    Commission,
    Credential,
    Deal,
    LegalDocument,
    Partner,
    Quote,
    TrainingCourse,
    TrainingModule,
    User,
)


def test_deal_moves_between_status_buckets_and_leaves_nothing_on_delete(portal, kv):
    async def scenario():
        deal = await portal.deals.create(
            Deal(id="d1", partner_id="p1", company_name="Acme", company_domain="Acme.io", stage="discovery")
        )
        pending = await kv.smembers("deals:by-status:pending_approval")
        approved = await portal.deals.transition("d1", "approved")
        after = (
            await kv.smembers("deals:by-status:pending_approval"),
            await kv.smembers("deals:by-status:approved"),
        )
        listed = await portal.deals.list_by_status("approved")
        await portal.deals.delete("d1")
        remaining = await kv.scan_keys("deal")
        gone = await portal.deals.get("d1")
        return deal, pending, approved, after, listed, remaining, gone

    deal, pending, approved, after, listed, remaining, gone = asyncio.run(scenario())
    assert deal.status == "pending_approval"
    assert deal.created_at and deal.updated_at == deal.created_at
    assert pending == {"d1"}
    assert approved.status == "approved"
    assert after == (set(), {"d1"})
    assert [d.id for d in listed.items] == ["d1"]
    assert remaining == []
    assert gone is None
    assert asyncio.run(kv.zcard("partner:p1:deals")) == 0


def test_partner_tier_bronze_to_gold_keeps_one_bucket(portal, kv):
    async def scenario():
        await portal.partners.create(Partner(id="p1", company_name="Acme", tier="bronze", rating=4.2))
        await portal.partners.update("p1", tier="gold")
        return (
            await kv.zrange("partners:by-tier:bronze", 0, -1),
            await kv.zrange("partners:by-tier:gold", 0, -1),
            await kv.zscore("partners:by-tier:gold", "p1"),
            await portal.partners.get_by_tier("gold"),
        )

    bronze, gold, score, listed = asyncio.run(scenario())
    assert bronze == []
    assert gold == ["p1"]
    assert score == 4.2
    assert [p.tier for p in listed] == ["gold"]


def test_update_and_delete_of_missing_entity_raise_precondition_failed(portal):
    with pytest.raises(PreconditionFailed) as excinfo:
        asyncio.run(portal.partners.update("ghost", status="active"))
    assert excinfo.value.http_status == 412
    with pytest.raises(PreconditionFailed):
        asyncio.run(portal.deals.delete("ghost"))
    assert asyncio.run(portal.partners.get("ghost")) is None


def test_update_rejects_unknown_fields_and_identifier_changes(portal):
    asyncio.run(portal.partners.create(Partner(id="p1")))
    with pytest.raises(ValueError, match="unknown field"):
        asyncio.run(portal.partners.update("p1", colour="blue"))
    with pytest.raises(ValueError, match="identifier"):
        asyncio.run(portal.partners.update("p1", id="p2"))


def test_partner_delete_drops_owned_child_collections(portal, kv):
    async def scenario():
        await portal.partners.create(Partner(id="p1", country="AR"))
        await portal.users.create(User(id="u1", partner_id="p1", email="ana@acme.io"))
        await portal.deals.create(Deal(id="d1", partner_id="p1"))
        await portal.credentials.create(Credential(id="c1", partner_id="p1", holder_email="ana@acme.io"))
        await portal.tier_history.record_change("p1", "silver", reason="achievement")
        await portal.partners.delete("p1")
        return [
            await kv.exists("partner:p1"),
            await kv.exists("partner:p1:users"),
            await kv.exists("partner:p1:deals"),
            await kv.exists("partner:p1:credentials"),
            await kv.exists("partner:p1:tier:history"),
            await kv.exists("partners:by-country:AR"),
            await kv.zcard("partners:all"),
        ]

    assert asyncio.run(scenario()) == [False, False, False, False, False, False, 0]


def test_create_is_idempotent_by_identifier(portal, kv):
    async def scenario():
        await portal.partners.create(Partner(id="p1", status="active"))
        await portal.partners.create(Partner(id="p1", status="suspended"))
        return await kv.smembers("partners:by-status:active"), await kv.smembers("partners:by-status:suspended")

    assert asyncio.run(scenario()) == (set(), {"p1"})


def test_suspend_and_reactivate_partner(portal):
    async def scenario():
        await portal.partners.create(Partner(id="p1"))
        suspended = await portal.partners.suspend("p1", suspended_by="admin_1", reason="overdue contract")
        listed = await portal.partners.get_by_status("suspended")
        active = await portal.partners.reactivate("p1")
        return suspended, listed, active

    suspended, listed, active = asyncio.run(scenario())
    assert suspended.status == "suspended"
    assert suspended.suspended_by == "admin_1"
    assert [p.id for p in listed] == ["p1"]
    assert active.status == "active"
    assert active.suspended_at is None


def test_partner_search_matches_case_insensitively(portal):
    async def scenario():
        await portal.partners.create(Partner(id="p1", company_name="Acme Security", created_at="2024-01-01T00:00:00Z"))
        await portal.partners.create(Partner(id="p2", company_name="Globex", contact_email="ops@ACME.io", created_at="2024-02-01T00:00:00Z"))
        await portal.partners.create(Partner(id="p3", company_name="Initech", created_at="2024-03-01T00:00:00Z"))
        return await portal.partners.search("acme"), await portal.partners.search("  ")

    found, empty = asyncio.run(scenario())
    assert [p.id for p in found] == ["p2", "p1"]
    assert empty == []


def test_user_lookup_by_email_is_case_insensitive(portal):
    async def scenario():
        await portal.users.create(User(id="u1", partner_id="p1", email="Ana@Acme.io"))
        return await portal.users.get_by_email("ANA@acme.IO"), await portal.users.get_by_partner("p1")

    user, members = asyncio.run(scenario())
    assert user is not None and user.id == "u1"
    assert [u.id for u in members] == ["u1"]


def test_quote_versions_increase_per_deal(portal):
    async def scenario():
        first = await portal.quotes.next_version("d1")
        await portal.quotes.create(Quote(id="q1", deal_id="d1", partner_id="p1", version=first))
        second = await portal.quotes.next_version("d1")
        await portal.quotes.create(Quote(id="q2", deal_id="d1", partner_id="p1", version=second))
        quotes = await portal.quotes.get_for_deal("d1")
        return first, second, await portal.quotes.next_version("d1"), quotes

    first, second, third, quotes = asyncio.run(scenario())
    assert (first, second, third) == (1, 2, 3)
    assert [q.id for q in quotes] == ["q2", "q1"]


def test_legal_document_found_by_envelope(portal, kv):
    async def scenario():
        await portal.documents.create(
            LegalDocument(id="doc_1", partner_id="p1", docusign_metadata={"envelope_id": "env-9", "status": "sent"})
        )
        found = await portal.documents.get_by_envelope("env-9")
        await portal.documents.update("doc_1", docusign_metadata=None)
        after = await portal.documents.get_by_envelope("env-9")
        return found, after

    found, after = asyncio.run(scenario())
    assert found is not None and found.id == "doc_1"
    assert found.docusign_metadata["status"] == "sent"
    assert after is None


def test_revoke_all_credentials_for_partner(portal):
    async def scenario():
        await portal.credentials.create(Credential(id="c1", partner_id="p1", status="active", holder_email="a@p1.io"))
        await portal.credentials.create(Credential(id="c2", partner_id="p1", status="claimed", holder_email="b@p1.io"))
        await portal.credentials.create(Credential(id="c3", partner_id="p1", status="expired", holder_email="c@p1.io"))
        revoked = await portal.credentials.revoke_all_for_partner("p1", revoked_by="admin_1", reason="suspended")
        by_status = await portal.credentials.get_by_status("revoked")
        by_email = await portal.credentials.get_by_email("B@P1.io")
        return revoked, by_status, by_email

    revoked, by_status, by_email = asyncio.run(scenario())
    assert sorted(c.id for c in revoked) == ["c1", "c2"]
    assert sorted(c.id for c in by_status) == ["c1", "c2"]
    assert by_email.status == "revoked"
    assert by_email.revoked_reason == "suspended"


def test_commission_lookup_by_deal(portal):
    async def scenario():
        await portal.commissions.create(Commission(id="cm1", partner_id="p1", deal_id="d1", amount=120.0))
        return await portal.commissions.get_for_deal("d1"), await portal.commissions.get_for_deal("d2")

    found, missing = asyncio.run(scenario())
    assert found.amount == 120.0
    assert missing is None


def test_tier_history_is_newest_first(portal):
    async def scenario():
        await portal.partners.create(Partner(id="p1", tier="bronze"))
        await portal.tier_history.record_change("p1", "silver", reason="achievement")
        await asyncio.sleep(0.002)
        await portal.tier_history.record_change("p1", "gold", reason="annual_renewal")
        return await portal.tier_history.history("p1"), await portal.partners.get("p1")

    history, partner = asyncio.run(scenario())
    assert [entry.tier for entry in history] == ["gold", "silver"]
    assert history[0].previous_tier == "silver"
    assert partner.tier == "gold"


def test_courses_list_in_display_order_and_publish(portal):
    async def scenario():
        await portal.courses.create(TrainingCourse(id="c2", order=2))
        await portal.courses.create(TrainingCourse(id="c1", order=1, category="legal"))
        await portal.courses.publish("c2")
        return (
            [c.id for c in (await portal.courses.list_all()).items],
            [c.id for c in await portal.courses.get_published()],
            [c.id for c in await portal.courses.get_by_category("legal")],
        )

    assert asyncio.run(scenario()) == (["c1", "c2"], ["c2"], ["c1"])


def test_namespaced_portals_do_not_see_each_other(kv):
    from partner_portal.config import PortalSettings
    from partner_portal.portal import create_portal

    tenant_a = create_portal(kv, settings=PortalSettings(key_prefix="tenant_a"))
    tenant_b = create_portal(kv, settings=PortalSettings(key_prefix="tenant_b"))

    async def scenario():
        await tenant_a.partners.create(Partner(id="p1"))
        return await tenant_a.partners.get("p1"), await tenant_b.partners.get("p1")

    in_a, in_b = asyncio.run(scenario())
    assert in_a is not None
    assert in_b is None


def test_course_delete_leaves_no_module_sets_after_module_removal(portal, kv):
    async def scenario():
        await portal.courses.create(
            TrainingCourse(id="c1", modules=[TrainingModule(id="m1"), TrainingModule(id="m2")])
        )
        await portal.analytics.record_module_start("u1", "c1", "m2")
        await portal.analytics.record_module_completion("u1", "c1", "m2")
        await portal.courses.update("c1", modules=[TrainingModule(id="m1")])
        after_update = await kv.scan_keys("training:module:")
        await portal.courses.delete("c1")
        return after_update, await kv.scan_keys("training:module:")

    after_update, after_delete = asyncio.run(scenario())
    assert after_update == []
    assert after_delete == []


def test_blank_email_and_domain_do_not_break_writes(portal, kv):
    async def scenario():
        user = await portal.users.create(User(id="u1", partner_id="p1", email="  "))
        deal = await portal.deals.create(Deal(id="d1", partner_id="p1", company_domain=" "))
        return user, deal, await kv.scan_keys("users:by-email:"), await kv.scan_keys("deals:by-domain:")

    user, deal, emails, domains = asyncio.run(scenario())
    assert user.id == "u1"
    assert deal.id == "d1"
    assert emails == []
    assert domains == []


def test_domain_conflicts_list_other_deals_on_the_same_domain(portal):
    async def scenario():
        await portal.deals.create(Deal(id="d1", partner_id="p1", company_domain="Acme.io"))
        await portal.deals.create(Deal(id="d2", partner_id="p2", company_domain="acme.io"))
        await portal.deals.create(Deal(id="d3", partner_id="p3", company_domain="globex.com"))
        return (
            await portal.deals.domain_conflicts("ACME.io", exclude_deal_id="d1"),
            await portal.deals.domain_conflicts("acme.io"),
            await portal.deals.domain_conflicts(" "),
        )

    others, all_acme, blank = asyncio.run(scenario())
    assert others == ["d2"]
    assert all_acme == ["d1", "d2"]
    assert blank == []
