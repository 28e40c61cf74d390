import asyncio

import pytest

from partner_portal.errors import PreconditionFailed
from partner_portal.models import Certification, Deal, LegalDocument, Partner, User


def test_achievements_are_recorded_listed_and_removed(portal):
    async def scenario():
        stamped = await portal.achievements.record("p1", "first_deal", "2024-03-01T00:00:00Z")
        await portal.achievements.record("p1", "ten_deals")
        listed = await portal.achievements.get("p1")
        removed = await portal.achievements.remove("p1", "first_deal")
        removed_again = await portal.achievements.remove("p1", "first_deal")
        return stamped, listed, removed, removed_again, await portal.achievements.get("p1")

    stamped, listed, removed, removed_again, after = asyncio.run(scenario())
    assert stamped == "2024-03-01T00:00:00Z"
    assert listed["first_deal"] == "2024-03-01T00:00:00Z"
    assert listed["ten_deals"]
    assert (removed, removed_again) == (True, False)
    assert list(after) == ["ten_deals"]
    with pytest.raises(ValueError):
        asyncio.run(portal.achievements.record("p1", "  "))


def test_annual_progress_defaults_to_zero_and_counts_up(portal, kv):
    async def scenario():
        empty = await portal.annual_progress.get("p1")
        updated = await portal.annual_progress.update("p1", opportunities=4, certifications=None)
        await portal.annual_progress.increment("p1", "deals_won")
        won = await portal.annual_progress.increment("p1", "deals_won", 2)
        return empty, updated, won, await portal.annual_progress.get("p1")

    empty, updated, won, current = asyncio.run(scenario())
    assert empty == {"opportunities": 0, "deals_won": 0, "certifications": 0}
    assert updated == {"opportunities": 4, "deals_won": 0, "certifications": 0}
    assert won == 3
    assert current == {"opportunities": 4, "deals_won": 3, "certifications": 0}


def test_annual_progress_rejects_unknown_metrics_and_tolerates_junk(portal, kv):
    with pytest.raises(ValueError):
        asyncio.run(portal.annual_progress.update("p1", revenue=10))
    with pytest.raises(ValueError):
        asyncio.run(portal.annual_progress.increment("p1", "revenue"))

    async def scenario():
        await kv.hset("partner:p1:annual:progress", {"opportunities": "lots", "deals_won": "2"})
        return await portal.annual_progress.get("p1")

    assert asyncio.run(scenario()) == {"opportunities": 0, "deals_won": 2, "certifications": 0}


def test_partner_delete_clears_achievements_and_annual_progress(portal, kv):
    async def scenario():
        await portal.partners.create(Partner(id="p1", company_name="Acme"))
        await portal.achievements.record("p1", "first_deal")
        await portal.annual_progress.increment("p1", "opportunities")
        await portal.partners.delete("p1")
        return await kv.exists("partner:p1:achievements"), await kv.exists("partner:p1:annual:progress")

    assert asyncio.run(scenario()) == (False, False)


def test_document_audit_events_are_newest_first(portal):
    async def scenario():
        await portal.documents.create(LegalDocument(id="doc_1", partner_id="p1", title="NDA"))
        await portal.documents.add_audit_event(
            "doc_1", "viewed", actor_id="u1", actor_name="Ana", timestamp="2024-05-01T10:00:00Z"
        )
        await portal.documents.add_audit_event(
            "doc_1",
            "signed",
            actor_type="admin",
            actor_id="admin_1",
            details={"envelope_id": "env-1"},
            ip_address="10.0.0.1",
            timestamp="2024-05-02T10:00:00Z",
        )
        return await portal.documents.get_audit_events("doc_1"), await portal.documents.get_audit_events("doc_1", 1)

    events, latest = asyncio.run(scenario())
    assert [e.action for e in events] == ["signed", "viewed"]
    assert events[0].details == {"envelope_id": "env-1"}
    assert events[0].actor_type == "admin"
    assert events[1].ip_address is None
    assert [e.action for e in latest] == ["signed"]


def test_document_audit_events_need_a_document_and_a_known_actor(portal):
    with pytest.raises(PreconditionFailed):
        asyncio.run(portal.documents.add_audit_event("missing", "viewed"))

    asyncio.run(portal.documents.create(LegalDocument(id="doc_1")))
    with pytest.raises(ValueError):
        asyncio.run(portal.documents.add_audit_event("doc_1", "viewed", actor_type="robot"))
    with pytest.raises(ValueError):
        asyncio.run(portal.documents.add_audit_event("doc_1", ""))


def test_document_delete_removes_its_audit_events(portal, kv):
    async def scenario():
        await portal.documents.create(LegalDocument(id="doc_1", partner_id="p1"))
        await portal.documents.add_audit_event("doc_1", "viewed")
        await portal.documents.add_audit_event("doc_1", "downloaded")
        await portal.documents.delete("doc_1")
        return await kv.scan_keys("legal:"), await portal.documents.get_audit_events("doc_1")

    remaining, events = asyncio.run(scenario())
    assert remaining == []
    assert events == []


def _seed_team(portal):
    async def scenario():
        for user_id, name in (("u1", "Ana"), ("u2", "Bo"), ("u3", "Cy")):
            await portal.users.create(User(id=user_id, partner_id="p1", name=name, email=f"{user_id}@acme.io"))
        await portal.users.create(User(id="u9", partner_id="p2", name="Other", email="u9@globex.io"))
        await portal.deals.create(
            Deal(id="d1", partner_id="p1", created_by="u1", status="closed_won", deal_value=1500.0)
        )
        await portal.deals.create(Deal(id="d2", partner_id="p1", created_by="u1"))
        await portal.deals.create(
            Deal(id="d3", partner_id="p1", created_by="u2", status="closed_won", deal_value=5000.0)
        )
        await portal.deals.create(Deal(id="d4", partner_id="p1", status="closed_lost", deal_value=900.0))
        await portal.certifications.create(Certification(id="c1", user_id="u2", partner_id="p1"))
        await portal.certifications.create(Certification(id="c2", user_id="u2", partner_id="p1", type="technical"))
        await portal.certifications.create(Certification(id="c3", user_id="u3", partner_id="p1"))
        await portal.achievements.record("p1", "first_deal")

    asyncio.run(scenario())


def test_team_performance_rolls_up_the_partner(portal):
    _seed_team(portal)
    performance = asyncio.run(portal.team.team_performance("p1"))
    assert performance == {
        "total_deals": 4,
        "active_deals": 1,
        "won_deals": 2,
        "lost_deals": 1,
        "total_revenue": 6500.0,
        "team_size": 3,
        "certified_members": 2,
        "total_certifications": 3,
        "total_achievements": 1,
    }


def test_members_performance_credits_deals_to_their_creator(portal):
    _seed_team(portal)
    rows = {row["user_id"]: row for row in asyncio.run(portal.team.members_performance("p1"))}
    assert sorted(rows) == ["u1", "u2", "u3"]
    assert (rows["u1"]["deals"], rows["u1"]["won_deals"], rows["u1"]["revenue"]) == (2, 1, 1500.0)
    assert rows["u1"]["training_progress"] == 0
    assert (rows["u2"]["certifications"], rows["u2"]["training_progress"]) == (2, 100)
    assert rows["u3"]["deals"] == 0


def test_top_performers_by_each_metric(portal):
    _seed_team(portal)

    async def scenario():
        return (
            await portal.team.top_performers("p1", by="deals", limit=2),
            await portal.team.top_performers("p1", by="revenue", limit=2),
            await portal.team.top_performers("p1", by="certifications", limit=2),
        )

    by_deals, by_revenue, by_certs = asyncio.run(scenario())
    assert [(p["user_id"], p["label"]) for p in by_deals] == [("u1", "2 deals"), ("u2", "1 deal")]
    assert [(p["user_id"], p["label"]) for p in by_revenue] == [("u2", "$5,000"), ("u1", "$1,500")]
    assert [(p["user_id"], p["label"]) for p in by_certs] == [("u2", "2 certs"), ("u3", "1 cert")]
    with pytest.raises(ValueError):
        asyncio.run(portal.team.top_performers("p1", by="achievements"))
