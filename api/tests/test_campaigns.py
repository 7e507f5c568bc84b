from datetime import datetime, timedelta

from fundry.auth import hash_password
from fundry.models import User

from conftest import ADMIN_HEADERS, create_campaign, register_user, commit, stripe_event


def test_create_campaign_starts_as_draft_with_private_link(client, founder):
    headers, _ = founder
    campaign = create_campaign(client, headers, activate=False)
    assert campaign["status"] == "draft"
    assert campaign["private_link"]
    assert campaign["minimum_investment"] == "25.00"
    assert campaign["discount_rate"] == "20.00"
    assert campaign["total_raised"] == "0.00"


def test_funding_goal_above_platform_cap_is_rejected(client, founder):
    headers, _ = founder
    resp = client.post(
        "/api/campaigns",
        json={"title": "Too Big", "short_pitch": "x", "funding_goal": "150000"},
        headers=headers,
    )
    assert resp.status_code == 400
    assert "$100,000.00" in resp.json()["detail"]


def test_non_positive_minimum_investment_is_rejected(client, founder):
    headers, _ = founder
    resp = client.post(
        "/api/campaigns",
        json={"title": "Zero", "short_pitch": "x", "funding_goal": "5000", "minimum_investment": "0"},
        headers=headers,
    )
    assert resp.status_code == 400


def test_investors_cannot_create_campaigns(client, investor):
    headers, _ = investor
    resp = client.post(
        "/api/campaigns",
        json={"title": "Nope", "short_pitch": "x", "funding_goal": "5000"},
        headers=headers,
    )
    assert resp.status_code == 403


def test_activation_notifies_founder(client, founder):
    headers, _ = founder
    create_campaign(client, headers)
    notes = client.get("/api/notifications", headers=headers).json()
    assert [n["title"] for n in notes] == ["Campaign Successfully Launched"]
    assert notes[0]["metadata"]["launched"] is True


def test_status_transitions_follow_lifecycle(client, founder):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    url = f"/api/campaigns/{campaign['id']}/status"
    assert client.post(url, json={"status": "paused"}, headers=headers).json()["status"] == "paused"
    assert client.post(url, json={"status": "active"}, headers=headers).json()["status"] == "active"
    assert client.post(url, json={"status": "closed"}, headers=headers).json()["status"] == "closed"

    resp = client.post(url, json={"status": "active"}, headers=headers)
    assert resp.status_code == 409


def test_admin_can_override_terminal_status(client, founder, db_session):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    url = f"/api/campaigns/{campaign['id']}/status"
    client.post(url, json={"status": "cancelled"}, headers=headers)
    assert client.post(url, json={"status": "active"}, headers=headers).status_code == 409

    db_session.add(User(email="ops@fundry.example", password_hash=hash_password("admin-pass-123"),
                        first_name="Ops", last_name="Team", user_type="admin"))
    db_session.commit()
    login = client.post("/api/admin/login", json={"email": "ops@fundry.example", "password": "admin-pass-123"})
    assert login.status_code == 200
    client.cookies.clear()
    admin_headers = {"X-Access-Token": login.json()["token"]}
    resp = client.post(url, json={"status": "active"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "active"


def test_other_founder_cannot_change_status(client, founder):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    other_headers, _ = register_user(client, "rival@example.com", "founder")
    resp = client.post(f"/api/campaigns/{campaign['id']}/status", json={"status": "paused"}, headers=other_headers)
    assert resp.status_code == 403


def test_unknown_status_is_rejected(client, founder):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    resp = client.post(f"/api/campaigns/{campaign['id']}/status", json={"status": "archived"}, headers=headers)
    assert resp.status_code == 400


def test_private_link_lookup(client, founder):
    headers, _ = founder
    draft = create_campaign(client, headers, activate=False)
    assert client.get(f"/api/campaigns/link/{draft['private_link']}").status_code == 404

    client.post(f"/api/campaigns/{draft['id']}/status", json={"status": "active"}, headers=headers)
    resp = client.get(f"/api/campaigns/link/{draft['private_link']}")
    assert resp.status_code == 200
    assert resp.json()["title"] == "Solar Kiosks"
    assert "private_link" not in resp.json()
    assert client.get("/api/campaigns/link/not-a-real-link").status_code == 404


def test_list_filters_by_status_and_sector(client, founder):
    headers, _ = founder
    create_campaign(client, headers, title="Live Energy")
    create_campaign(client, headers, activate=False, title="Draft Only")
    create_campaign(client, headers, title="Farm Tools", business_sector="agriculture")

    titles = {c["title"] for c in client.get("/api/campaigns").json()}
    assert titles == {"Live Energy", "Farm Tools"}
    sector = client.get("/api/campaigns", params={"sector": "agriculture"}).json()
    assert [c["title"] for c in sector] == ["Farm Tools"]
    assert client.get("/api/campaigns", params={"status": "draft"}).json() == []

    mine = client.get("/api/campaigns/mine", headers=headers).json()
    assert len(mine) == 3


def test_draft_hidden_from_public_but_visible_to_owner(client, founder):
    headers, _ = founder
    draft = create_campaign(client, headers, activate=False)
    assert client.get(f"/api/campaigns/{draft['id']}").status_code == 404
    assert client.get(f"/api/campaigns/{draft['id']}", headers=headers).status_code == 200


def test_edit_revalidates_cap_and_requires_owner(client, founder, investor):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    url = f"/api/campaigns/{campaign['id']}"
    assert client.put(url, json={"funding_goal": "200000"}, headers=headers).status_code == 400
    assert client.put(url, json={"title": "Hijack"}, headers=investor[0]).status_code == 403
    resp = client.put(url, json={"valuation_cap": "2000000", "team_members": [{"name": "Grace"}]}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["valuation_cap"] == "2000000.00"
    assert resp.json()["team_members"] == [{"name": "Grace"}]


def test_stats_count_only_completed_payments(client, founder, investor, processors):
    headers, _ = founder
    campaign = create_campaign(client, headers, funding_goal="1000")
    inv_headers, _ = investor

    paid = commit(client, inv_headers, campaign["id"], "300")
    attempt = client.post(f"/api/investments/{paid['id']}/payment", json={"currency": "USD"}, headers=inv_headers).json()
    assert stripe_event(client, "checkout.session.completed", attempt["reference"]).status_code == 200

    # committed but unpaid, and cancelled, contribute nothing
    commit(client, inv_headers, campaign["id"], "200")
    other_headers, _ = register_user(client, "second@example.com")
    cancelled = commit(client, other_headers, campaign["id"], "400")
    client.post(f"/api/investments/{cancelled['id']}/cancel", headers=other_headers)

    body = client.get(f"/api/campaigns/{campaign['id']}").json()
    assert body["total_raised"] == "300.00"
    assert body["investor_count"] == 1
    assert body["progress_percent"] == "30.00"
    assert body["goal_reached"] is False


def test_over_funding_is_representable(client, founder, investor):
    headers, _ = founder
    campaign = create_campaign(client, headers, funding_goal="100")
    inv_headers, _ = investor
    investment = commit(client, inv_headers, campaign["id"], "150")
    attempt = client.post(f"/api/investments/{investment['id']}/payment", json={}, headers=inv_headers).json()
    stripe_event(client, "checkout.session.completed", attempt["reference"])

    body = client.get(f"/api/campaigns/{campaign['id']}").json()
    assert body["progress_percent"] == "150.00"
    assert body["progress_display"] == "100.00"
    assert body["goal_reached"] is True


def test_campaign_updates_notify_paid_investors_and_respect_schedule(client, founder, investor):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    inv_headers, _ = investor
    investment = commit(client, inv_headers, campaign["id"], "100")
    attempt = client.post(f"/api/investments/{investment['id']}/payment", json={}, headers=inv_headers).json()
    stripe_event(client, "checkout.session.completed", attempt["reference"])

    url = f"/api/campaigns/{campaign['id']}/updates"
    resp = client.post(url, json={"title": "First kiosk live", "content": "Installed in Yaba market."}, headers=headers)
    assert resp.status_code == 201
    future = (datetime.utcnow() + timedelta(days=3)).isoformat()
    client.post(url, json={"title": "Coming soon", "content": "later", "scheduled_for": future}, headers=headers)
    client.post(url, json={"title": "Internal", "content": "team only", "is_public": False}, headers=headers)

    public = [u["title"] for u in client.get(url).json()]
    assert public == ["First kiosk live"]
    assert len(client.get(url, headers=headers).json()) == 3

    titles = [n["title"] for n in client.get("/api/notifications", headers=inv_headers).json()]
    assert titles.count("New update from Solar Kiosks") == 1


def test_campaign_investments_visible_to_owner_only(client, founder, investor):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    inv_headers, _ = investor
    commit(client, inv_headers, campaign["id"], "100")
    resp = client.get(f"/api/campaigns/{campaign['id']}/investments", headers=headers)
    assert resp.status_code == 200
    assert resp.json()[0]["agreement"]["status"] == "signed"
    assert client.get(f"/api/campaigns/{campaign['id']}/investments", headers=inv_headers).status_code == 403
    assert client.get(f"/api/campaigns/{campaign['id']}/investments", headers=ADMIN_HEADERS).status_code == 403


def test_edit_rejects_cleared_or_blank_required_fields(client, founder):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    url = f"/api/campaigns/{campaign['id']}"
    for change in ({"title": None}, {"short_pitch": None}, {"discount_rate": None}, {"team_structure": None},
                   {"title": "   "}, {"short_pitch": ""}, {"team_structure": "crowd"}):
        resp = client.put(url, json=change, headers=headers)
        assert resp.status_code == 400, change
    body = client.get(url).json()
    assert body["title"] == "Solar Kiosks"
    assert body["discount_rate"] == "20.00"
    resp = client.put(url, json={"title": "  Solar Kiosks II  ", "valuation_cap": None}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["title"] == "Solar Kiosks II"


def test_founder_edits_own_updates_and_hidden_posts_stay_hidden(client, founder, investor):
    headers, _ = founder
    campaign = create_campaign(client, headers)
    inv_headers, _ = investor
    investment = commit(client, inv_headers, campaign["id"], "100")
    attempt = client.post(f"/api/investments/{investment['id']}/payment", json={}, headers=inv_headers).json()
    stripe_event(client, "checkout.session.completed", attempt["reference"])

    url = f"/api/campaigns/{campaign['id']}/updates"
    future = (datetime.utcnow() + timedelta(days=3)).isoformat()
    scheduled = client.post(url, json={"title": "Coming soon", "content": "later", "scheduled_for": future},
                            headers=headers).json()
    private = client.post(url, json={"title": "Internal", "content": "team only", "is_public": False},
                          headers=headers).json()

    other_founder, _ = register_user(client, "rival@example.com", "founder", "Rival", "Founder")
    assert client.put(f"{url}/{private['id']}", json={"title": "Mine now"}, headers=other_founder).status_code == 403
    assert client.put(f"{url}/{private['id']}", json={"content": "  "}, headers=headers).status_code == 400
    assert client.put(f"{url}/999999", json={"title": "Ghost"}, headers=headers).status_code == 404

    resp = client.put(f"{url}/{private['id']}", json={"content": "team only, revised"}, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["content"] == "team only, revised"
    resp = client.put(f"{url}/{scheduled['id']}", json={"title": "Coming very soon"}, headers=headers)
    assert resp.status_code == 200
    assert client.get(url).json() == []

    # publishing a private post announces it once
    client.put(f"{url}/{private['id']}", json={"is_public": True}, headers=headers)
    client.put(f"{url}/{private['id']}", json={"title": "Internal, now public"}, headers=headers)
    assert [u["title"] for u in client.get(url).json()] == ["Internal, now public"]
    titles = [n["title"] for n in client.get("/api/notifications", headers=inv_headers).json()]
    assert titles.count("New update from Solar Kiosks") == 1


def test_stale_session_cookie_reads_as_anonymous_on_public_pages(client, founder, campaign):
    client.cookies.set("fundry_session", "expired-or-garbage")
    try:
        assert client.get(f"/api/campaigns/{campaign['id']}").status_code == 200
        assert client.get(f"/api/campaigns/{campaign['id']}/updates").status_code == 200
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/campaigns/mine").status_code == 401
    finally:
        client.cookies.clear()
