from __future__ import annotations

import json

from actions.stats import STATS_CACHE_PREFIX, invalidate_stats_if_dirty, mark_stats_dirty
from cache_layer import cache_get_or_set
from db import SessionLocal


def _api(client, payload: dict):
    return client.post("/api", data=json.dumps(payload), content_type="text/plain; charset=utf-8")


def _token(client, email: str) -> str:
    res = _api(client, {"action": "LOGIN", "data": {"email": email, "password": "any-password"}})
    return res.get_json()["data"]["sessionToken"]


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _apply_rest(client, email: str) -> str:
    position_id = client.get("/api/positions/open").get_json()["data"]["items"][0]["id"]
    res = client.post(
        "/api/apply",
        json={
            "fullName": "Rest Applicant",
            "email": email,
            "phone": "0912345678",
            "positionId": position_id,
            "cvUrl": "https://files.example.com/cv/rest.pdf",
        },
    )
    assert res.status_code == 200, res.get_json()
    return res.get_json()["data"]["candidate"]["id"]


def test_health(app_client):
    _app, client = app_client
    res = client.get("/health")
    assert res.status_code == 200
    body = res.get_json()["data"]
    assert body["status"] == "ok"
    assert body["db_pool"]["initialized"] is True
    assert "hits" in body["cache"]
    assert res.headers["X-Request-ID"]
    assert res.headers["X-Content-Type-Options"] == "nosniff"


def test_unknown_route_and_method(app_client):
    _app, client = app_client
    res = client.get("/nope")
    assert res.status_code == 404
    assert res.get_json()["error"]["code"] == "NOT_FOUND"
    assert client.get("/api").status_code == 405


def test_seeded_positions_are_public(app_client):
    _app, client = app_client
    res = client.get("/api/positions/open")
    assert res.status_code == 200
    items = res.get_json()["data"]["items"]
    assert len(items) == 5
    assert all(p["isOpen"] for p in items)


def test_rest_pipeline_aliases(app_client):
    _app, client = app_client
    hr = _token(client, "hr@company.com")
    cand_id = _apply_rest(client, "rest@example.com")

    assert client.post(f"/api/candidates/{cand_id}/approve", json={}).status_code == 401

    res = client.post(f"/api/candidates/{cand_id}/approve", json={"remark": "ok"}, headers=_bearer(hr))
    assert res.status_code == 200
    assert res.get_json()["data"]["candidate"]["status"] == "APPROVED"

    res = client.post(
        "/api/interview-sessions",
        json={"candidateId": cand_id, "title": "Onsite", "interviewerIds": ["demo-hr-id"]},
        headers=_bearer(hr),
    )
    assert res.status_code == 200
    interview_id = res.get_json()["data"]["interviews"][0]["id"]

    res = client.patch(
        f"/api/interviews/{interview_id}",
        json={"techNotes": "Designs clean APIs", "softNotes": "Good listener overall", "result": "PASS"},
        headers=_bearer(hr),
    )
    assert res.status_code == 200
    assert res.get_json()["data"]["interview"]["result"] == "PASS"

    res = client.post(
        f"/api/candidates/{cand_id}/decision",
        json={"decision": "HIRE", "decisionNotes": "Unanimous yes from panel"},
        headers=_bearer(hr),
    )
    assert res.status_code == 200

    res = client.post(f"/api/candidates/{cand_id}/hire", headers=_bearer(hr))
    assert res.status_code == 200
    creds = res.get_json()["data"]["credentials"]

    res = client.get(f"/api/candidates/{cand_id}", headers={"X-Session-Token": hr})
    assert res.get_json()["data"]["candidate"]["status"] == "HIRED"

    emp = _api(client, {"action": "LOGIN", "data": {"email": "rest@example.com", "password": creds["password"]}})
    emp_token = emp.get_json()["data"]["sessionToken"]
    res = client.put(
        "/api/me/employee-profile",
        json={"placeOfResidence": "9 Nguyen Hue, HCMC", "hometown": "Can Tho City", "nationalId": "079200001111"},
        headers=_bearer(emp_token),
    )
    assert res.status_code == 200
    res = client.get("/api/me/employee-profile", headers=_bearer(emp_token))
    assert res.get_json()["data"]["employee"]["hometown"] == "Can Tho City"


def test_rest_reject_alias(app_client):
    _app, client = app_client
    hr = _token(client, "hr@company.com")
    cand_id = _apply_rest(client, "reject@example.com")

    res = client.post(f"/api/candidates/{cand_id}/reject", json={}, headers=_bearer(hr))
    assert res.get_json()["data"]["candidate"]["status"] == "REJECTED"

    res = client.post(f"/api/candidates/{cand_id}/approve", json={}, headers=_bearer(hr))
    assert res.status_code == 409


def test_page_access_alias(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    res = client.get("/api/pages/access?page=/dashboard", headers=_bearer(admin))
    assert res.get_json()["data"]["allowed"] is True

    res = client.get("/api/pages/access?page=/dashboard")
    assert res.get_json()["data"]["redirectTo"] == "/login"


def test_dashboard_stats_follow_writes(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    hr = _token(client, "hr@company.com")

    res = client.get("/api/dashboard/stats", headers=_bearer(admin))
    assert res.status_code == 200
    stats = res.get_json()["data"]
    assert stats["candidates"]["total"] == 0
    assert stats["employees"]["total"] == 0

    cand_id = _apply_rest(client, "stats@example.com")
    client.post(f"/api/candidates/{cand_id}/approve", json={}, headers=_bearer(hr))

    stats = client.get("/api/dashboard/stats", headers=_bearer(admin)).get_json()["data"]
    assert stats["candidates"]["total"] == 1
    assert stats["candidates"]["APPROVED"] == 1
    assert stats["candidates"]["SUBMITTED"] == 0

    assert client.get("/api/dashboard/stats", headers=_bearer(hr)).status_code == 403


def test_audit_log_filters(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    hr = _token(client, "hr@company.com")
    cand_id = _apply_rest(client, "audit@example.com")
    client.post(f"/api/candidates/{cand_id}/approve", json={}, headers=_bearer(hr))

    res = _api(client, {"action": "AUDIT_LOGS_LIST", "token": admin, "data": {"action": "CANDIDATE_APPROVE", "targetType": "CANDIDATE"}})
    items = res.get_json()["data"]["items"]
    assert len(items) == 1
    row = items[0]
    assert row["actorId"] == "demo-hr-id"
    assert row["actorRole"] == "HR"
    assert (row["fromState"], row["toState"]) == ("SUBMITTED", "APPROVED")
    assert row["correlationId"]

    res = _api(client, {"action": "AUDIT_LOGS_LIST", "token": admin, "data": {"targetType": "CANDIDATE", "action": "CANDIDATE_APPLY"}})
    assert res.get_json()["data"]["items"][0]["actorId"] == "PUBLIC"

    res = _api(client, {"action": "AUDIT_LOGS_LIST", "token": hr, "data": {}})
    assert res.status_code == 403


def test_stats_cache_is_dropped_only_after_commit(app_client):
    _app, _client = app_client
    key = f"{STATS_CACHE_PREFIX}DASHBOARD"
    assert cache_get_or_set(key, lambda: "cached") == "cached"

    with SessionLocal() as db:
        mark_stats_dirty(db)
        assert cache_get_or_set(key, lambda: "recomputed") == "cached"
        db.commit()
        invalidate_stats_if_dirty(db)

    assert cache_get_or_set(key, lambda: "recomputed") == "recomputed"
