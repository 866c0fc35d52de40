from __future__ import annotations

import json

from sqlalchemy import select

from db import SessionLocal
from models import AuditLog, User


def _api(client, payload: dict):
    return client.post("/api", data=json.dumps(payload), content_type="text/plain; charset=utf-8")


def _token(client, email: str, password: str = "any-password") -> str:
    res = _api(client, {"action": "LOGIN", "token": None, "data": {"email": email, "password": password}})
    assert res.status_code == 200, res.get_json()
    return res.get_json()["data"]["sessionToken"]


def _create(client, admin: str, **data):
    payload = {"fullName": "Mai Anh Tuấn", "email": "tuan@company.com", "phone": "0933444555", "role": "HR"}
    payload.update(data)
    return _api(client, {"action": "USER_CREATE", "token": admin, "data": payload})


def test_create_user_generates_username_and_password(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")

    res = _api(client, {"action": "USERNAME_SUGGEST", "token": admin, "data": {"fullName": "Mai Anh Tuấn"}})
    assert res.get_json()["data"]["username"] == "maianhtuan"

    res = _create(client, admin)
    assert res.status_code == 200
    out = res.get_json()["data"]
    assert out["user"]["username"] == "maianhtuan"
    assert out["user"]["status"] == "ACTIVE"
    generated = out["generatedPassword"]
    assert len(generated) == 10

    with SessionLocal() as db:
        row = db.execute(select(User).where(User.email == "tuan@company.com")).scalar_one()
        assert row.password_hash and generated not in row.password_hash
        audit = db.execute(
            select(AuditLog).where(AuditLog.action == "USER_CREATE").where(AuditLog.target_type == "USER")
        ).scalar_one()
        assert audit.target_id == row.id
        assert generated not in audit.payload_json

    assert _api(client, {"action": "LOGIN", "data": {"email": "tuan@company.com", "password": generated}}).status_code == 200

    res = _api(client, {"action": "USERNAME_SUGGEST", "token": admin, "data": {"fullName": "Mai Anh Tuấn"}})
    assert res.get_json()["data"]["username"] == "maianhtuan1"


def test_duplicate_email_or_username(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    assert _create(client, admin, username="tuanmai").status_code == 200

    res = _create(client, admin, username="someoneelse")
    assert res.status_code == 409
    assert res.get_json()["error"] == {"code": "DUPLICATE", "message": "Email or username already exists"}

    res = _create(client, admin, username="tuanmai", email="other@company.com")
    assert res.status_code == 409

    with SessionLocal() as db:
        assert len(db.execute(select(User).where(User.username == "tuanmai")).scalars().all()) == 1


def test_hr_cannot_manage_accounts(app_client):
    _app, client = app_client
    hr = _token(client, "hr@company.com")

    res = _create(client, hr)
    assert res.status_code == 403

    res = _api(client, {"action": "USERS_LIST", "token": hr, "data": {"role": "ADMIN"}})
    assert res.status_code == 200
    assert [u["email"] for u in res.get_json()["data"]["items"]] == ["admin@company.com"]


def test_admin_cannot_lock_themselves_out(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")

    for action, extra in (
        ("USER_STATUS_TOGGLE", {}),
        ("USER_DELETE", {}),
        ("USER_UPDATE", {"role": "HR"}),
    ):
        res = _api(client, {"action": action, "token": admin, "data": {"userId": "demo-admin-id", **extra}})
        assert res.status_code == 400, action

    assert _api(client, {"action": "GET_ME", "token": admin, "data": {}}).get_json()["data"]["me"]["role"] == "ADMIN"


def test_toggle_and_reset_password(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    user_id = _create(client, admin, password="F1rstPassword").get_json()["data"]["user"]["id"]

    res = _api(client, {"action": "USER_STATUS_TOGGLE", "token": admin, "data": {"userId": user_id}})
    assert res.get_json()["data"]["user"]["status"] == "DISABLED"
    assert _api(client, {"action": "LOGIN", "data": {"email": "tuan@company.com", "password": "F1rstPassword"}}).status_code == 401

    res = _api(client, {"action": "USER_STATUS_TOGGLE", "token": admin, "data": {"userId": user_id}})
    assert res.get_json()["data"]["user"]["status"] == "ACTIVE"

    res = _api(client, {"action": "USER_PASSWORD_RESET", "token": admin, "data": {"userId": user_id}})
    assert res.status_code == 200
    fresh = res.get_json()["data"]["generatedPassword"]
    assert _api(client, {"action": "LOGIN", "data": {"email": "tuan@company.com", "password": "F1rstPassword"}}).status_code == 401
    assert _api(client, {"action": "LOGIN", "data": {"email": "tuan@company.com", "password": fresh}}).status_code == 200


def test_role_change_ends_existing_sessions(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    user_id = _create(client, admin, password="F1rstPassword").get_json()["data"]["user"]["id"]
    token = _token(client, "tuan@company.com", "F1rstPassword")

    res = _api(client, {"action": "USER_UPDATE", "token": admin, "data": {"userId": user_id, "role": "EMPLOYEE"}})
    assert res.status_code == 200
    assert res.get_json()["data"]["user"]["role"] == "EMPLOYEE"
    assert _api(client, {"action": "GET_ME", "token": token, "data": {}}).status_code == 401


def test_delete_user(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    user_id = _create(client, admin).get_json()["data"]["user"]["id"]

    res = _api(client, {"action": "USER_DELETE", "token": admin, "data": {"userId": user_id}})
    assert res.status_code == 200
    assert res.get_json()["data"] == {"deleted": True, "userId": user_id}

    res = _api(client, {"action": "USER_GET", "token": admin, "data": {"userId": user_id}})
    assert res.status_code == 404
    assert res.get_json()["error"]["message"] == "User not found"


def test_delete_user_with_history_conflicts(app_client):
    _app, client = app_client
    admin = _token(client, "admin@company.com")
    hr = _token(client, "hr@company.com")
    user_id = _create(client, admin).get_json()["data"]["user"]["id"]

    position_id = _api(client, {"action": "POSITIONS_OPEN_LIST", "data": {}}).get_json()["data"]["items"][0]["id"]
    cand = _api(
        client,
        {
            "action": "CANDIDATE_APPLY",
            "data": {
                "fullName": "Referenced Candidate",
                "email": "ref@example.com",
                "phone": "0912345678",
                "positionId": position_id,
                "cvUrl": "https://files.example.com/cv/ref.pdf",
            },
        },
    ).get_json()["data"]["candidate"]
    _api(client, {"action": "CANDIDATE_APPROVE", "token": hr, "data": {"candidateId": cand["id"]}})
    res = _api(
        client,
        {
            "action": "INTERVIEW_SESSION_CREATE",
            "token": hr,
            "data": {"candidateId": cand["id"], "title": "Screening", "interviewerIds": [user_id]},
        },
    )
    assert res.status_code == 200

    res = _api(client, {"action": "USER_DELETE", "token": admin, "data": {"userId": user_id}})
    assert res.status_code == 409
    assert res.get_json()["error"]["code"] == "CONFLICT"
    assert _api(client, {"action": "USER_GET", "token": admin, "data": {"userId": user_id}}).status_code == 200
