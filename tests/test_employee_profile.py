from __future__ import annotations

import json

from sqlalchemy import select

from db import SessionLocal
from models import AuditLog, Employee, User
from passwords import hash_password
from utils import iso_utc_now


def _api(client, payload: dict):
    return client.post("/api", data=json.dumps(payload), content_type="text/plain; charset=utf-8")


def _seed_employee_user(user_id: str, email: str, password: str) -> None:
    now = iso_utc_now()
    with SessionLocal() as db:
        db.add(
            User(
                id=user_id,
                username=email.split("@", 1)[0].replace(".", ""),
                email=email,
                phone="0900000002",
                full_name="Quynh Nhu",
                role="EMPLOYEE",
                status="ACTIVE",
                password_hash=hash_password(password),
                created_at=now,
                updated_at=now,
            )
        )
        db.commit()


def _employee_token(client) -> str:
    _seed_employee_user("USR-EMP-1", "quynh@company.com", "Qu1nhPassword")
    res = _api(client, {"action": "LOGIN", "data": {"email": "quynh@company.com", "password": "Qu1nhPassword"}})
    assert res.status_code == 200
    return res.get_json()["data"]["sessionToken"]


def test_profile_is_created_on_first_read(app_client):
    _app, client = app_client
    token = _employee_token(client)

    res = _api(client, {"action": "EMPLOYEE_PROFILE_GET", "token": token, "data": {}})
    assert res.status_code == 200
    emp = res.get_json()["data"]["employee"]
    assert emp["userId"] == "USR-EMP-1"
    assert emp["nationalId"] == ""
    assert emp["user"]["email"] == "quynh@company.com"

    res = _api(client, {"action": "EMPLOYEE_PROFILE_GET", "token": token, "data": {}})
    assert res.get_json()["data"]["employee"]["id"] == emp["id"]

    with SessionLocal() as db:
        assert len(db.execute(select(Employee).where(Employee.user_id == "USR-EMP-1")).scalars().all()) == 1
        created = db.execute(select(AuditLog).where(AuditLog.action == "EMPLOYEE_PROFILE_CREATE")).scalars().all()
        assert len(created) == 1


def test_profile_update_validates_and_saves(app_client):
    _app, client = app_client
    token = _employee_token(client)

    res = _api(
        client,
        {
            "action": "EMPLOYEE_PROFILE_UPDATE",
            "token": token,
            "data": {"placeOfResidence": "Hue", "hometown": "Quang Tri Province", "nationalId": "12345"},
        },
    )
    assert res.status_code == 400
    fields = res.get_json()["error"]["details"]["fields"]
    assert set(fields) == {"placeOfResidence", "nationalId"}

    res = _api(
        client,
        {
            "action": "EMPLOYEE_PROFILE_UPDATE",
            "token": token,
            "data": {"placeOfResidence": "45 Tran Phu, Hue", "hometown": "Quang Tri Province", "nationalId": "045198001234"},
        },
    )
    assert res.status_code == 200
    emp = res.get_json()["data"]["employee"]
    assert emp["placeOfResidence"] == "45 Tran Phu, Hue"
    assert emp["nationalId"] == "045198001234"

    with SessionLocal() as db:
        audit = db.execute(
            select(AuditLog).where(AuditLog.action == "EMPLOYEE_PROFILE_UPDATE").where(AuditLog.target_type == "EMPLOYEE")
        ).scalar_one()
        assert "045198001234" not in audit.payload_json
        api_rows = db.execute(
            select(AuditLog).where(AuditLog.action == "EMPLOYEE_PROFILE_UPDATE").where(AuditLog.target_type == "API_CALL")
        ).scalars().all()
        assert api_rows and all("045198001234" not in r.payload_json for r in api_rows)


def test_staff_cannot_use_employee_profile(app_client):
    _app, client = app_client
    res = _api(client, {"action": "LOGIN", "data": {"email": "hr@company.com", "password": "any-password"}})
    token = res.get_json()["data"]["sessionToken"]

    res = _api(client, {"action": "EMPLOYEE_PROFILE_GET", "token": token, "data": {}})
    assert res.status_code == 403


def test_me_update_changes_contact_details(app_client):
    _app, client = app_client
    token = _employee_token(client)

    res = _api(client, {"action": "ME_UPDATE", "token": token, "data": {"phone": "12"}})
    assert res.status_code == 400

    res = _api(client, {"action": "ME_UPDATE", "token": token, "data": {"fullName": "Quynh Nhu Tran", "phone": "0977123456"}})
    assert res.status_code == 200
    me = res.get_json()["data"]["me"]
    assert me["fullName"] == "Quynh Nhu Tran"
    assert me["phone"] == "0977123456"
    assert me["role"] == "EMPLOYEE"
