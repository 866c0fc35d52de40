from __future__ import annotations

from typing import Any

from sqlalchemy import or_

from actions.employees import existing_usernames
from actions.helpers import append_audit, require_auth
from actions.serializers import serialize_employee
from auth import revoke_user_sessions, serialize_user
from models import USER_ROLES, USER_STATUSES, User
from passwords import generate_password, hash_password
from repo import count_rows, create, delete, flush, get_or_404, list_rows, page_args
from services.identity import generate_username, username_base
from utils import ApiError, AuthContext, iso_utc_now, new_id
from validation import validate_user


def _user_out(row: User) -> dict[str, Any]:
    out = serialize_user(row)
    emp = row.employee
    out["employee"] = (
        {"id": emp.id, "hasProfile": bool(emp.national_id), "createdAt": emp.created_at or ""} if emp else None
    )
    return out


def _user_id(data) -> str:
    uid = str((data or {}).get("userId") or "").strip()
    if not uid:
        raise ApiError("BAD_REQUEST", "Missing userId")
    return uid


def _not_self(auth: AuthContext, user_id: str, what: str) -> None:
    if auth.userId == user_id:
        raise ApiError("BAD_REQUEST", f"You cannot {what} your own account")


def users_list(data, auth: AuthContext | None, db, cfg):
    d = data or {}
    where = []
    search = str(d.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        where.append(or_(User.full_name.ilike(like), User.email.ilike(like), User.username.ilike(like)))
    role = str(d.get("role") or "").upper().strip()
    if role:
        if role not in USER_ROLES:
            raise ApiError("BAD_REQUEST", f"Invalid role: {role}")
        where.append(User.role == role)
    status = str(d.get("status") or "").upper().strip()
    if status:
        if status not in USER_STATUSES:
            raise ApiError("BAD_REQUEST", f"Invalid status: {status}")
        where.append(User.status == status)

    limit, offset = page_args(d, default_limit=100)
    rows = list_rows(db, User, where=where, expand=["employee"], limit=limit, offset=offset)
    return {"items": [_user_out(u) for u in rows], "total": count_rows(db, User, where=where), "limit": limit, "offset": offset}


def interviewers_list(data, auth: AuthContext | None, db, cfg):
    rows = list_rows(db, User, where=[User.status == "ACTIVE"], order_by=User.full_name.asc())
    return {"items": [serialize_user(u) for u in rows]}


def user_get(data, auth: AuthContext | None, db, cfg):
    row = get_or_404(db, User, _user_id(data), expand=["employee"])
    out = _user_out(row)
    if row.employee:
        out["employee"] = serialize_employee(row.employee)
    return {"user": out}


def username_suggest(data, auth: AuthContext | None, db, cfg):
    full_name = str((data or {}).get("fullName") or "").strip()
    if not full_name:
        raise ApiError("BAD_REQUEST", "Missing fullName")
    return {"username": generate_username(full_name, existing_usernames(db, username_base(full_name)))}


def user_create(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    d = dict(data or {})
    if not str(d.get("username") or "").strip() and str(d.get("fullName") or "").strip():
        d["username"] = generate_username(d["fullName"], existing_usernames(db, username_base(d["fullName"])))
    clean = validate_user(d)

    supplied = str(d.get("password") or "")
    password = supplied or generate_password()
    now = iso_utc_now()
    row = create(
        db,
        User,
        id=new_id("USR"),
        username=clean["username"],
        email=clean["email"],
        phone=clean["phone"],
        full_name=clean["fullName"],
        role=clean["role"],
        status="ACTIVE",
        password_hash=hash_password(password),
        created_at=now,
        updated_at=now,
    )
    append_audit(
        db,
        action="USER_CREATE",
        target_type="USER",
        target_id=row.id,
        actor=auth,
        to_state="ACTIVE",
        payload={"username": row.username, "email": row.email, "role": row.role},
        at=now,
    )

    out: dict[str, Any] = {"user": serialize_user(row)}
    if not supplied:
        out["generatedPassword"] = password
    return out


def user_update(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    user_id = _user_id(data)
    d = {k: v for k, v in (data or {}).items() if k in {"username", "email", "phone", "fullName", "role"}}
    if not d:
        raise ApiError("BAD_REQUEST", "Nothing to update")
    clean = validate_user(d, partial=True)

    row = get_or_404(db, User, user_id)
    before_role = str(row.role or "")
    if "role" in clean and clean["role"] != before_role:
        _not_self(auth, user_id, "change the role of")

    mapping = {"username": "username", "email": "email", "phone": "phone", "fullName": "full_name", "role": "role"}
    for key, col in mapping.items():
        if key in clean:
            setattr(row, col, clean[key])
    now = iso_utc_now()
    row.updated_at = now
    flush(db)

    if row.role != before_role:
        revoke_user_sessions(db, user_id=row.id)

    append_audit(
        db,
        action="USER_UPDATE",
        target_type="USER",
        target_id=row.id,
        actor=auth,
        from_state=before_role if row.role != before_role else "",
        to_state=row.role if row.role != before_role else "",
        payload=clean,
        at=now,
    )
    return {"user": serialize_user(row)}


def user_status_toggle(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    user_id = _user_id(data)
    _not_self(auth, user_id, "disable")

    row = get_or_404(db, User, user_id, lock=True)
    before = str(row.status or "ACTIVE").upper()
    after = "DISABLED" if before == "ACTIVE" else "ACTIVE"
    now = iso_utc_now()
    row.status = after
    row.updated_at = now
    revoked = revoke_user_sessions(db, user_id=row.id) if after == "DISABLED" else 0

    append_audit(
        db,
        action="USER_STATUS_TOGGLE",
        target_type="USER",
        target_id=row.id,
        actor=auth,
        from_state=before,
        to_state=after,
        payload={"sessionsRevoked": revoked},
        at=now,
    )
    return {"user": serialize_user(row)}


def user_delete(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    user_id = _user_id(data)
    _not_self(auth, user_id, "delete")

    row = get_or_404(db, User, user_id)
    snapshot = {"username": row.username, "email": row.email, "role": row.role}
    revoke_user_sessions(db, user_id=row.id)
    try:
        delete(db, row)
    except ApiError as e:
        if e.code == "CONFLICT":
            raise ApiError("CONFLICT", "User has interviews, sessions or decisions on record; disable the account instead")
        raise

    append_audit(
        db,
        action="USER_DELETE",
        target_type="USER",
        target_id=user_id,
        actor=auth,
        from_state=str(snapshot["role"] or ""),
        payload=snapshot,
    )
    return {"deleted": True, "userId": user_id}


def user_password_reset(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    row = get_or_404(db, User, _user_id(data))
    password = generate_password()
    now = iso_utc_now()
    row.password_hash = hash_password(password)
    row.updated_at = now
    revoked = revoke_user_sessions(db, user_id=row.id)

    append_audit(
        db,
        action="USER_PASSWORD_RESET",
        target_type="USER",
        target_id=row.id,
        actor=auth,
        payload={"sessionsRevoked": revoked},
        at=now,
    )
    return {"userId": row.id, "username": row.username, "generatedPassword": password}
