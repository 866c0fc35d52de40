from __future__ import annotations

import logging

from sqlalchemy import or_, select

from actions.helpers import append_audit, require_auth
from actions.pipeline import lock_candidate, transition_candidate
from actions.serializers import serialize_candidate, serialize_employee
from actions.stats import mark_stats_dirty
from auth import serialize_user
from models import Employee, User
from passwords import generate_password, hash_password
from repo import count_rows, flush, get_or_404, list_rows, page_args
from services.identity import generate_username, username_base
from utils import ApiError, AuthContext, iso_utc_now, new_id
from validation import validate_employee_profile


log = logging.getLogger("pipeline")


def existing_usernames(db, base: str) -> set[str]:
    q = select(User.username)
    if base:
        q = q.where(User.username.like(f"{base}%"))
    return {str(u or "").lower() for u in db.execute(q).scalars().all()}


def _new_employee_row(*, user_id: str, candidate_id: str, now: str) -> Employee:
    return Employee(
        id=new_id("EMP"),
        user_id=user_id,
        candidate_id=candidate_id or None,
        place_of_residence="",
        hometown="",
        national_id="",
        created_at=now,
        updated_at=now,
    )


def employee_create_from_candidate(data, auth: AuthContext | None, db, cfg):
    """
    Provisions the hired candidate's account: EMPLOYEE user, Employee row and
    the OFFERED -> HIRED move, all in the request transaction. The generated
    password is only ever returned here.
    """

    auth = require_auth(auth)
    cand = lock_candidate(db, candidate_id=(data or {}).get("candidateId"))
    now = iso_utc_now()

    transition_candidate(db, cand, "PROVISION_EMPLOYEE", auth=auth, now=now)

    username = generate_username(cand.full_name, existing_usernames(db, username_base(cand.full_name)))
    password = generate_password()

    user = User(
        id=new_id("USR"),
        username=username,
        email=str(cand.email or "").lower(),
        phone=cand.phone or "",
        full_name=cand.full_name or "",
        role="EMPLOYEE",
        status="ACTIVE",
        password_hash=hash_password(password),
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    flush(db)

    emp = _new_employee_row(user_id=user.id, candidate_id=cand.id, now=now)
    db.add(emp)
    flush(db)

    append_audit(
        db,
        action="USER_CREATE",
        target_type="USER",
        target_id=user.id,
        actor=auth,
        to_state="ACTIVE",
        payload={"username": username, "role": "EMPLOYEE", "candidateId": cand.id},
        at=now,
    )
    append_audit(
        db,
        action="EMPLOYEE_CREATE_FROM_CANDIDATE",
        target_type="EMPLOYEE",
        target_id=emp.id,
        actor=auth,
        payload={"userId": user.id, "candidateId": cand.id},
        at=now,
    )
    mark_stats_dirty(db)
    log.info("provisioned employee=%s user=%s candidate=%s", emp.id, user.id, cand.id)

    return {
        "user": serialize_user(user),
        "employee": serialize_employee(emp),
        "candidate": serialize_candidate(cand),
        "credentials": {"username": username, "password": password},
    }


def employees_list(data, auth: AuthContext | None, db, cfg):
    d = data or {}
    where = []
    search = str(d.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        ids = select(User.id).where(or_(User.full_name.ilike(like), User.email.ilike(like), User.username.ilike(like)))
        where.append(Employee.user_id.in_(ids))

    limit, offset = page_args(d)
    rows = list_rows(db, Employee, where=where, expand=["user"], limit=limit, offset=offset)
    return {
        "items": [serialize_employee(e, with_user=True) for e in rows],
        "total": count_rows(db, Employee, where=where),
        "limit": limit,
        "offset": offset,
    }


def employee_get(data, auth: AuthContext | None, db, cfg):
    employee_id = str((data or {}).get("employeeId") or "").strip()
    if not employee_id:
        raise ApiError("BAD_REQUEST", "Missing employeeId")
    emp = get_or_404(db, Employee, employee_id, expand=["user", "candidate.position"])
    out = serialize_employee(emp, with_user=True)
    out["candidate"] = serialize_candidate(emp.candidate, with_position=True) if emp.candidate else None
    return {"employee": out}


def _own_employee(db, auth: AuthContext, *, now: str) -> Employee:
    emp = db.execute(select(Employee).where(Employee.user_id == auth.userId)).scalar_one_or_none()
    if emp:
        return emp

    user = get_or_404(db, User, auth.userId)
    emp = _new_employee_row(user_id=user.id, candidate_id="", now=now)
    db.add(emp)
    flush(db, "Employee profile already exists")
    append_audit(
        db,
        action="EMPLOYEE_PROFILE_CREATE",
        target_type="EMPLOYEE",
        target_id=emp.id,
        actor=auth,
        payload={"userId": user.id, "lazy": True},
        at=now,
    )
    mark_stats_dirty(db)
    return emp


def employee_profile_get(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    emp = _own_employee(db, auth, now=iso_utc_now())
    return {"employee": serialize_employee(emp, with_user=True)}


def employee_profile_update(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    clean = validate_employee_profile(data)
    now = iso_utc_now()
    emp = _own_employee(db, auth, now=now)

    emp.place_of_residence = clean["placeOfResidence"]
    emp.hometown = clean["hometown"]
    emp.national_id = clean["nationalId"]
    emp.updated_at = now
    flush(db)

    append_audit(
        db,
        action="EMPLOYEE_PROFILE_UPDATE",
        target_type="EMPLOYEE",
        target_id=emp.id,
        actor=auth,
        payload=clean,
        at=now,
    )
    return {"employee": serialize_employee(emp, with_user=True)}
