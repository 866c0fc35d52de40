from __future__ import annotations

import logging

from sqlalchemy import select

from actions.helpers import append_audit, require_auth
from auth import (
    DEMO_USERS,
    allowed_actions_for_role,
    issue_session_token,
    landing_for_role,
    load_profile,
    page_access,
    page_redirect,
    revoke_session,
    revoke_user_sessions,
    serialize_user,
)
from models import User
from passwords import hash_password, verify_password
from repo import flush, get_or_404
from utils import ApiError, AuthContext, iso_utc_now, normalize_role
from validation import validate_login, validate_user


log = logging.getLogger("auth")


def _is_demo_row(cfg, usr: User) -> bool:
    # Demo rows carry no hash; any password signs them in while demo login is on.
    demo = DEMO_USERS.get(str(usr.email or "").lower())
    return bool(cfg.DEMO_LOGIN_ENABLED) and demo is not None and usr.id == demo["id"] and not usr.password_hash


def _invalid_credentials(email: str, reason: str) -> ApiError:
    log.warning("login failed email=%s reason=%s", email, reason)
    return ApiError("AUTH_INVALID", "Invalid credentials")


def login(data, auth: AuthContext | None, db, cfg):
    clean = validate_login(data)
    email = clean["email"]

    usr = db.execute(select(User).where(User.email == email)).scalar_one_or_none()
    if not usr:
        raise _invalid_credentials(email, "unknown")
    if str(usr.status or "").upper() != "ACTIVE":
        raise _invalid_credentials(email, "inactive")

    is_demo = _is_demo_row(cfg, usr)

    if not is_demo and not cfg.AUTH_ACCEPT_ANY_PASSWORD:
        if not verify_password(clean["password"], usr.password_hash or ""):
            raise _invalid_credentials(email, "password")

    role = normalize_role(usr.role)
    if not role:
        raise _invalid_credentials(email, "role")

    issued = issue_session_token(db, user_id=usr.id, email=usr.email, role=role, session_ttl_minutes=cfg.SESSION_TTL_MINUTES)
    ctx = AuthContext(valid=True, userId=usr.id, email=usr.email, role=role, expiresAt=issued["expiresAt"])
    append_audit(
        db,
        action="LOGIN",
        target_type="USER",
        target_id=usr.id,
        actor=ctx,
        payload={"demo": is_demo},
    )
    log.info("login ok user=%s role=%s demo=%s", usr.id, role, is_demo)

    return {
        "sessionToken": issued["sessionToken"],
        "expiresAt": issued["expiresAt"],
        "me": load_profile(db, usr.id),
        "landing": landing_for_role(role),
    }


def get_me(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    me = load_profile(db, auth.userId)
    if not me:
        raise ApiError("AUTH_INVALID", "Failed to load profile")
    return {
        "me": me,
        "expiresAt": auth.expiresAt,
        "landing": landing_for_role(auth.role),
        "allowedActions": allowed_actions_for_role(auth.role),
    }


def logout(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    revoked = revoke_session(db, auth.sessionId)
    append_audit(db, action="LOGOUT", target_type="USER", target_id=auth.userId, actor=auth)
    return {"revoked": revoked}


def me_update(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    d = {k: v for k, v in (data or {}).items() if k in {"fullName", "phone"}}
    if not d:
        raise ApiError("BAD_REQUEST", "Nothing to update")
    clean = validate_user(d, partial=True)

    usr = get_or_404(db, User, auth.userId)
    now = iso_utc_now()
    if "fullName" in clean:
        usr.full_name = clean["fullName"]
    if "phone" in clean:
        usr.phone = clean["phone"]
    usr.updated_at = now
    flush(db)

    append_audit(db, action="ME_UPDATE", target_type="USER", target_id=usr.id, actor=auth, payload=clean, at=now)
    return {"me": serialize_user(usr)}


def change_password(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    current = str((data or {}).get("currentPassword") or "")
    new = str((data or {}).get("newPassword") or "")

    usr = get_or_404(db, User, auth.userId)
    if not _is_demo_row(cfg, usr) and not verify_password(current, usr.password_hash or ""):
        raise ApiError("AUTH_INVALID", "Current password is incorrect")
    if current and current == new:
        raise ApiError("BAD_REQUEST", "New password must differ from the current password")

    usr.password_hash = hash_password(new)
    usr.updated_at = iso_utc_now()
    revoked = revoke_user_sessions(db, user_id=usr.id, keep_session_id=auth.sessionId)

    append_audit(
        db,
        action="CHANGE_PASSWORD",
        target_type="USER",
        target_id=usr.id,
        actor=auth,
        payload={"otherSessionsRevoked": revoked},
    )
    return {"changed": True}


def page_access_check(data, auth: AuthContext | None, db, cfg):
    page = str((data or {}).get("page") or "").strip()
    if not page:
        raise ApiError("BAD_REQUEST", "Missing page")
    role = normalize_role(auth.role) if auth and auth.valid else ""
    decision = page_access(role, page)
    return {
        "page": page,
        "role": role or "GUEST",
        "decision": decision,
        "allowed": decision == "allow",
        "redirectTo": page_redirect(role, decision),
    }
