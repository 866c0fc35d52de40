from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select

from models import AuthSession, User
from utils import ApiError, AuthContext, GUEST, iso_utc_now, new_uuid, normalize_role, parse_iso_utc, sha256_hex, to_iso_utc


ALL_ROLES = ["ADMIN", "HR", "EMPLOYEE"]
STAFF = ["ADMIN", "HR"]


STATIC_RBAC_PERMISSIONS: dict[str, list[str]] = {
    # Session
    "LOGIN": ["PUBLIC"],
    "GET_ME": ALL_ROLES,
    "LOGOUT": ALL_ROLES,
    "ME_UPDATE": ALL_ROLES,
    "CHANGE_PASSWORD": ALL_ROLES,
    "PAGE_ACCESS_CHECK": ["PUBLIC"],
    # User accounts (mutations are ADMIN-only)
    "USERS_LIST": STAFF,
    "INTERVIEWERS_LIST": STAFF,
    "USER_GET": STAFF,
    "USER_CREATE": ["ADMIN"],
    "USER_UPDATE": ["ADMIN"],
    "USER_STATUS_TOGGLE": ["ADMIN"],
    "USER_DELETE": ["ADMIN"],
    "USER_PASSWORD_RESET": ["ADMIN"],
    "USERNAME_SUGGEST": ["ADMIN"],
    # Positions
    "POSITIONS_LIST": STAFF,
    "POSITIONS_OPEN_LIST": ["PUBLIC"],
    "POSITION_CREATE": STAFF,
    "POSITION_UPDATE": STAFF,
    # Candidates + pipeline
    "CANDIDATE_APPLY": ["PUBLIC"],
    "CANDIDATES_LIST": STAFF,
    "CANDIDATE_GET": STAFF,
    "CANDIDATE_APPROVE": STAFF,
    "CANDIDATE_REJECT": STAFF,
    "CANDIDATE_BULK_DECIDE": STAFF,
    # Interviews
    "INTERVIEW_SESSION_CREATE": STAFF,
    "INTERVIEW_SESSIONS_LIST": STAFF,
    "INTERVIEW_SESSION_STATUS_SET": STAFF,
    "INTERVIEWS_LIST": STAFF,
    "MY_INTERVIEWS_LIST": ALL_ROLES,
    "INTERVIEW_UPDATE": ALL_ROLES,
    # Decisions
    "DECISION_CREATE": STAFF,
    "DECISIONS_LIST": STAFF,
    # Employees
    "EMPLOYEE_CREATE_FROM_CANDIDATE": STAFF,
    "EMPLOYEES_LIST": STAFF,
    "EMPLOYEE_GET": STAFF,
    "EMPLOYEE_PROFILE_GET": ["EMPLOYEE"],
    "EMPLOYEE_PROFILE_UPDATE": ["EMPLOYEE"],
    # Reporting
    "AUDIT_LOGS_LIST": ["ADMIN"],
    "DASHBOARD_STATS": ["ADMIN"],
}


PUBLIC_ACTIONS = {a for a, roles in STATIC_RBAC_PERMISSIONS.items() if "PUBLIC" in roles}


# Page gate. `:id` segments match any single path segment.
PAGE_ACCESS: dict[str, list[str]] = {
    "/dashboard": ["ADMIN"],
    "/candidates": ["HR", "ADMIN"],
    "/candidates/:id": ["HR", "ADMIN"],
    "/interviews": ["HR", "ADMIN"],
    "/users": ["ADMIN", "HR"],
    "/employee": ["EMPLOYEE"],
    "/employee/profile": ["EMPLOYEE"],
    "/employee/interviews": ["EMPLOYEE"],
}
PUBLIC_PAGES = {"/login", "/apply", "/unauthorized"}

LANDING_PAGES = {"ADMIN": "/dashboard", "HR": "/candidates", "EMPLOYEE": "/employee"}

_PAGE_PATTERNS = [
    (re.compile("^" + re.sub(r":[A-Za-z_]+", r"[^/]+", page) + "$"), page) for page in PAGE_ACCESS
]


# Fixed demo accounts. Rows with the same ids are seeded at startup so
# foreign keys from sessions/decisions resolve.
DEMO_USERS: dict[str, dict[str, str]] = {
    "admin@company.com": {
        "id": "demo-admin-id",
        "username": "admin",
        "email": "admin@company.com",
        "phone": "0123456789",
        "fullName": "System Administrator",
        "role": "ADMIN",
        "status": "ACTIVE",
    },
    "hr@company.com": {
        "id": "demo-hr-id",
        "username": "hr",
        "email": "hr@company.com",
        "phone": "0123456788",
        "fullName": "HR Manager",
        "role": "HR",
        "status": "ACTIVE",
    },
}
DEMO_USERS_BY_ID = {p["id"]: p for p in DEMO_USERS.values()}

_LAST_SEEN_UPDATE_SECONDS = 300


def landing_for_role(role: Any) -> str:
    return LANDING_PAGES.get(normalize_role(role), "/login")


def match_page(page: Any) -> str:
    """Maps a concrete path onto its PAGE_ACCESS key, or "" when unknown."""
    path = str(page or "").split("?", 1)[0].split("#", 1)[0].strip() or "/"
    if len(path) > 1:
        path = path.rstrip("/")
    if path in PUBLIC_PAGES or path in PAGE_ACCESS:
        return path
    for pattern, key in _PAGE_PATTERNS:
        if pattern.match(path):
            return key
    return ""


def page_access(role: Any, page: Any) -> str:
    """
    Returns "allow", "login" (no session on a protected page), "unauthorized"
    (role not in the page allow-list) or "fallback" (unknown page; send the
    caller to their landing page).
    """

    role_u = normalize_role(role)
    key = match_page(page)
    if key in PUBLIC_PAGES:
        return "allow"
    if not key:
        return "fallback"
    if not role_u:
        return "login"
    if role_u in PAGE_ACCESS.get(key, []):
        return "allow"
    return "unauthorized"


def page_redirect(role: Any, decision: str) -> str:
    if decision == "login":
        return "/login"
    if decision == "unauthorized":
        return "/unauthorized"
    if decision == "fallback":
        return landing_for_role(role)
    return ""


def is_public_action(action: str) -> bool:
    return str(action or "").upper() in PUBLIC_ACTIONS


def assert_permission(role: str, action: str) -> None:
    role_u = normalize_role(role) or ""
    action_u = str(action or "").upper().strip()

    allowed = STATIC_RBAC_PERMISSIONS.get(action_u)
    if not allowed:
        raise ApiError("BAD_REQUEST", f"Unknown action: {action_u}")
    if "PUBLIC" in allowed:
        return
    if not role_u:
        raise ApiError("AUTH_INVALID", "Login required")
    if role_u not in allowed:
        raise ApiError("FORBIDDEN", f"Not allowed for role: {role_u}")


def allowed_actions_for_role(role: str) -> list[str]:
    role_u = normalize_role(role)
    return sorted(a for a, roles in STATIC_RBAC_PERMISSIONS.items() if "PUBLIC" in roles or role_u in roles)


def issue_session_token(db, *, user_id: str, email: str, role: str, session_ttl_minutes: int) -> dict[str, str]:
    token = "ST-" + _uuid_hex_32() + _uuid_hex_32()
    now = datetime.now(timezone.utc)
    issued_at = to_iso_utc(now)
    expires_at = to_iso_utc(now + timedelta(minutes=session_ttl_minutes))

    db.add(
        AuthSession(
            id="SES-" + new_uuid(),
            token_hash=sha256_hex(token),
            token_prefix=token[:12],
            user_id=str(user_id or ""),
            email=str(email or ""),
            role=normalize_role(role),
            issued_at=issued_at,
            expires_at=expires_at,
            last_seen_at=issued_at,
            revoked_at="",
        )
    )
    return {"sessionToken": token, "expiresAt": expires_at}


def _uuid_hex_32() -> str:
    return new_uuid().replace("-", "")


def revoke_session(db, session_id: str) -> bool:
    sid = str(session_id or "").strip()
    if not sid:
        return False
    ses = db.execute(select(AuthSession).where(AuthSession.id == sid)).scalar_one_or_none()
    if not ses or ses.revoked_at:
        return False
    ses.revoked_at = iso_utc_now()
    return True


def revoke_user_sessions(db, *, user_id: str, keep_session_id: str = "") -> int:
    """
    Revoke all active sessions for a user.

    Used when an account is disabled, deleted, has its role changed or its
    password reset, so remembered tokens stop working immediately.
    """

    uid = str(user_id or "").strip()
    if not uid:
        return 0
    now = iso_utc_now()
    rows = (
        db.execute(select(AuthSession).where(AuthSession.user_id == uid).where(AuthSession.revoked_at == ""))
        .scalars()
        .all()
    )
    n = 0
    for s in rows:
        if keep_session_id and s.id == keep_session_id:
            continue
        s.revoked_at = now
        n += 1
    return n


def validate_session_token(db, token: Any) -> AuthContext:
    if not token or not isinstance(token, str):
        return GUEST

    ses = db.execute(select(AuthSession).where(AuthSession.token_hash == sha256_hex(token))).scalar_one_or_none()
    if not ses or ses.revoked_at:
        return GUEST

    exp_dt = parse_iso_utc(ses.expires_at)
    if not exp_dt or exp_dt < datetime.now(timezone.utc):
        return GUEST

    usr = db.execute(select(User).where(User.id == ses.user_id)).scalar_one_or_none()
    if not usr:
        return GUEST
    if str(usr.status or "").upper() != "ACTIVE":
        raise ApiError("FORBIDDEN", "User is disabled")

    # Avoid writing on every request: update last_seen_at at most once per interval.
    last_dt = parse_iso_utc(ses.last_seen_at)
    if not last_dt or (datetime.now(timezone.utc) - last_dt).total_seconds() >= _LAST_SEEN_UPDATE_SECONDS:
        ses.last_seen_at = iso_utc_now()

    return AuthContext(
        valid=True,
        userId=str(usr.id),
        email=str(usr.email or ""),
        role=normalize_role(ses.role),
        expiresAt=str(ses.expires_at or ""),
        sessionId=str(ses.id),
        fullName=str(usr.full_name or ""),
    )


def serialize_user(row: User) -> dict[str, Any]:
    return {
        "id": row.id,
        "username": row.username or "",
        "email": row.email or "",
        "phone": row.phone or "",
        "fullName": row.full_name or "",
        "role": row.role or "",
        "status": row.status or "",
        "createdAt": row.created_at or "",
        "updatedAt": row.updated_at or "",
    }


def load_profile(db, user_id: str) -> Optional[dict[str, Any]]:
    usr = db.execute(select(User).where(User.id == str(user_id or ""))).scalar_one_or_none()
    if usr:
        return serialize_user(usr)
    demo = DEMO_USERS_BY_ID.get(str(user_id or ""))
    return dict(demo) if demo else None


def role_or_public(auth: Optional[AuthContext]) -> str:
    if not auth or not auth.valid:
        return "PUBLIC"
    return normalize_role(auth.role) or "PUBLIC"
