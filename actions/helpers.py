from __future__ import annotations

import json
from typing import Any, Optional

from flask import g, has_request_context

from models import AuditLog
from utils import ApiError, AuthContext, iso_utc_now, new_id, redact_for_audit


def actor_id(auth: Optional[AuthContext]) -> str:
    if not auth or not auth.valid:
        return "PUBLIC"
    return str(auth.userId or auth.email or "")


def require_auth(auth: Optional[AuthContext]) -> AuthContext:
    if not auth or not auth.valid:
        raise ApiError("AUTH_INVALID", "Login required")
    return auth


def correlation_id() -> str:
    if not has_request_context():
        return ""
    return str(getattr(g, "request_id", "") or "")


def append_audit(
    db,
    *,
    action: str,
    target_type: str,
    target_id: str,
    actor: Optional[AuthContext],
    from_state: str = "",
    to_state: str = "",
    payload: Optional[dict[str, Any]] = None,
    at: str = "",
) -> AuditLog:
    row = AuditLog(
        id=new_id("LOG"),
        actor_id=actor_id(actor),
        actor_role=str(actor.role or "") if actor and actor.valid else "PUBLIC",
        action=str(action or "").upper(),
        target_type=str(target_type or "").upper(),
        target_id=str(target_id or ""),
        from_state=str(from_state or ""),
        to_state=str(to_state or ""),
        payload_json=json.dumps(redact_for_audit(payload or {}), ensure_ascii=False, default=str),
        correlation_id=correlation_id(),
        created_at=at or iso_utc_now(),
    )
    db.add(row)
    return row


def serialize_audit(row: AuditLog) -> dict[str, Any]:
    try:
        payload = json.loads(row.payload_json or "{}")
    except ValueError:
        payload = {}
    return {
        "id": row.id,
        "actorId": row.actor_id or "",
        "actorRole": row.actor_role or "",
        "action": row.action or "",
        "targetType": row.target_type or "",
        "targetId": row.target_id or "",
        "fromState": row.from_state or "",
        "toState": row.to_state or "",
        "payload": payload,
        "correlationId": row.correlation_id or "",
        "createdAt": row.created_at or "",
    }
