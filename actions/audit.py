from __future__ import annotations

from actions.helpers import serialize_audit
from models import AuditLog
from repo import count_rows, list_rows, page_args
from utils import AuthContext


def audit_logs_list(data, auth: AuthContext | None, db, cfg):
    d = data or {}
    where = []
    target_type = str(d.get("targetType") or "").upper().strip()
    if target_type:
        where.append(AuditLog.target_type == target_type)
    target_id = str(d.get("targetId") or "").strip()
    if target_id:
        where.append(AuditLog.target_id == target_id)
    action = str(d.get("action") or "").upper().strip()
    if action:
        where.append(AuditLog.action == action)
    actor = str(d.get("actorId") or "").strip()
    if actor:
        where.append(AuditLog.actor_id == actor)
    since = str(d.get("since") or "").strip()
    if since:
        where.append(AuditLog.created_at >= since)

    limit, offset = page_args(d, default_limit=100)
    rows = list_rows(
        db,
        AuditLog,
        where=where,
        order_by=AuditLog.created_at.desc(),
        limit=limit,
        offset=offset,
    )
    return {
        "items": [serialize_audit(r) for r in rows],
        "total": count_rows(db, AuditLog, where=where),
        "limit": limit,
        "offset": offset,
    }
