from __future__ import annotations

from sqlalchemy import or_

from actions.helpers import append_audit
from actions.pipeline import allowed_transitions
from actions.serializers import serialize_candidate, serialize_candidate_detail
from actions.stats import mark_stats_dirty
from models import CANDIDATE_STATUSES, Candidate, Position
from repo import count_rows, create, get_by_id, get_or_404, list_rows, page_args
from utils import ApiError, AuthContext, iso_utc_now, new_id
from validation import validate_candidate


_DETAIL_EXPAND = [
    "position",
    "interviews.interviewer",
    "decisions.decider",
    "sessions",
]


def candidate_apply(data, auth: AuthContext | None, db, cfg):
    clean = validate_candidate(data, cv_max_bytes=cfg.CV_MAX_BYTES)

    position = get_by_id(db, Position, clean["positionId"])
    if not position:
        raise ApiError("VALIDATION", "Please select a position", details={"fields": {"positionId": "Position not found"}})
    if not position.is_open:
        raise ApiError("VALIDATION", "This position is no longer accepting applications", details={"fields": {"positionId": "Position is closed"}})

    now = iso_utc_now()
    cand = create(
        db,
        Candidate,
        id=new_id("CAN"),
        full_name=clean["fullName"],
        email=clean["email"],
        phone=clean["phone"],
        cv_url=clean["cvUrl"],
        applied_position_id=position.id,
        status="SUBMITTED",
        created_at=now,
        updated_at=now,
    )

    append_audit(
        db,
        action="CANDIDATE_APPLY",
        target_type="CANDIDATE",
        target_id=cand.id,
        actor=auth,
        from_state="",
        to_state="SUBMITTED",
        payload={"positionId": position.id, "email": clean["email"]},
        at=now,
    )
    mark_stats_dirty(db)
    return {"candidate": serialize_candidate(cand)}


def candidates_list(data, auth: AuthContext | None, db, cfg):
    d = data or {}
    where = []

    status = str(d.get("status") or "").upper().strip()
    if status:
        if status not in CANDIDATE_STATUSES:
            raise ApiError("BAD_REQUEST", f"Invalid status: {status}")
        where.append(Candidate.status == status)

    position_id = str(d.get("positionId") or "").strip()
    if position_id:
        where.append(Candidate.applied_position_id == position_id)

    search = str(d.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        where.append(or_(Candidate.full_name.ilike(like), Candidate.email.ilike(like), Candidate.phone.ilike(like)))

    limit, offset = page_args(d)
    rows = list_rows(db, Candidate, where=where, expand=["position"], limit=limit, offset=offset)
    return {
        "items": [serialize_candidate(c, with_position=True) for c in rows],
        "total": count_rows(db, Candidate, where=where),
        "limit": limit,
        "offset": offset,
    }


def candidate_get(data, auth: AuthContext | None, db, cfg):
    candidate_id = str((data or {}).get("candidateId") or "").strip()
    if not candidate_id:
        raise ApiError("BAD_REQUEST", "Missing candidateId")
    cand = get_or_404(db, Candidate, candidate_id, expand=_DETAIL_EXPAND)
    out = serialize_candidate_detail(cand)
    out["allowedTransitions"] = allowed_transitions(cand.status)
    return {"candidate": out}
