from __future__ import annotations

from actions.helpers import append_audit, require_auth
from actions.pipeline import lock_candidate, transition_candidate
from actions.serializers import serialize_candidate, serialize_decision
from models import Candidate, Decision
from repo import flush, get_or_404, list_rows
from utils import ApiError, AuthContext, iso_utc_now, new_id
from validation import validate_decision


DECISION_TRANSITIONS = {"HIRE": "DECIDE_HIRE", "NO_HIRE": "DECIDE_NO_HIRE"}


def decision_create(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    candidate_id = str((data or {}).get("candidateId") or "").strip()
    if not candidate_id:
        raise ApiError("BAD_REQUEST", "Missing candidateId")
    clean = validate_decision(data)

    cand = lock_candidate(db, candidate_id=candidate_id)
    now = iso_utc_now()

    # Guard first so an illegal decision leaves no Decision row behind.
    transition_candidate(
        db,
        cand,
        DECISION_TRANSITIONS[clean["decision"]],
        auth=auth,
        payload={"decision": clean["decision"]},
        now=now,
    )

    row = Decision(
        id=new_id("DEC"),
        candidate_id=cand.id,
        decided_by=auth.userId,
        decision=clean["decision"],
        decision_notes=clean["decisionNotes"],
        decided_at=now,
    )
    db.add(row)
    flush(db)

    append_audit(
        db,
        action="DECISION_CREATE",
        target_type="DECISION",
        target_id=row.id,
        actor=auth,
        to_state=clean["decision"],
        payload={"candidateId": cand.id, "decisionNotes": clean["decisionNotes"]},
        at=now,
    )
    return {"decision": serialize_decision(row), "candidate": serialize_candidate(cand)}


def decisions_list(data, auth: AuthContext | None, db, cfg):
    candidate_id = str((data or {}).get("candidateId") or "").strip()
    if not candidate_id:
        raise ApiError("BAD_REQUEST", "Missing candidateId")
    get_or_404(db, Candidate, candidate_id)
    rows = list_rows(
        db,
        Decision,
        where=[Decision.candidate_id == candidate_id],
        expand=["decider"],
        order_by=Decision.decided_at.desc(),
    )
    return {"items": [serialize_decision(r, with_decider=True) for r in rows]}
