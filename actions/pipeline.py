from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select

from actions.helpers import actor_id, append_audit, require_auth
from actions.serializers import serialize_candidate
from actions.stats import mark_stats_dirty
from models import Candidate
from utils import ApiError, AuthContext, iso_utc_now


log = logging.getLogger("pipeline")


TERMINAL_STATUSES = frozenset({"REJECTED", "NOT_HIRED", "HIRED"})

# transition -> (allowed source states, target state)
TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "APPROVE": (frozenset({"SUBMITTED"}), "APPROVED"),
    "REJECT": (frozenset({"SUBMITTED"}), "REJECTED"),
    "SCHEDULE_INTERVIEW": (frozenset({"APPROVED"}), "INTERVIEW"),
    "DECIDE_HIRE": (frozenset({"APPROVED", "INTERVIEW"}), "OFFERED"),
    "DECIDE_NO_HIRE": (frozenset({"APPROVED", "INTERVIEW"}), "NOT_HIRED"),
    "PROVISION_EMPLOYEE": (frozenset({"OFFERED"}), "HIRED"),
}

BULK_DECISIONS = {"APPROVE": "APPROVE", "REJECT": "REJECT"}
_BULK_MAX = 200


class InvalidTransition(ApiError):
    def __init__(self, *, candidate_id: str, transition: str, from_state: str):
        allowed = sorted(TRANSITIONS[transition][0]) if transition in TRANSITIONS else []
        super().__init__(
            "INVALID_TRANSITION",
            f"Cannot {transition} a candidate in status {from_state or 'UNKNOWN'}",
            details={"candidateId": candidate_id, "transition": transition, "fromState": from_state, "allowedFrom": allowed},
        )
        self.candidate_id = candidate_id
        self.transition = transition
        self.from_state = from_state


def next_status(current: str, transition: str) -> Optional[str]:
    """Target state for `transition` from `current`, or None when the move is illegal."""
    rule = TRANSITIONS.get(str(transition or "").upper())
    if not rule:
        return None
    sources, target = rule
    if str(current or "").upper() not in sources:
        return None
    return target


def allowed_transitions(current: str) -> list[str]:
    cur = str(current or "").upper()
    return [name for name, (sources, _target) in TRANSITIONS.items() if cur in sources]


def lock_candidate(db, *, candidate_id: str) -> Candidate:
    cid = str(candidate_id or "").strip()
    if not cid:
        raise ApiError("BAD_REQUEST", "Missing candidateId")

    cand = (
        db.execute(select(Candidate).where(Candidate.id == cid).with_for_update(of=Candidate))
        .scalars()
        .first()
    )
    if not cand:
        raise ApiError("NOT_FOUND", "Candidate not found")
    return cand


def transition_candidate(
    db,
    cand: Candidate,
    transition: str,
    *,
    auth: AuthContext,
    payload: Optional[dict[str, Any]] = None,
    now: str = "",
) -> str:
    """
    The only writer of Candidate.status. Checks the current state, applies the
    move and appends the audit entry; an illegal move writes nothing.
    """

    tr = str(transition or "").upper().strip()
    if tr not in TRANSITIONS:
        raise ApiError("BAD_REQUEST", f"Unknown transition: {tr}")

    from_state = str(cand.status or "").upper()
    to_state = next_status(from_state, tr)
    if not to_state:
        raise InvalidTransition(candidate_id=cand.id, transition=tr, from_state=from_state)

    now = now or iso_utc_now()
    cand.status = to_state
    cand.updated_at = now

    append_audit(
        db,
        action=f"CANDIDATE_{tr}",
        target_type="CANDIDATE",
        target_id=cand.id,
        actor=auth,
        from_state=from_state,
        to_state=to_state,
        payload=payload,
        at=now,
    )
    mark_stats_dirty(db)
    log.info("candidate=%s transition=%s from=%s to=%s actor=%s", cand.id, tr, from_state, to_state, actor_id(auth))
    return to_state


def _decide_one(db, *, candidate_id: str, transition: str, auth: AuthContext, remark: str) -> Candidate:
    cand = lock_candidate(db, candidate_id=candidate_id)
    transition_candidate(db, cand, transition, auth=auth, payload={"remark": remark} if remark else None)
    return cand


def candidate_approve(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    remark = str((data or {}).get("remark") or "").strip()
    cand = _decide_one(db, candidate_id=(data or {}).get("candidateId"), transition="APPROVE", auth=auth, remark=remark)
    return {"candidate": serialize_candidate(cand)}


def candidate_reject(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    remark = str((data or {}).get("remark") or "").strip()
    cand = _decide_one(db, candidate_id=(data or {}).get("candidateId"), transition="REJECT", auth=auth, remark=remark)
    return {"candidate": serialize_candidate(cand)}


def candidate_bulk_decide(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    decision = str((data or {}).get("decision") or "").upper().strip()
    transition = BULK_DECISIONS.get(decision)
    if not transition:
        raise ApiError("VALIDATION", "Decision must be APPROVE or REJECT", details={"fields": {"decision": "Decision must be APPROVE or REJECT"}})

    raw_ids = (data or {}).get("candidateIds") or []
    if not isinstance(raw_ids, list):
        raise ApiError("BAD_REQUEST", "candidateIds must be a list")
    ids: list[str] = []
    for v in raw_ids:
        cid = str(v or "").strip()
        if cid and cid not in ids:
            ids.append(cid)
    if not ids:
        raise ApiError("BAD_REQUEST", "Missing candidateIds")
    if len(ids) > _BULK_MAX:
        raise ApiError("BAD_REQUEST", f"At most {_BULK_MAX} candidates per request")

    remark = str((data or {}).get("remark") or "").strip()
    results: list[dict[str, Any]] = []
    for cid in ids:
        try:
            with db.begin_nested():
                cand = _decide_one(db, candidate_id=cid, transition=transition, auth=auth, remark=remark)
            results.append({"candidateId": cid, "ok": True, "status": cand.status})
        except ApiError as e:
            results.append({"candidateId": cid, "ok": False, "error": {"code": e.code, "message": e.message}})

    succeeded = sum(1 for r in results if r["ok"])
    return {"decision": decision, "results": results, "succeeded": succeeded, "failed": len(results) - succeeded}
