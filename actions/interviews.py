from __future__ import annotations

import logging

from sqlalchemy import select

from actions.helpers import append_audit, require_auth
from actions.pipeline import InvalidTransition, lock_candidate, transition_candidate
from actions.serializers import serialize_interview, serialize_session
from actions.stats import mark_stats_dirty
from models import INTERVIEW_RESULTS, SESSION_STATUSES, Interview, InterviewSession, User
from repo import count_by, count_rows, flush, get_or_404, list_rows, page_args
from utils import ApiError, AuthContext, iso_utc_now, new_id, normalize_role, parse_iso_utc, to_iso_utc
from validation import FieldErrors, validate_interview


log = logging.getLogger("pipeline")


# SCHEDULED -> IN_PROGRESS -> COMPLETED; CANCELLED from any non-terminal state.
SESSION_TRANSITIONS: dict[str, set[str]] = {
    "SCHEDULED": {"IN_PROGRESS", "CANCELLED"},
    "IN_PROGRESS": {"COMPLETED", "CANCELLED"},
    "COMPLETED": set(),
    "CANCELLED": set(),
}

_SESSION_EXPAND = ["candidate.position", "creator", "interviews.interviewer"]
_INTERVIEW_EXPAND = ["interviewer", "candidate.position", "session"]


def _clean_interviewer_ids(raw) -> list[str]:
    if not isinstance(raw, list):
        return []
    out: list[str] = []
    for v in raw:
        uid = str(v or "").strip()
        if uid and uid not in out:
            out.append(uid)
    return out


def interview_session_create(data, auth: AuthContext | None, db, cfg):
    """
    Creates the session, one PENDING interview per interviewer and moves the
    candidate to INTERVIEW. Runs inside the request transaction, so any failure
    leaves none of these rows behind.
    """

    auth = require_auth(auth)
    d = data or {}

    errors = FieldErrors()
    candidate_id = str(d.get("candidateId") or "").strip()
    title = str(d.get("title") or "").strip()
    interviewer_ids = _clean_interviewer_ids(d.get("interviewerIds"))
    scheduled_raw = str(d.get("scheduledDate") or "").strip()
    scheduled = ""

    if not candidate_id:
        errors.add("candidateId", "Please select a candidate")
    errors.min_len("title", title, 2, "Title")
    if not interviewer_ids:
        errors.add("interviewerIds", "Select at least one interviewer")
    if scheduled_raw:
        dt = parse_iso_utc(scheduled_raw)
        if not dt:
            errors.add("scheduledDate", "Invalid date")
        else:
            scheduled = to_iso_utc(dt)
    errors.raise_if_any()

    cand = lock_candidate(db, candidate_id=candidate_id)
    status = str(cand.status or "").upper()
    if status not in {"APPROVED", "INTERVIEW"}:
        raise InvalidTransition(candidate_id=cand.id, transition="SCHEDULE_INTERVIEW", from_state=status)

    users = db.execute(select(User).where(User.id.in_(interviewer_ids))).scalars().all()
    by_id = {u.id: u for u in users}
    bad = [uid for uid in interviewer_ids if uid not in by_id or str(by_id[uid].status or "").upper() != "ACTIVE"]
    if bad:
        raise ApiError(
            "VALIDATION",
            "Interviewers must be active users",
            details={"fields": {"interviewerIds": "Interviewers must be active users"}, "invalidIds": bad},
        )

    now = iso_utc_now()
    session = InterviewSession(
        id=new_id("ISN"),
        candidate_id=cand.id,
        title=title,
        scheduled_date=scheduled,
        status="SCHEDULED",
        created_by=auth.userId,
        created_at=now,
        updated_at=now,
    )
    db.add(session)

    interviews = []
    for uid in interviewer_ids:
        row = Interview(
            id=new_id("INT"),
            candidate_id=cand.id,
            interviewer_id=uid,
            interview_session_id=session.id,
            tech_notes="",
            soft_notes="",
            result="PENDING",
            attachment_url="",
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        interviews.append(row)
    flush(db)

    append_audit(
        db,
        action="INTERVIEW_SESSION_CREATE",
        target_type="INTERVIEW_SESSION",
        target_id=session.id,
        actor=auth,
        to_state="SCHEDULED",
        payload={"candidateId": cand.id, "title": title, "scheduledDate": scheduled, "interviewerIds": interviewer_ids},
        at=now,
    )

    # A later session for a candidate already in INTERVIEW leaves the status alone.
    if status == "APPROVED":
        transition_candidate(db, cand, "SCHEDULE_INTERVIEW", auth=auth, payload={"sessionId": session.id}, now=now)
    mark_stats_dirty(db)

    return {
        "session": serialize_session(session),
        "interviews": [serialize_interview(i) for i in interviews],
        "candidateStatus": cand.status,
    }


def interview_sessions_list(data, auth: AuthContext | None, db, cfg):
    d = data or {}
    where = []
    status = str(d.get("status") or "").upper().strip()
    if status:
        if status not in SESSION_STATUSES:
            raise ApiError("BAD_REQUEST", f"Invalid status: {status}")
        where.append(InterviewSession.status == status)
    candidate_id = str(d.get("candidateId") or "").strip()
    if candidate_id:
        where.append(InterviewSession.candidate_id == candidate_id)

    limit, offset = page_args(d)
    rows = list_rows(db, InterviewSession, where=where, expand=_SESSION_EXPAND, limit=limit, offset=offset)
    return {
        "items": [serialize_session(s, expanded=True) for s in rows],
        "total": count_rows(db, InterviewSession, where=where),
        "limit": limit,
        "offset": offset,
    }


def interview_session_status_set(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    session_id = str((data or {}).get("sessionId") or "").strip()
    to_status = str((data or {}).get("status") or "").upper().strip()
    if not session_id:
        raise ApiError("BAD_REQUEST", "Missing sessionId")
    if to_status not in SESSION_STATUSES:
        raise ApiError("BAD_REQUEST", f"Invalid status: {to_status}")

    session = get_or_404(db, InterviewSession, session_id, lock=True)
    from_status = str(session.status or "").upper()
    if to_status not in SESSION_TRANSITIONS.get(from_status, set()):
        raise ApiError(
            "INVALID_TRANSITION",
            f"Cannot move interview session from {from_status} to {to_status}",
            details={"sessionId": session.id, "fromState": from_status, "toState": to_status},
        )

    now = iso_utc_now()
    session.status = to_status
    session.updated_at = now
    append_audit(
        db,
        action="INTERVIEW_SESSION_STATUS_SET",
        target_type="INTERVIEW_SESSION",
        target_id=session.id,
        actor=auth,
        from_state=from_status,
        to_state=to_status,
        at=now,
    )
    log.info("session=%s from=%s to=%s actor=%s", session.id, from_status, to_status, auth.userId)
    return {"session": serialize_session(session)}


def _interview_filters(d: dict) -> list:
    where = []
    result = str(d.get("result") or "").upper().strip()
    if result:
        if result not in INTERVIEW_RESULTS:
            raise ApiError("BAD_REQUEST", f"Invalid result: {result}")
        where.append(Interview.result == result)
    candidate_id = str(d.get("candidateId") or "").strip()
    if candidate_id:
        where.append(Interview.candidate_id == candidate_id)
    session_id = str(d.get("sessionId") or "").strip()
    if session_id:
        where.append(Interview.interview_session_id == session_id)
    return where


def interviews_list(data, auth: AuthContext | None, db, cfg):
    d = data or {}
    where = _interview_filters(d)
    interviewer_id = str(d.get("interviewerId") or "").strip()
    if interviewer_id:
        where.append(Interview.interviewer_id == interviewer_id)

    limit, offset = page_args(d)
    rows = list_rows(db, Interview, where=where, expand=_INTERVIEW_EXPAND, limit=limit, offset=offset)
    return {
        "items": [serialize_interview(i, with_interviewer=True, with_candidate=True) for i in rows],
        "total": count_rows(db, Interview, where=where),
        "limit": limit,
        "offset": offset,
    }


def my_interviews_list(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    d = data or {}
    mine = Interview.interviewer_id == auth.userId
    rows = list_rows(db, Interview, where=[mine] + _interview_filters(d), expand=_INTERVIEW_EXPAND)
    by_result = count_by(db, Interview.result, where=[mine])
    summary = {r: int(by_result.get(r, 0)) for r in INTERVIEW_RESULTS}
    summary["total"] = sum(by_result.values())
    return {"items": [serialize_interview(i, with_candidate=True) for i in rows], "summary": summary}


def interview_update(data, auth: AuthContext | None, db, cfg):
    auth = require_auth(auth)
    interview_id = str((data or {}).get("interviewId") or "").strip()
    if not interview_id:
        raise ApiError("BAD_REQUEST", "Missing interviewId")

    row = get_or_404(db, Interview, interview_id, lock=True)
    role = normalize_role(auth.role)
    if role not in {"ADMIN", "HR"} and row.interviewer_id != auth.userId:
        raise ApiError("FORBIDDEN", "You can only update your own interviews")

    clean = validate_interview(data)
    from_result = str(row.result or "")
    now = iso_utc_now()
    row.tech_notes = clean["techNotes"]
    row.soft_notes = clean["softNotes"]
    row.result = clean["result"]
    if clean["attachmentUrl"]:
        row.attachment_url = clean["attachmentUrl"]
    row.updated_at = now

    append_audit(
        db,
        action="INTERVIEW_UPDATE",
        target_type="INTERVIEW",
        target_id=row.id,
        actor=auth,
        from_state=from_result,
        to_state=row.result,
        payload={"candidateId": row.candidate_id, "sessionId": row.interview_session_id or ""},
        at=now,
    )
    mark_stats_dirty(db)
    return {"interview": serialize_interview(row)}
