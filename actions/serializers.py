from __future__ import annotations

from typing import Any, Optional

from auth import serialize_user
from models import Candidate, Decision, Employee, Interview, InterviewSession, Position, User


def user_brief(row: Optional[User]) -> Optional[dict[str, Any]]:
    if row is None:
        return None
    return {"id": row.id, "username": row.username or "", "fullName": row.full_name or "", "email": row.email or "", "role": row.role or ""}


def serialize_position(row: Position) -> dict[str, Any]:
    return {
        "id": row.id,
        "title": row.title or "",
        "department": row.department or "",
        "description": row.description or "",
        "isOpen": bool(row.is_open),
        "createdAt": row.created_at or "",
        "updatedAt": row.updated_at or "",
    }


def serialize_candidate(row: Candidate, *, with_position: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": row.id,
        "fullName": row.full_name or "",
        "email": row.email or "",
        "phone": row.phone or "",
        "cvUrl": row.cv_url or "",
        "appliedPositionId": row.applied_position_id or "",
        "status": row.status or "",
        "createdAt": row.created_at or "",
        "updatedAt": row.updated_at or "",
    }
    if with_position:
        out["position"] = serialize_position(row.position) if row.position else None
    return out


def serialize_interview(row: Interview, *, with_interviewer: bool = False, with_candidate: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": row.id,
        "candidateId": row.candidate_id or "",
        "interviewerId": row.interviewer_id or "",
        "interviewSessionId": row.interview_session_id or "",
        "techNotes": row.tech_notes or "",
        "softNotes": row.soft_notes or "",
        "result": row.result or "",
        "attachmentUrl": row.attachment_url or "",
        "createdAt": row.created_at or "",
        "updatedAt": row.updated_at or "",
    }
    if with_interviewer:
        out["interviewer"] = user_brief(row.interviewer)
    if with_candidate:
        out["candidate"] = serialize_candidate(row.candidate, with_position=True) if row.candidate else None
        out["session"] = (
            {"id": row.session.id, "title": row.session.title or "", "scheduledDate": row.session.scheduled_date or "", "status": row.session.status or ""}
            if row.session
            else None
        )
    return out


def result_counts(interviews) -> dict[str, int]:
    counts = {"PASS": 0, "FAIL": 0, "PENDING": 0}
    for it in interviews or []:
        r = str(it.result or "").upper()
        if r in counts:
            counts[r] += 1
    counts["total"] = sum(counts.values())
    return counts


def serialize_session(row: InterviewSession, *, expanded: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": row.id,
        "candidateId": row.candidate_id or "",
        "title": row.title or "",
        "scheduledDate": row.scheduled_date or "",
        "status": row.status or "",
        "createdBy": row.created_by or "",
        "createdAt": row.created_at or "",
        "updatedAt": row.updated_at or "",
    }
    if expanded:
        out["candidate"] = serialize_candidate(row.candidate, with_position=True) if row.candidate else None
        out["creator"] = user_brief(row.creator)
        out["interviews"] = [serialize_interview(i, with_interviewer=True) for i in row.interviews]
        out["resultCounts"] = result_counts(row.interviews)
    return out


def serialize_decision(row: Decision, *, with_decider: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": row.id,
        "candidateId": row.candidate_id or "",
        "decidedBy": row.decided_by or "",
        "decision": row.decision or "",
        "decisionNotes": row.decision_notes or "",
        "decidedAt": row.decided_at or "",
    }
    if with_decider:
        out["decider"] = user_brief(row.decider)
    return out


def serialize_employee(row: Employee, *, with_user: bool = False) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": row.id,
        "userId": row.user_id or "",
        "candidateId": row.candidate_id or "",
        "placeOfResidence": row.place_of_residence or "",
        "hometown": row.hometown or "",
        "nationalId": row.national_id or "",
        "createdAt": row.created_at or "",
        "updatedAt": row.updated_at or "",
    }
    if with_user:
        out["user"] = serialize_user(row.user) if row.user else None
    return out


def serialize_candidate_detail(row: Candidate) -> dict[str, Any]:
    out = serialize_candidate(row, with_position=True)
    out["interviews"] = [serialize_interview(i, with_interviewer=True) for i in row.interviews]
    out["decisions"] = [serialize_decision(d, with_decider=True) for d in row.decisions]
    out["interviewSessions"] = [serialize_session(s) for s in row.sessions]
    out["resultCounts"] = result_counts(row.interviews)
    return out
