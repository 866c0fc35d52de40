from __future__ import annotations

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from db import Base


USER_ROLES = ("ADMIN", "HR", "EMPLOYEE")
USER_STATUSES = ("ACTIVE", "DISABLED")
CANDIDATE_STATUSES = ("SUBMITTED", "REJECTED", "APPROVED", "INTERVIEW", "OFFERED", "HIRED", "NOT_HIRED")
INTERVIEW_RESULTS = ("PASS", "FAIL", "PENDING")
SESSION_STATUSES = ("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED")
DECISIONS = ("HIRE", "NO_HIRE")


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String(100), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(20), nullable=False, default="")
    full_name = Column(Text, nullable=False, default="")
    role = Column(String(20), nullable=False, default="EMPLOYEE", index=True)
    status = Column(String(20), nullable=False, default="ACTIVE", index=True)
    password_hash = Column(Text, nullable=False, default="")
    created_at = Column(String(32), nullable=False, default="", index=True)
    updated_at = Column(String(32), nullable=False, default="")

    employee = relationship("Employee", back_populates="user", uselist=False, cascade="all, delete-orphan")


class Position(Base):
    __tablename__ = "positions"

    id = Column(String, primary_key=True)
    title = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    is_open = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(String(32), nullable=False, default="", index=True)
    updated_at = Column(String(32), nullable=False, default="")


class Candidate(Base):
    __tablename__ = "candidates"

    id = Column(String, primary_key=True)
    full_name = Column(Text, nullable=False, default="")
    email = Column(String(255), nullable=False, default="", index=True)
    phone = Column(String(20), nullable=False, default="")
    cv_url = Column(Text, nullable=False, default="")
    applied_position_id = Column(String, ForeignKey("positions.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="SUBMITTED", index=True)
    created_at = Column(String(32), nullable=False, default="", index=True)
    updated_at = Column(String(32), nullable=False, default="")

    position = relationship("Position")
    interviews = relationship("Interview", back_populates="candidate", order_by="Interview.created_at.desc()")
    decisions = relationship("Decision", back_populates="candidate", order_by="Decision.decided_at.desc()")
    sessions = relationship("InterviewSession", back_populates="candidate", order_by="InterviewSession.created_at.desc()")


class InterviewSession(Base):
    __tablename__ = "interview_sessions"

    id = Column(String, primary_key=True)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    title = Column(Text, nullable=False, default="")
    scheduled_date = Column(String(32), nullable=False, default="")
    status = Column(String(20), nullable=False, default="SCHEDULED", index=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(String(32), nullable=False, default="", index=True)
    updated_at = Column(String(32), nullable=False, default="")

    candidate = relationship("Candidate", back_populates="sessions")
    creator = relationship("User", foreign_keys=[created_by])
    interviews = relationship("Interview", back_populates="session", order_by="Interview.created_at")


class Interview(Base):
    __tablename__ = "interviews"
    __table_args__ = (Index("ix_interviews_interviewer_result", "interviewer_id", "result"),)

    id = Column(String, primary_key=True)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    interviewer_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    interview_session_id = Column(String, ForeignKey("interview_sessions.id"), nullable=True, index=True)
    tech_notes = Column(Text, nullable=False, default="")
    soft_notes = Column(Text, nullable=False, default="")
    result = Column(String(20), nullable=False, default="PENDING", index=True)
    attachment_url = Column(Text, nullable=False, default="")
    created_at = Column(String(32), nullable=False, default="", index=True)
    updated_at = Column(String(32), nullable=False, default="")

    candidate = relationship("Candidate", back_populates="interviews")
    interviewer = relationship("User", foreign_keys=[interviewer_id])
    session = relationship("InterviewSession", back_populates="interviews")


class Decision(Base):
    __tablename__ = "decisions"

    id = Column(String, primary_key=True)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=False, index=True)
    decided_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    decision = Column(String(20), nullable=False)
    decision_notes = Column(Text, nullable=False, default="")
    decided_at = Column(String(32), nullable=False, default="", index=True)

    candidate = relationship("Candidate", back_populates="decisions")
    decider = relationship("User", foreign_keys=[decided_by])


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String, primary_key=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    candidate_id = Column(String, ForeignKey("candidates.id"), nullable=True, index=True)
    place_of_residence = Column(Text, nullable=False, default="")
    hometown = Column(Text, nullable=False, default="")
    national_id = Column(String(12), nullable=False, default="")
    created_at = Column(String(32), nullable=False, default="", index=True)
    updated_at = Column(String(32), nullable=False, default="")

    user = relationship("User", back_populates="employee")
    candidate = relationship("Candidate")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_target", "target_type", "target_id"),)

    id = Column(String, primary_key=True)
    # No FK: actor may be PUBLIC/SYSTEM or a since-deleted user.
    actor_id = Column(String, nullable=False, default="", index=True)
    actor_role = Column(String(20), nullable=False, default="")
    action = Column(String(64), nullable=False, index=True)
    target_type = Column(String(64), nullable=False, default="")
    target_id = Column(String, nullable=False, default="")
    from_state = Column(String(32), nullable=False, default="")
    to_state = Column(String(32), nullable=False, default="")
    payload_json = Column(Text, nullable=False, default="{}")
    correlation_id = Column(String(64), nullable=False, default="")
    created_at = Column(String(32), nullable=False, default="", index=True)


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    id = Column(String, primary_key=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    token_prefix = Column(String(16), nullable=False, default="")
    user_id = Column(String, nullable=False, index=True)
    email = Column(String(255), nullable=False, default="")
    role = Column(String(20), nullable=False, default="")
    issued_at = Column(String(32), nullable=False, default="")
    expires_at = Column(String(32), nullable=False, default="")
    last_seen_at = Column(String(32), nullable=False, default="")
    revoked_at = Column(String(32), nullable=False, default="")
