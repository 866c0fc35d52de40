from __future__ import annotations

from typing import Any, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from models import AuditLog, Candidate, Decision, Employee, Interview, InterviewSession, Position, User
from utils import ApiError


_LABELS = {
    User: "User",
    Position: "Position",
    Candidate: "Candidate",
    Interview: "Interview",
    InterviewSession: "Interview session",
    Decision: "Decision",
    Employee: "Employee",
    AuditLog: "Audit log",
}

DUPLICATE_MESSAGE = "Email or username already exists"


def _expand_options(model, expand: Iterable[str] | None) -> list:
    """
    Turns dotted relationship paths into eager-load options, e.g.
    `["position", "interviews.interviewer"]` on Candidate.
    """

    opts = []
    for path in expand or []:
        parts = [p for p in str(path or "").split(".") if p]
        if not parts:
            continue
        current = model
        loader = None
        for name in parts:
            attr = getattr(current, name, None)
            prop = getattr(attr, "property", None)
            mapper = getattr(prop, "mapper", None)
            if attr is None or mapper is None:
                raise ApiError("BAD_REQUEST", f"Unknown relationship: {path}")
            loader = selectinload(attr) if loader is None else loader.selectinload(attr)
            current = mapper.class_
        opts.append(loader)
    return opts


def _is_unique_violation(e: IntegrityError) -> bool:
    orig = getattr(e, "orig", None)
    if str(getattr(orig, "pgcode", "") or "") == "23505":
        return True
    msg = str(orig or e).lower()
    return "unique" in msg or "duplicate key" in msg


def flush(db, message: str = DUPLICATE_MESSAGE) -> None:
    """Flushes pending writes, mapping constraint failures onto API errors."""
    try:
        db.flush()
    except IntegrityError as e:
        if _is_unique_violation(e):
            raise ApiError("DUPLICATE", message)
        raise ApiError("CONFLICT", "Record is still referenced by other data")


def get_by_id(db, model, row_id: Any, *, expand: Iterable[str] | None = None, lock: bool = False):
    rid = str(row_id or "").strip()
    if not rid:
        return None
    q = select(model).where(model.id == rid)
    opts = _expand_options(model, expand)
    if opts:
        q = q.options(*opts)
    if lock:
        q = q.with_for_update(of=model)
    return db.execute(q).scalars().first()


def get_or_404(db, model, row_id: Any, *, expand: Iterable[str] | None = None, lock: bool = False):
    row = get_by_id(db, model, row_id, expand=expand, lock=lock)
    if not row:
        raise ApiError("NOT_FOUND", f"{_LABELS.get(model, 'Record')} not found")
    return row


def list_rows(
    db,
    model,
    *,
    where: Iterable[Any] | None = None,
    expand: Iterable[str] | None = None,
    order_by: Optional[Any] = None,
    limit: int = 0,
    offset: int = 0,
) -> list:
    q = select(model)
    for clause in where or []:
        q = q.where(clause)
    opts = _expand_options(model, expand)
    if opts:
        q = q.options(*opts)
    q = q.order_by(order_by if order_by is not None else model.created_at.desc())
    if offset > 0:
        q = q.offset(offset)
    if limit > 0:
        q = q.limit(limit)
    return list(db.execute(q).scalars().all())


def count_rows(db, model, *, where: Iterable[Any] | None = None) -> int:
    q = select(func.count()).select_from(model)
    for clause in where or []:
        q = q.where(clause)
    return int(db.execute(q).scalar() or 0)


def count_by(db, column, *, where: Iterable[Any] | None = None) -> dict[str, int]:
    q = select(column, func.count()).group_by(column)
    for clause in where or []:
        q = q.where(clause)
    return {str(k or ""): int(n or 0) for k, n in db.execute(q).all()}


def create(db, model, **values):
    row = model(**values)
    db.add(row)
    flush(db)
    return row


def update(db, row, **values):
    for k, v in values.items():
        if not hasattr(row, k):
            raise ApiError("BAD_REQUEST", f"Unknown field: {k}")
        setattr(row, k, v)
    flush(db)
    return row


def delete(db, row) -> None:
    db.delete(row)
    flush(db)


def page_args(data: Any, *, default_limit: int = 50, max_limit: int = 500) -> tuple[int, int]:
    d = data or {}
    try:
        limit = int(d.get("limit") or default_limit)
    except (TypeError, ValueError):
        limit = default_limit
    try:
        offset = int(d.get("offset") or 0)
    except (TypeError, ValueError):
        offset = 0
    return max(1, min(limit, max_limit)), max(0, offset)
