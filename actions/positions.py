from __future__ import annotations

from actions.helpers import append_audit
from actions.serializers import serialize_position
from models import Position
from repo import create, get_or_404, list_rows, update
from utils import ApiError, AuthContext, iso_utc_now, new_id, parse_bool
from validation import validate_position


SAMPLE_POSITIONS = [
    ("Backend Developer", "Engineering", "Build and operate the services behind our products."),
    ("Frontend Developer", "Engineering", "Ship accessible, fast web interfaces."),
    ("QA Engineer", "Engineering", "Own test plans and release quality."),
    ("HR Executive", "Human Resources", "Run recruiting operations and onboarding."),
    ("Business Analyst", "Operations", "Turn stakeholder needs into clear requirements."),
]


def seed_positions(db) -> int:
    if db.query(Position.id).first() is not None:
        return 0
    now = iso_utc_now()
    for title, department, description in SAMPLE_POSITIONS:
        db.add(
            Position(
                id=new_id("POS"),
                title=title,
                department=department,
                description=description,
                is_open=True,
                created_at=now,
                updated_at=now,
            )
        )
    return len(SAMPLE_POSITIONS)


def positions_list(data, auth: AuthContext | None, db, cfg):
    d = data or {}
    where = []
    if "isOpen" in d and d.get("isOpen") not in (None, ""):
        where.append(Position.is_open == parse_bool(d.get("isOpen")))
    rows = list_rows(db, Position, where=where, order_by=Position.title.asc())
    return {"items": [serialize_position(p) for p in rows]}


def positions_open_list(data, auth: AuthContext | None, db, cfg):
    rows = list_rows(db, Position, where=[Position.is_open == True], order_by=Position.title.asc())  # noqa: E712
    return {"items": [serialize_position(p) for p in rows]}


def position_create(data, auth: AuthContext | None, db, cfg):
    clean = validate_position(data)
    now = iso_utc_now()
    row = create(
        db,
        Position,
        id=new_id("POS"),
        title=clean["title"],
        department=clean.get("department", ""),
        description=clean.get("description", ""),
        is_open=bool(clean.get("isOpen", True)),
        created_at=now,
        updated_at=now,
    )
    append_audit(
        db,
        action="POSITION_CREATE",
        target_type="POSITION",
        target_id=row.id,
        actor=auth,
        to_state="OPEN" if row.is_open else "CLOSED",
        payload={"title": row.title, "department": row.department},
        at=now,
    )
    return {"position": serialize_position(row)}


def position_update(data, auth: AuthContext | None, db, cfg):
    position_id = str((data or {}).get("positionId") or "").strip()
    if not position_id:
        raise ApiError("BAD_REQUEST", "Missing positionId")
    row = get_or_404(db, Position, position_id)
    clean = validate_position(data, partial=True)
    if not clean:
        raise ApiError("BAD_REQUEST", "Nothing to update")

    before = "OPEN" if row.is_open else "CLOSED"
    values = {}
    if "title" in clean:
        values["title"] = clean["title"]
    if "department" in clean:
        values["department"] = clean["department"]
    if "description" in clean:
        values["description"] = clean["description"]
    if "isOpen" in clean:
        values["is_open"] = clean["isOpen"]
    now = iso_utc_now()
    update(db, row, updated_at=now, **values)

    append_audit(
        db,
        action="POSITION_UPDATE",
        target_type="POSITION",
        target_id=row.id,
        actor=auth,
        from_state=before,
        to_state="OPEN" if row.is_open else "CLOSED",
        payload=clean,
        at=now,
    )
    return {"position": serialize_position(row)}
