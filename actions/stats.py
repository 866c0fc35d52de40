from __future__ import annotations

from datetime import datetime, timedelta, timezone

from cache_layer import cache_get_or_set, cache_invalidate_prefix
from models import CANDIDATE_STATUSES, INTERVIEW_RESULTS, Candidate, Employee, Interview
from repo import count_by, count_rows
from utils import AuthContext, to_iso_utc


STATS_CACHE_PREFIX = "STATS:"
_DASHBOARD_KEY = f"{STATS_CACHE_PREFIX}DASHBOARD"

NEW_EMPLOYEE_WINDOW_DAYS = 30


def invalidate_stats_cache() -> None:
    cache_invalidate_prefix(STATS_CACHE_PREFIX)


def mark_stats_dirty(db) -> None:
    db.info["stats_dirty"] = True


def invalidate_stats_if_dirty(db) -> None:
    """Called after commit, so a concurrent read never re-caches uncommitted counts."""
    if db.info.pop("stats_dirty", False):
        invalidate_stats_cache()


def compute_dashboard_stats(db) -> dict:
    by_status = count_by(db, Candidate.status)
    candidates = {s: int(by_status.get(s, 0)) for s in CANDIDATE_STATUSES}
    candidates["total"] = sum(by_status.values())

    by_result = count_by(db, Interview.result)
    interviews = {r: int(by_result.get(r, 0)) for r in INTERVIEW_RESULTS}
    interviews["total"] = sum(by_result.values())

    since = to_iso_utc(datetime.now(timezone.utc) - timedelta(days=NEW_EMPLOYEE_WINDOW_DAYS))
    new_employees = count_rows(db, Employee, where=[Employee.created_at >= since])

    return {
        "candidates": candidates,
        "interviews": interviews,
        "employees": {"total": count_rows(db, Employee), "newLast30Days": new_employees, "since": since},
    }


def dashboard_stats(data, auth: AuthContext | None, db, cfg):
    if (data or {}).get("fresh"):
        invalidate_stats_cache()
    return cache_get_or_set(_DASHBOARD_KEY, lambda: compute_dashboard_stats(db))
