from __future__ import annotations

import hashlib
import json
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from cachetools import TTLCache


ROLES = ("ADMIN", "HR", "EMPLOYEE")

_DEFAULT_HTTP_STATUS = {
    "BAD_REQUEST": 400,
    "VALIDATION": 400,
    "AUTH_INVALID": 401,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "DUPLICATE": 409,
    "INVALID_TRANSITION": 409,
    "RATE_LIMITED": 429,
    "INTERNAL": 500,
}


class ApiError(Exception):
    def __init__(self, code: str, message: str, http_status: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.code = str(code or "INTERNAL").upper()
        self.message = str(message or "")
        self.http_status = int(http_status or _DEFAULT_HTTP_STATUS.get(self.code, 400))
        self.details = details


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved for the current request. Passed explicitly to every action."""

    valid: bool
    userId: str
    email: str
    role: str
    expiresAt: str
    sessionId: str = ""
    fullName: str = ""


GUEST = AuthContext(valid=False, userId="", email="", role="", expiresAt="")


def ok(data: Any = None, http_status: int = 200):
    return {"ok": True, "data": data}, http_status


def err(code: str, message: str, http_status: int = 400, details: Optional[dict] = None):
    error: dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"ok": False, "error": error}, http_status


def to_iso_utc(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_utc_now() -> str:
    return to_iso_utc(datetime.now(timezone.utc))


def parse_iso_utc(value: Any) -> Optional[datetime]:
    s = str(value or "").strip()
    if not s:
        return None
    try:
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def new_uuid() -> str:
    return str(uuid.uuid4())


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:16].upper()}"


def normalize_role(role: Any) -> str:
    r = str(role or "").upper().strip()
    return r if r in ROLES else ""


def parse_bool(value: Any, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "y", "on"}


def sha256_hex(value: str) -> str:
    return hashlib.sha256(str(value or "").encode("utf-8")).hexdigest()


def now_monotonic() -> float:
    return time.monotonic()


def parse_json_body(raw: str) -> dict[str, Any]:
    s = str(raw or "").strip()
    if not s:
        raise ApiError("BAD_REQUEST", "Empty request body")
    try:
        body = json.loads(s)
    except ValueError:
        raise ApiError("BAD_REQUEST", "Invalid JSON body")
    if not isinstance(body, dict):
        raise ApiError("BAD_REQUEST", "Request body must be a JSON object")
    return body


_REDACT_KEYS = {"password", "currentpassword", "newpassword", "token", "sessiontoken", "nationalid"}


def redact_for_audit(data: Any) -> Any:
    if isinstance(data, dict):
        out = {}
        for k, v in data.items():
            if str(k).lower().replace("_", "") in _REDACT_KEYS:
                out[k] = "***"
            else:
                out[k] = redact_for_audit(v)
        return out
    if isinstance(data, list):
        return [redact_for_audit(v) for v in data]
    return data


class SimpleRateLimiter:
    """
    In-process request counters keyed by caller, one TTL cache per window length.

    Each hit refreshes the key's expiry, so a caller must stay quiet for a full
    window before the counter resets.
    """

    def __init__(self, max_keys: int = 100_000):
        self._max_keys = max_keys
        self._windows: dict[int, TTLCache] = {}
        self._lock = threading.Lock()

    def check(self, key: str, limit: tuple[int, int]) -> None:
        max_count, window_s = limit
        with self._lock:
            bucket = self._windows.get(window_s)
            if bucket is None:
                bucket = TTLCache(maxsize=self._max_keys, ttl=window_s)
                self._windows[window_s] = bucket
            count = int(bucket.get(key, 0)) + 1
            bucket[key] = count
        if count > max_count:
            raise ApiError("RATE_LIMITED", "Too many requests, slow down")
