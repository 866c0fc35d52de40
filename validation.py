from __future__ import annotations

import re
from typing import Any, Optional

from models import DECISIONS, INTERVIEW_RESULTS, USER_ROLES
from utils import ApiError, parse_bool


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_RE = re.compile(r"^[0-9]{9,12}$")
_NATIONAL_ID_RE = re.compile(r"^[0-9]{12}$")

CV_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
CV_EXTENSIONS = (".pdf", ".doc", ".docx")


def is_valid_email(value: Any) -> bool:
    return bool(_EMAIL_RE.match(str(value or "").strip()))


def is_valid_phone(value: Any) -> bool:
    return bool(_PHONE_RE.match(str(value or "").strip()))


def is_valid_national_id(value: Any) -> bool:
    return bool(_NATIONAL_ID_RE.match(str(value or "").strip()))


class FieldErrors:
    """Collects per-field messages so a form reports every problem at once."""

    def __init__(self):
        self.fields: dict[str, str] = {}

    def add(self, field: str, message: str) -> None:
        self.fields.setdefault(field, message)

    def min_len(self, field: str, value: str, n: int, label: str) -> None:
        if len(value) < n:
            self.add(field, f"{label} must be at least {n} characters")

    def raise_if_any(self) -> None:
        if not self.fields:
            return
        first = next(iter(self.fields.values()))
        raise ApiError("VALIDATION", first, details={"fields": dict(self.fields)})


def _s(data: Any, key: str) -> str:
    return str((data or {}).get(key) or "").strip()


def validate_login(data: Any) -> dict[str, str]:
    errors = FieldErrors()
    email = _s(data, "email").lower()
    password = str((data or {}).get("password") or "")
    if not is_valid_email(email):
        errors.add("email", "Invalid email address")
    if len(password) < 6:
        errors.add("password", "Password must be at least 6 characters")
    errors.raise_if_any()
    return {"email": email, "password": password}


def validate_candidate(data: Any, *, cv_max_bytes: int) -> dict[str, Any]:
    errors = FieldErrors()
    full_name = _s(data, "fullName")
    email = _s(data, "email").lower()
    phone = _s(data, "phone")
    position_id = _s(data, "positionId")
    cv_url = _s(data, "cvUrl")

    errors.min_len("fullName", full_name, 2, "Full name")
    if not is_valid_email(email):
        errors.add("email", "Invalid email address")
    if not is_valid_phone(phone):
        errors.add("phone", "Phone number must be 9-12 digits")
    if not position_id:
        errors.add("positionId", "Please select a position")
    if not cv_url:
        errors.add("cvUrl", "CV is required")

    cv_error = check_cv_metadata(
        mime_type=_s(data, "cvMimeType"),
        size=(data or {}).get("cvSize"),
        file_name=_s(data, "cvFileName") or cv_url,
        max_bytes=cv_max_bytes,
    )
    if cv_error:
        errors.add("cv", cv_error)

    errors.raise_if_any()
    return {"fullName": full_name, "email": email, "phone": phone, "positionId": position_id, "cvUrl": cv_url}


def check_cv_metadata(*, mime_type: str, size: Any, file_name: str, max_bytes: int) -> Optional[str]:
    """Returns an error message, or None when the CV reference looks acceptable."""
    mt = str(mime_type or "").strip().lower()
    if mt and mt not in CV_MIME_TYPES:
        return "CV must be a PDF or Word document"
    if not mt:
        name = str(file_name or "").split("?", 1)[0].strip().lower()
        if name and "." in name.rsplit("/", 1)[-1] and not name.endswith(CV_EXTENSIONS):
            return "CV must be a PDF or Word document"
    if size not in (None, ""):
        try:
            n = int(size)
        except (TypeError, ValueError):
            return "Invalid CV size"
        if n < 0:
            return "Invalid CV size"
        if n > max_bytes:
            return f"CV must be at most {max_bytes // (1024 * 1024)}MB"
    return None


def validate_interview(data: Any) -> dict[str, str]:
    errors = FieldErrors()
    tech = _s(data, "techNotes")
    soft = _s(data, "softNotes")
    result = _s(data, "result").upper()
    errors.min_len("techNotes", tech, 10, "Technical notes")
    errors.min_len("softNotes", soft, 10, "Soft skill notes")
    if result not in INTERVIEW_RESULTS:
        errors.add("result", "Result must be PASS, FAIL or PENDING")
    errors.raise_if_any()
    return {"techNotes": tech, "softNotes": soft, "result": result, "attachmentUrl": _s(data, "attachmentUrl")}


def validate_decision(data: Any) -> dict[str, str]:
    errors = FieldErrors()
    decision = _s(data, "decision").upper()
    notes = _s(data, "decisionNotes")
    if decision not in DECISIONS:
        errors.add("decision", "Decision must be HIRE or NO_HIRE")
    errors.min_len("decisionNotes", notes, 10, "Decision notes")
    errors.raise_if_any()
    return {"decision": decision, "decisionNotes": notes}


def validate_employee_profile(data: Any) -> dict[str, str]:
    errors = FieldErrors()
    residence = _s(data, "placeOfResidence")
    hometown = _s(data, "hometown")
    national_id = _s(data, "nationalId")
    errors.min_len("placeOfResidence", residence, 5, "Place of residence")
    errors.min_len("hometown", hometown, 5, "Hometown")
    if not is_valid_national_id(national_id):
        errors.add("nationalId", "National ID must be exactly 12 digits")
    errors.raise_if_any()
    return {"placeOfResidence": residence, "hometown": hometown, "nationalId": national_id}


def validate_user(data: Any, *, partial: bool = False) -> dict[str, str]:
    """
    Account form rules. With partial=True only the supplied keys are checked,
    which is how USER_UPDATE applies edits.
    """

    errors = FieldErrors()
    out: dict[str, str] = {}
    d = data or {}

    def wanted(key: str) -> bool:
        return not partial or key in d

    if wanted("username"):
        out["username"] = _s(d, "username").lower()
        errors.min_len("username", out["username"], 3, "Username")
    if wanted("email"):
        out["email"] = _s(d, "email").lower()
        if not is_valid_email(out["email"]):
            errors.add("email", "Invalid email address")
    if wanted("phone"):
        out["phone"] = _s(d, "phone")
        if not is_valid_phone(out["phone"]):
            errors.add("phone", "Phone number must be 9-12 digits")
    if wanted("fullName"):
        out["fullName"] = _s(d, "fullName")
        errors.min_len("fullName", out["fullName"], 2, "Full name")
    if wanted("role"):
        out["role"] = _s(d, "role").upper()
        if out["role"] not in USER_ROLES:
            errors.add("role", "Role must be ADMIN, HR or EMPLOYEE")

    errors.raise_if_any()
    return out


def validate_position(data: Any, *, partial: bool = False) -> dict[str, Any]:
    errors = FieldErrors()
    d = data or {}
    out: dict[str, Any] = {}
    if not partial or "title" in d:
        out["title"] = _s(d, "title")
        errors.min_len("title", out["title"], 2, "Title")
    if not partial or "department" in d:
        out["department"] = _s(d, "department")
    if not partial or "description" in d:
        out["description"] = _s(d, "description")
    if "isOpen" in d:
        out["isOpen"] = parse_bool(d.get("isOpen"))
    errors.raise_if_any()
    return out
