from __future__ import annotations

import re
import secrets
import string

from werkzeug.security import check_password_hash, generate_password_hash

from utils import ApiError


_HAS_LOWER = re.compile(r"[a-z]")
_HAS_UPPER = re.compile(r"[A-Z]")
_HAS_DIGIT = re.compile(r"[0-9]")

GENERATED_LENGTH = 10
SPECIAL_CHARS = "!@#$%^&*"
_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits + SPECIAL_CHARS

_rng = secrets.SystemRandom()


def validate_password_policy(password: str) -> str:
    pwd = str(password or "")
    if not pwd:
        raise ApiError("BAD_REQUEST", "Missing password", http_status=400)
    if len(pwd) < 8:
        raise ApiError("BAD_REQUEST", "Password must be at least 8 characters", http_status=400)
    if len(pwd) > 256:
        raise ApiError("BAD_REQUEST", "Password is too long", http_status=400)
    if not _HAS_LOWER.search(pwd) or not _HAS_UPPER.search(pwd) or not _HAS_DIGIT.search(pwd):
        raise ApiError("BAD_REQUEST", "Password must include uppercase, lowercase and a number", http_status=400)
    return pwd


def hash_password(password: str) -> str:
    pwd = validate_password_policy(password)
    # Werkzeug 3 defaults to scrypt; pin explicitly for stability.
    return generate_password_hash(pwd, method="scrypt", salt_length=16)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return check_password_hash(str(password_hash or ""), str(password or ""))
    except Exception:
        return False


def generate_password(length: int = GENERATED_LENGTH) -> str:
    """
    One uppercase, one lowercase and one digit are forced, the rest drawn from
    letters, digits and SPECIAL_CHARS, then the whole string is shuffled.
    """

    n = max(int(length or GENERATED_LENGTH), 3)
    chars = [
        _rng.choice(string.ascii_uppercase),
        _rng.choice(string.ascii_lowercase),
        _rng.choice(string.digits),
    ]
    chars.extend(_rng.choice(_ALPHABET) for _ in range(n - 3))
    _rng.shuffle(chars)
    return "".join(chars)
