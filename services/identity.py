from __future__ import annotations

import re
import unicodedata
from typing import Any, Iterable


_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

# Letters that do not decompose into base + combining mark under NFD.
_EXTRA_FOLD = {"đ": "d", "Đ": "d", "ø": "o", "ł": "l", "æ": "ae", "œ": "oe", "ß": "ss"}


def fold_to_ascii(text: Any) -> str:
    """`"Nguyễn Văn Đức"` -> `"Nguyen Van Duc"`."""
    s = "".join(_EXTRA_FOLD.get(ch, ch) for ch in str(text or ""))
    decomposed = unicodedata.normalize("NFD", s)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def username_base(full_name: Any) -> str:
    return _NON_ALNUM_RE.sub("", fold_to_ascii(full_name).lower())


def generate_username(full_name: Any, existing: Iterable[str]) -> str:
    """
    Lower-case ASCII username from a person's name.

    On collision the smallest positive integer that makes it unique is appended:
    `generate_username("Nguyễn Văn An", {"nguyenvanan"})` -> `"nguyenvanan1"`.
    """

    base = username_base(full_name) or "user"
    taken = {str(u or "").strip().lower() for u in (existing or [])}
    if base not in taken:
        return base
    n = 1
    while f"{base}{n}" in taken:
        n += 1
    return f"{base}{n}"
