from __future__ import annotations

import os


def _env_str(name: str, default: str = "") -> str:
    return str(os.getenv(name, default) or default).strip()


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_csv(name: str, default: str) -> list[str]:
    raw = _env_str(name, default)
    return [p.strip() for p in raw.split(",") if p.strip()]


def parse_rate_limit(value: str) -> tuple[int, int]:
    """`"20/60"` -> (20 requests, 60 seconds)."""
    s = str(value or "").strip()
    try:
        count_s, window_s = s.split("/", 1)
        count, window = int(count_s), int(window_s)
    except Exception:
        raise RuntimeError(f"Invalid rate limit: {value!r} (expected COUNT/SECONDS)")
    if count <= 0 or window <= 0:
        raise RuntimeError(f"Invalid rate limit: {value!r}")
    return count, window


class Config:
    def __init__(self):
        self.DATABASE_URL = _env_str("DATABASE_URL")
        self.APP_ENV = _env_str("APP_ENV", "development").lower()
        self.APP_VERSION = _env_str("APP_VERSION", "1.0.0")
        self.LOG_LEVEL = _env_str("LOG_LEVEL", "INFO").upper()

        self.HOST = _env_str("HOST", "0.0.0.0")
        self.PORT = _env_int("PORT", 5000)
        self.ALLOWED_ORIGINS = _env_csv("ALLOWED_ORIGINS", "http://localhost:5173")

        self.SESSION_TTL_MINUTES = _env_int("SESSION_TTL_MINUTES", 480)
        self.DEMO_LOGIN_ENABLED = _env_bool("DEMO_LOGIN_ENABLED", True)
        self.AUTH_ACCEPT_ANY_PASSWORD = _env_bool("AUTH_ACCEPT_ANY_PASSWORD", False)

        self.RATE_LIMIT_LOGIN = _env_str("RATE_LIMIT_LOGIN", "20/60")
        self.RATE_LIMIT_GLOBAL = _env_str("RATE_LIMIT_GLOBAL", "600/60")

        self.CACHE_TTL_SECONDS = _env_int("CACHE_TTL_SECONDS", 30)
        self.SEED_POSITIONS = _env_bool("SEED_POSITIONS", True)
        self.CV_MAX_BYTES = _env_int("CV_MAX_BYTES", 10 * 1024 * 1024)

    @property
    def IS_PRODUCTION(self) -> bool:
        return self.APP_ENV in {"prod", "production"}

    def validate(self) -> None:
        if not self.DATABASE_URL:
            raise RuntimeError("Missing DATABASE_URL. Set it in the environment or .env file.")
        if self.SESSION_TTL_MINUTES <= 0:
            raise RuntimeError("SESSION_TTL_MINUTES must be positive")
        if self.CV_MAX_BYTES <= 0:
            raise RuntimeError("CV_MAX_BYTES must be positive")
        parse_rate_limit(self.RATE_LIMIT_LOGIN)
        parse_rate_limit(self.RATE_LIMIT_GLOBAL)
