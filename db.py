from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker


Base = declarative_base()

# Bound to an engine by init_engine(); importing it early is safe.
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

engine: Optional[Engine] = None


def _sqlite_on_connect(dbapi_conn, _record) -> None:
    # Hand transaction control to SQLAlchemy so SAVEPOINTs nest correctly.
    dbapi_conn.isolation_level = None
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def _sqlite_on_begin(conn) -> None:
    conn.exec_driver_sql("BEGIN")


def init_engine(database_url: str) -> Engine:
    global engine

    url = str(database_url or "").strip()
    if not url:
        raise RuntimeError("Missing DATABASE_URL")

    kwargs: dict[str, Any] = {"future": True, "pool_pre_ping": True}
    is_sqlite = url.startswith("sqlite")
    if is_sqlite:
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update(pool_size=10, max_overflow=20, pool_recycle=1800)

    if engine is not None:
        engine.dispose()

    engine = create_engine(url, **kwargs)
    if is_sqlite:
        event.listen(engine, "connect", _sqlite_on_connect)
        event.listen(engine, "begin", _sqlite_on_begin)

    SessionLocal.configure(bind=engine)
    return engine


def get_pool_stats() -> dict[str, Any]:
    if engine is None:
        return {"initialized": False}
    pool = engine.pool
    out: dict[str, Any] = {"initialized": True, "class": type(pool).__name__}
    for name in ("size", "checkedin", "checkedout", "overflow"):
        fn = getattr(pool, name, None)
        if callable(fn):
            try:
                out[name] = fn()
            except Exception:
                out[name] = None
    return out
