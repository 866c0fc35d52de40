from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Optional

from dotenv import load_dotenv
from flask import Blueprint, Flask, current_app, g, request
from flask_cors import CORS
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError

from actions import dispatch
from actions.positions import seed_positions
from actions.stats import invalidate_stats_if_dirty
from auth import DEMO_USERS, assert_permission, is_public_action, role_or_public, validate_session_token
from cache_layer import configure_cache
from config import Config, parse_rate_limit
from db import Base, SessionLocal, init_engine
from models import AuditLog, User
from utils import ApiError, AuthContext, SimpleRateLimiter, err, iso_utc_now, new_id, now_monotonic, ok, parse_json_body, redact_for_audit


rest_api = Blueprint("rest_api", __name__)

LOGIN_ACTIONS = {"LOGIN"}


def _header_token() -> str:
    authz = str(request.headers.get("Authorization") or "").strip()
    if authz.lower().startswith("bearer "):
        return authz.split(" ", 1)[1].strip()
    return str(request.headers.get("X-Session-Token") or "").strip()


def _client_ip() -> str:
    fwd = str(request.headers.get("X-Forwarded-For") or "").split(",", 1)[0].strip()
    return fwd or str(request.remote_addr or "")


def _actor_fields(auth_ctx: Optional[AuthContext]) -> tuple[str, str]:
    if not auth_ctx or not auth_ctx.valid:
        return "PUBLIC", "PUBLIC"
    return str(auth_ctx.userId or auth_ctx.email or ""), str(auth_ctx.role or "")


def _api_audit_row(action_u: str, auth_ctx: Optional[AuthContext], payload: dict[str, Any], *, failed: bool) -> AuditLog:
    actor, role = _actor_fields(auth_ctx)
    return AuditLog(
        id=new_id("LOG"),
        actor_id=actor,
        actor_role=role,
        action=str(action_u or "").upper() or "UNKNOWN",
        target_type="API_ERROR" if failed else "API_CALL",
        target_id=actor,
        from_state="",
        to_state="",
        payload_json=json.dumps(payload, ensure_ascii=False, default=str),
        correlation_id=str(getattr(g, "request_id", "") or ""),
        created_at=iso_utc_now(),
    )


def _write_error_audit(action: str, auth_ctx: Optional[AuthContext], data: Any, err_obj: ApiError) -> None:
    db2 = None
    try:
        db2 = SessionLocal()
        db2.add(
            _api_audit_row(
                action,
                auth_ctx,
                {"data": redact_for_audit(data or {}), "error": {"code": err_obj.code, "message": err_obj.message}},
                failed=True,
            )
        )
        db2.commit()
    except Exception:
        logging.getLogger("api").warning("error audit write failed action=%s", action, exc_info=True)
    finally:
        if db2 is not None:
            db2.close()


def _db_error_message(cfg: Config, e: DBAPIError) -> str:
    request_id = str(getattr(g, "request_id", "") or "").strip()
    if cfg.IS_PRODUCTION:
        return f"Database error, please try again (requestId: {request_id})"
    orig = getattr(e, "orig", None)
    orig_msg = re.sub(r"\s+", " ", str(orig) if orig else "").strip()
    if len(orig_msg) > 300:
        orig_msg = orig_msg[:300] + "..."
    detail = f": {orig_msg}" if orig_msg else ""
    return f"Database error, please try again{detail} (requestId: {request_id})"


def run_action(action_u: str, data: Any, token: Any):
    """
    Executes one action in its own session and transaction: authenticate,
    check the role table, dispatch, commit. Returns (body, http_status).
    """

    cfg: Config = current_app.config["CFG"]
    limiter: SimpleRateLimiter = current_app.extensions["rate_limiter"]
    db = None
    auth_ctx: Optional[AuthContext] = None

    try:
        if not action_u:
            raise ApiError("BAD_REQUEST", "Missing action")

        ip = _client_ip()
        if action_u in LOGIN_ACTIONS:
            limiter.check(f"{ip}:LOGIN", parse_rate_limit(cfg.RATE_LIMIT_LOGIN))
        else:
            limiter.check(f"{ip}:GLOBAL", parse_rate_limit(cfg.RATE_LIMIT_GLOBAL))

        db = SessionLocal()

        if not is_public_action(action_u):
            auth_ctx = validate_session_token(db, token)
            if not auth_ctx.valid:
                raise ApiError("AUTH_INVALID", "Invalid or expired session")
        elif token:
            try:
                maybe = validate_session_token(db, token)
                auth_ctx = maybe if maybe.valid else None
            except ApiError:
                auth_ctx = None

        assert_permission(role_or_public(auth_ctx), action_u)

        out = dispatch(action_u, data, auth_ctx, db, cfg)

        db.add(_api_audit_row(action_u, auth_ctx, {"data": redact_for_audit(data or {})}, failed=False))
        db.commit()
        invalidate_stats_if_dirty(db)

        latency_ms = int((now_monotonic() - g.start_ts) * 1000)
        actor, role = _actor_fields(auth_ctx)
        logging.getLogger("api").info(
            "request_id=%s action=%s user=%s role=%s latency_ms=%s",
            g.request_id,
            action_u,
            actor,
            role,
            latency_ms,
        )
        return ok(out)
    except ApiError as e:
        if db is not None:
            db.rollback()
        _write_error_audit(action_u, auth_ctx, data, e)
        logging.getLogger("api").info(
            "request_id=%s action=%s error=%s message=%s", g.request_id, action_u, e.code, e.message
        )
        return err(e.code, e.message, http_status=e.http_status, details=e.details)
    except DBAPIError as e:
        if db is not None:
            db.rollback()
        api_err = ApiError("INTERNAL", _db_error_message(cfg, e), http_status=500)
        _write_error_audit(action_u, auth_ctx, data, api_err)
        logging.getLogger("api").exception("request_id=%s action=%s", g.request_id, action_u)
        return err(api_err.code, api_err.message, http_status=500)
    except Exception:
        if db is not None:
            db.rollback()
        api_err = ApiError("INTERNAL", f"Unexpected error (requestId: {g.request_id})", http_status=500)
        _write_error_audit(action_u, auth_ctx, data, api_err)
        logging.getLogger("api").exception("request_id=%s action=%s", g.request_id, action_u)
        return err(api_err.code, api_err.message, http_status=500)
    finally:
        if db is not None:
            db.close()


def _rest(action: str, data: dict):
    body = request.get_json(silent=True) or {}
    token = _header_token() or str(request.args.get("token") or "").strip() or str(body.get("token") or "").strip()
    return run_action(action, data, token)


def _json_body() -> dict:
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        return {}
    body.pop("token", None)
    return body


@rest_api.get("/api/positions/open")
def rest_positions_open():
    return _rest("POSITIONS_OPEN_LIST", {})


@rest_api.post("/api/apply")
def rest_apply():
    return _rest("CANDIDATE_APPLY", _json_body())


@rest_api.get("/api/candidates/<candidate_id>")
def rest_candidate_get(candidate_id: str):
    return _rest("CANDIDATE_GET", {"candidateId": candidate_id})


@rest_api.post("/api/candidates/<candidate_id>/approve")
def rest_candidate_approve(candidate_id: str):
    return _rest("CANDIDATE_APPROVE", {**_json_body(), "candidateId": candidate_id})


@rest_api.post("/api/candidates/<candidate_id>/reject")
def rest_candidate_reject(candidate_id: str):
    return _rest("CANDIDATE_REJECT", {**_json_body(), "candidateId": candidate_id})


@rest_api.post("/api/candidates/<candidate_id>/decision")
def rest_candidate_decision(candidate_id: str):
    return _rest("DECISION_CREATE", {**_json_body(), "candidateId": candidate_id})


@rest_api.post("/api/candidates/<candidate_id>/hire")
def rest_candidate_hire(candidate_id: str):
    return _rest("EMPLOYEE_CREATE_FROM_CANDIDATE", {"candidateId": candidate_id})


@rest_api.post("/api/interview-sessions")
def rest_interview_session_create():
    return _rest("INTERVIEW_SESSION_CREATE", _json_body())


@rest_api.patch("/api/interviews/<interview_id>")
def rest_interview_update(interview_id: str):
    return _rest("INTERVIEW_UPDATE", {**_json_body(), "interviewId": interview_id})


@rest_api.get("/api/me/employee-profile")
def rest_employee_profile_get():
    return _rest("EMPLOYEE_PROFILE_GET", {})


@rest_api.put("/api/me/employee-profile")
def rest_employee_profile_update():
    return _rest("EMPLOYEE_PROFILE_UPDATE", _json_body())


@rest_api.get("/api/dashboard/stats")
def rest_dashboard_stats():
    return _rest("DASHBOARD_STATS", {"fresh": str(request.args.get("fresh") or "") in {"1", "true"}})


@rest_api.get("/api/pages/access")
def rest_page_access():
    return _rest("PAGE_ACCESS_CHECK", {"page": str(request.args.get("page") or "")})


def _configure_logging(level: str):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _seed_demo_users(db) -> int:
    now = iso_utc_now()
    added = 0
    for email, profile in DEMO_USERS.items():
        if db.execute(select(User.id).where(User.id == profile["id"])).first():
            continue
        if db.execute(select(User.id).where((User.email == email) | (User.username == profile["username"]))).first():
            logging.getLogger("auth").warning("demo user %s not seeded: email or username taken", email)
            continue
        db.add(
            User(
                id=profile["id"],
                username=profile["username"],
                email=email,
                phone=profile["phone"],
                full_name=profile["fullName"],
                role=profile["role"],
                status="ACTIVE",
                password_hash="",
                created_at=now,
                updated_at=now,
            )
        )
        added += 1
    return added


def create_app() -> Flask:
    load_dotenv()
    cfg = Config()
    cfg.validate()
    _configure_logging(cfg.LOG_LEVEL)

    engine = init_engine(cfg.DATABASE_URL)

    Base.metadata.create_all(bind=engine)
    configure_cache(cfg.CACHE_TTL_SECONDS)

    app = Flask(__name__)
    app.config["CFG"] = cfg
    app.json.sort_keys = False
    app.extensions["rate_limiter"] = SimpleRateLimiter()

    CORS(
        app,
        origins=cfg.ALLOWED_ORIGINS,
        supports_credentials=False,
        allow_headers=["Content-Type", "Authorization", "X-Session-Token", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )
    app.register_blueprint(rest_api)

    # Seed demo accounts + sample positions at startup (idempotent).
    db0 = SessionLocal()
    try:
        if cfg.DEMO_LOGIN_ENABLED:
            _seed_demo_users(db0)
        if cfg.SEED_POSITIONS:
            seed_positions(db0)
        db0.commit()
    finally:
        db0.close()

    @app.before_request
    def _before():
        g.request_id = str(request.headers.get("X-Request-ID") or "").strip()[:64] or os.urandom(8).hex()
        g.start_ts = now_monotonic()

    @app.after_request
    def _after(resp):
        resp.headers["X-Request-ID"] = str(getattr(g, "request_id", "") or "")
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        resp.headers.setdefault("Cache-Control", "no-store")
        return resp

    @app.get("/health")
    def health():
        from cache_layer import cache_stats
        from db import get_pool_stats

        return ok({"status": "ok", "version": cfg.APP_VERSION, "db_pool": get_pool_stats(), "cache": cache_stats()})

    @app.get("/")
    def index():
        return ok(
            {
                "status": "ok",
                "message": "Recruitment backend is running. Use /health for a quick check and POST /api for actions.",
                "endpoints": {"health": "/health", "api": "/api"},
            }
        )

    @app.errorhandler(404)
    def not_found(_e):
        return err("NOT_FOUND", f"Unknown endpoint: {request.path}", http_status=404)

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return err("BAD_REQUEST", "Method not allowed. Use POST /api for actions.", http_status=405)

    @app.post("/api")
    def api_route():
        raw = request.get_data(as_text=True)
        try:
            body = parse_json_body(raw)
        except ApiError as e:
            _write_error_audit("", None, {}, e)
            return err(e.code, e.message, http_status=e.http_status)

        action_u = str(body.get("action") or "").upper().strip()
        token = body.get("token") or _header_token()
        data = body.get("data") or {}
        return run_action(action_u, data, token)

    return app


if __name__ == "__main__":
    app = create_app()
    cfg = app.config["CFG"]
    app.run(host=cfg.HOST, port=cfg.PORT)
