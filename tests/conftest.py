from __future__ import annotations

import pytest


@pytest.fixture()
def app_client(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("DEMO_LOGIN_ENABLED", "1")
    monkeypatch.setenv("AUTH_ACCEPT_ANY_PASSWORD", "0")
    monkeypatch.setenv("SEED_POSITIONS", "1")
    monkeypatch.setenv("RATE_LIMIT_LOGIN", "1000/60")
    monkeypatch.setenv("RATE_LIMIT_GLOBAL", "10000/60")

    from cache_layer import cache_clear
    from server import create_app

    cache_clear()
    app = create_app()
    app.config.update(TESTING=True)
    yield app, app.test_client()
    cache_clear()
