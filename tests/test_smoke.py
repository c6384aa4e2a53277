import os
import subprocess
import sys
from pathlib import Path

import pytest

from app.escapes import create_app
from app.escapes.config import is_production
from app.escapes.db import db_session, session_scope, teardown_db_session
from app.escapes.models import Base, User

ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("ALLOWED_ORIGINS", "ADMIN_SETUP_SECRET", "S3_ENDPOINT", "S3_BUCKET"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True


def test_healthz_plain(client):
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_index_renders_for_anonymous(client):
    r = client.get("/")
    assert r.status_code == 200
    assert b"Group Escape Houses" in r.data


def test_request_id_header(client):
    r = client.get("/api/properties")
    assert r.status_code == 200
    assert r.headers.get("X-Request-ID")


def test_unknown_api_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json == {"error": "Not Found"}


def test_wrong_method_is_json_405(client):
    r = client.get("/api/auth/admin/login")
    assert r.status_code == 405
    assert "error" in r.json


def test_cors_preflight_for_allowed_origin(client):
    r = client.options(
        "/api/auth/user/login",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert r.status_code == 200
    assert r.headers["Access-Control-Allow-Origin"] == "http://localhost:3000"
    assert r.headers["Access-Control-Allow-Credentials"] == "true"


def test_cors_headers_absent_for_unknown_origin(client):
    r = client.get("/api/properties", headers={"Origin": "https://evil.example"})
    assert r.status_code == 200
    assert "Access-Control-Allow-Origin" not in r.headers


def test_cross_site_write_refused(client):
    r = client.post(
        "/api/auth/user/login",
        json={"email": "a@example.com", "password": "x"},
        headers={"Origin": "https://evil.example"},
    )
    assert r.status_code == 403
    assert r.json["error"] == "Cross-site request refused"


def test_same_host_write_allowed(client):
    r = client.post(
        "/api/auth/user/login",
        json={"email": "nobody@example.com", "password": "whatever1"},
        headers={"Origin": "http://localhost"},
    )
    assert r.status_code == 401


def test_production_requires_postgres(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("ENV", "production")
    with pytest.raises(RuntimeError):
        create_app()


@pytest.mark.parametrize(
    "module",
    ["app.escapes", "app.escapes.modules.properties.models", "app.escapes.modules.bookings.service", "app.wsgi"],
)
def test_fresh_interpreter_imports(module, tmp_path):
    env = {**os.environ, "DATABASE_URL": f"sqlite:///{tmp_path/'import.db'}", "ENV": "test"}
    r = subprocess.run(
        [sys.executable, "-c", f"import {module}"],
        cwd=ROOT,
        env=env,
        capture_output=True,
        text=True,
    )
    assert r.returncode == 0, r.stderr


def test_unhandled_error_is_json_500_and_rolled_back(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    @app.post("/api/explode")
    def explode():
        s = db_session()
        s.add(User(email="half-written@example.com", role="customer"))
        s.flush()
        raise RuntimeError("database went away")

    r = app.test_client().post("/api/explode")
    assert r.status_code == 500
    assert r.json == {"error": "Internal server error"}
    with session_scope(app) as s:
        assert s.query(User).count() == 0


def test_db_session_rolls_back_on_teardown_error(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with app.test_request_context("/"):
        s = db_session()
        s.add(User(email="pending@example.com", role="customer"))
        s.flush()
        teardown_db_session(RuntimeError("boom"))
    with session_scope(app) as s:
        assert s.query(User).count() == 0


@pytest.mark.parametrize("env", ["prod", "production"])
def test_production_aliases_are_treated_alike(env):
    assert is_production(env)


def test_development_is_not_production():
    assert not is_production("development")
    assert not is_production(None)
