import pytest

from app.escapes import create_app
from app.escapes.auth import ensure_admin_user, hash_password
from app.escapes.db import session_scope
from app.escapes.models import Account, AuditEvent, AuthSession, Base, User
from app.escapes.sessions import hash_token


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        ensure_admin_user(s, email="admin@example.com", password="admin-pw")
        u = User(email="owner@example.com", name="Olive Owner", role="owner")
        s.add(u)
        s.flush()
        s.add(Account(account_id=u.email, user_id=u.id, password=hash_password("owner-pw")))

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


# ---------- Admin login ----------
def test_admin_login_requires_fields(client):
    r = client.post("/api/auth/admin/login", json={"email": "admin@example.com"})
    assert r.status_code == 400
    r = client.post("/api/auth/admin/login", json={"email": "  ", "password": "x"})
    assert r.status_code == 400


def test_admin_login_refuses_non_admin(client):
    r = client.post("/api/auth/admin/login", json={"email": "owner@example.com", "password": "owner-pw"})
    assert r.status_code == 403
    assert "Admin access only" in r.json["error"]
    assert client.get_cookie("admin-session-token") is None


def test_admin_login_bad_password(client):
    r = client.post("/api/auth/admin/login", json={"email": "admin@example.com", "password": "nope"})
    assert r.status_code == 401


def test_admin_login_success_stores_hashed_token(app, client):
    r = client.post("/api/auth/admin/login", json={"email": "ADMIN@example.com", "password": "admin-pw"})
    assert r.status_code == 200
    assert r.json["user"]["role"] == "admin"
    token = client.get_cookie("admin-session-token").value
    with session_scope(app) as s:
        row = s.query(AuthSession).one()
        assert row.scope == "admin"
        assert row.token_hash == hash_token(token)
        assert row.token_hash != token


def test_admin_login_rate_limited(client):
    for _ in range(5):
        r = client.post("/api/auth/admin/login", json={"email": "admin@example.com", "password": "wrong"})
        assert r.status_code == 401
    r = client.post("/api/auth/admin/login", json={"email": "admin@example.com", "password": "admin-pw"})
    assert r.status_code == 429


def test_admin_logout_only_clears_admin_session(app, client):
    client.post("/api/auth/admin/login", json={"email": "admin@example.com", "password": "admin-pw"})
    r = client.post("/api/auth/admin/logout")
    assert r.status_code == 200
    assert client.get_cookie("admin-session-token") is None
    assert client.get("/api/admin/profile").status_code == 401
    with session_scope(app) as s:
        assert s.query(AuthSession).count() == 0


# ---------- Public login / signup ----------
def test_user_login_refuses_admin_account(client):
    r = client.post("/api/auth/user/login", json={"email": "admin@example.com", "password": "admin-pw"})
    assert r.status_code == 403
    assert "admin panel" in r.json["error"]
    assert client.get_cookie("user-session-token") is None


def test_user_login_and_profile(client):
    assert client.get("/api/user/profile").status_code == 401
    r = client.post("/api/auth/user/login", json={"email": "owner@example.com", "password": "owner-pw"})
    assert r.status_code == 200
    r = client.get("/api/user/profile")
    assert r.status_code == 200
    assert r.json["email"] == "owner@example.com"
    assert r.json["role"] == "owner"
    assert r.json["hasActivePlan"] is False


def test_user_login_bad_credentials(client):
    r = client.post("/api/auth/user/login", json={"email": "owner@example.com", "password": "wrong-pw"})
    assert r.status_code == 401
    r = client.post("/api/auth/user/login", json={"email": "ghost@example.com", "password": "wrong-pw"})
    assert r.status_code == 401


def test_user_logout(client):
    client.post("/api/auth/user/login", json={"email": "owner@example.com", "password": "owner-pw"})
    r = client.post("/api/auth/user/logout")
    assert r.status_code == 200
    assert client.get_cookie("user-session-token") is None
    assert client.get("/api/user/profile").status_code == 401


@pytest.mark.parametrize(
    "payload, status",
    [
        ({"email": "new@example.com", "password": "longenough", "role": "admin"}, 403),
        ({"email": "new@example.com", "password": "longenough", "role": "superuser"}, 400),
        ({"email": "new@example.com", "password": "short"}, 400),
        ({"email": "not-an-email", "password": "longenough"}, 400),
        ({"email": "owner@example.com", "password": "longenough"}, 409),
        ({"password": "longenough"}, 400),
    ],
)
def test_signup_rules(client, payload, status):
    r = client.post("/api/auth/user/signup", json=payload)
    assert r.status_code == status
    assert "error" in r.json


def test_signup_defaults_to_customer_and_logs_in(app, client):
    r = client.post("/api/auth/user/signup", json={"email": "New@Example.com", "password": "longenough", "name": "Nina"})
    assert r.status_code == 201
    assert r.json["user"]["role"] == "customer"
    assert client.get_cookie("user-session-token") is not None
    assert client.get("/api/user/profile").json["email"] == "new@example.com"
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "new@example.com").one()
        assert u.is_admin is False
        assert s.query(AuditEvent).filter(AuditEvent.action == "auth.signup").count() == 1


def test_update_role_between_customer_and_owner(client):
    client.post("/api/auth/user/signup", json={"email": "c@example.com", "password": "longenough"})
    r = client.post("/api/user/update-role", json={"role": "owner"})
    assert r.status_code == 200
    assert client.get("/api/user/profile").json["role"] == "owner"
    r = client.post("/api/user/update-role", json={"role": "admin"})
    assert r.status_code == 400


def test_ensure_admin_user_is_idempotent(app):
    with session_scope(app) as s:
        _, created = ensure_admin_user(s, email="admin@example.com", password="other-pw")
        assert created is False
        assert s.query(User).filter(User.email == "admin@example.com").count() == 1
    # password not overwritten without reset
    client = app.test_client()
    r = client.post("/api/auth/admin/login", json={"email": "admin@example.com", "password": "admin-pw"})
    assert r.status_code == 200
