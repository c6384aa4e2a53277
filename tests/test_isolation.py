"""Route gate between the admin back-office and the public site."""
from datetime import datetime, timedelta

import pytest

from app.escapes import create_app
from app.escapes.auth import ensure_admin_user, hash_password
from app.escapes.db import session_scope
from app.escapes.isolation import dashboard_url, login_url, route_decision
from app.escapes.models import Account, AuthSession, Base, User


@pytest.mark.parametrize(
    "path, admin, user, expected",
    [
        # /admin/* needs the admin session
        ("/admin/dashboard", False, False, "/admin/login"),
        ("/admin/dashboard", False, True, "/admin/login"),
        ("/admin/properties", True, False, None),
        ("/admin/login", False, False, None),
        ("/admin/login", True, False, "/admin/dashboard"),
        ("/auth/admin-login", True, False, "/admin/dashboard"),
        # admins never see the public site
        ("/", True, False, "/admin/dashboard"),
        ("/properties/big-house", True, True, "/admin/dashboard"),
        ("/account/dashboard", True, False, "/admin/dashboard"),
        # protected public areas
        ("/account/dashboard", False, False, "/login"),
        ("/account/dashboard/bookings", False, False, "/login"),
        ("/owner-dashboard", False, False, "/owner-login"),
        ("/owner-dashboard/properties", False, True, None),
        ("/account/dashboard", False, True, None),
        # login pages bounce signed-in visitors
        ("/login", False, True, "/account/dashboard"),
        ("/auth/login", False, True, "/account/dashboard"),
        ("/owner-login", False, True, "/owner-dashboard"),
        ("/login", True, False, "/admin/dashboard"),
        ("/owner-login", True, True, "/admin/dashboard"),
        ("/login", False, False, None),
        # everything else passes
        ("/", False, False, None),
        ("/", False, True, None),
        # API and assets are never gated here
        ("/api/admin/stats", False, False, None),
        ("/api/properties", True, False, None),
        ("/static/app.css", True, False, None),
        ("/health", True, False, None),
    ],
)
def test_route_decision(path, admin, user, expected):
    assert route_decision(path, has_admin_session=admin, has_user_session=user) == expected


def test_dashboard_and_login_urls():
    assert dashboard_url("admin") == "/admin/dashboard"
    assert dashboard_url("owner") == "/owner-dashboard"
    assert dashboard_url("customer") == "/account/dashboard"
    assert dashboard_url(None) == "/"
    assert login_url("admin") == "/admin/login"
    assert login_url("owner") == "/owner-login"
    assert login_url("customer") == "/login"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("ALLOWED_ORIGINS", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        ensure_admin_user(s, email="admin@example.com", password="admin-pw")
        u = User(email="guest@example.com", name="Guest", role="customer")
        s.add(u)
        s.flush()
        s.add(Account(account_id=u.email, user_id=u.id, password=hash_password("guest-pw")))

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _admin_login(client):
    r = client.post("/api/auth/admin/login", json={"email": "admin@example.com", "password": "admin-pw"})
    assert r.status_code == 200


def _user_login(client):
    r = client.post("/api/auth/user/login", json={"email": "guest@example.com", "password": "guest-pw"})
    assert r.status_code == 200


def _location(r) -> str:
    return r.headers["Location"].replace("http://localhost", "")


def test_anonymous_admin_dashboard_redirects_to_admin_login(client):
    r = client.get("/admin/dashboard")
    assert r.status_code == 302
    assert _location(r) == "/admin/login"


def test_admin_sees_dashboard_not_public_site(client):
    _admin_login(client)
    assert client.get("/admin/dashboard").status_code == 200
    r = client.get("/")
    assert r.status_code == 302
    assert _location(r) == "/admin/dashboard"
    r = client.get("/admin/login")
    assert _location(r) == "/admin/dashboard"


def test_user_session_does_not_open_admin_area(client):
    _user_login(client)
    r = client.get("/admin/dashboard")
    assert r.status_code == 302
    assert _location(r) == "/admin/login"
    assert client.get("/account/dashboard").status_code == 200


def test_login_page_bounces_signed_in_user(client):
    _user_login(client)
    r = client.get("/login")
    assert _location(r) == "/account/dashboard"
    r = client.get("/owner-login")
    assert _location(r) == "/owner-dashboard"


def test_protected_public_pages_redirect_anonymous(client):
    assert _location(client.get("/account/dashboard")) == "/login"
    assert _location(client.get("/owner-dashboard")) == "/owner-login"


def test_admin_api_rejects_user_session_with_403(client):
    _user_login(client)
    r = client.get("/api/admin/stats")
    assert r.status_code == 403


def test_admin_api_without_session_is_401(client):
    r = client.get("/api/admin/stats")
    assert r.status_code == 401


def test_user_api_rejects_admin_session(client):
    _admin_login(client)
    r = client.get("/api/user/profile")
    assert r.status_code == 401


def test_admin_login_clears_user_cookie(client):
    _user_login(client)
    assert client.get_cookie("user-session-token") is not None
    _admin_login(client)
    assert client.get_cookie("user-session-token") is None
    assert client.get_cookie("admin-session-token") is not None


def test_user_login_clears_admin_cookie(client):
    _admin_login(client)
    _user_login(client)
    assert client.get_cookie("admin-session-token") is None
    assert client.get_cookie("user-session-token") is not None


def test_demoted_admin_cookie_is_cleared(app, client):
    _admin_login(client)
    with session_scope(app) as s:
        u = s.query(User).filter(User.email == "admin@example.com").one()
        u.is_admin = False
    r = client.get("/api/admin/stats")
    assert r.status_code == 401
    assert client.get_cookie("admin-session-token") is None


@pytest.mark.parametrize(
    "login, cookie, page, target",
    [
        (_user_login, "user-session-token", "/account/dashboard", "/login"),
        (_admin_login, "admin-session-token", "/admin/dashboard", "/admin/login"),
    ],
)
def test_expired_session_is_deleted_and_cookie_cleared(app, client, login, cookie, page, target):
    login(client)
    with session_scope(app) as s:
        s.query(AuthSession).update({AuthSession.expires_at: datetime.utcnow() - timedelta(minutes=1)})

    r = client.get(page)
    assert r.status_code == 302
    assert _location(r) == target
    assert client.get_cookie(cookie) is None
    with session_scope(app) as s:
        assert s.query(AuthSession).count() == 0
