from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from app.escapes.audit import record_event
from app.escapes.constants import ADMIN_SESSION_COOKIE, USER_SESSION_COOKIE
from app.escapes.db import db_session
from app.escapes.models import (
    ROLE_ADMIN,
    ROLE_CUSTOMER,
    ROLE_OWNER,
    SESSION_SCOPE_ADMIN,
    SESSION_SCOPE_USER,
    Account,
    User,
)
from app.escapes.rbac import is_user_admin
from app.escapes.sessions import (
    clear_session_cookie,
    create_session,
    resolve_session,
    revoke_session,
    set_session_cookie,
)
from app.escapes.utils import is_email, json_body

bp = Blueprint("auth", __name__)

_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
MIN_PASSWORD_LENGTH = 8
SIGNUP_ROLES = (ROLE_CUSTOMER, ROLE_OWNER)


def _login_attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    attempts[ip] = [t for t in attempts[ip] if t > cutoff]
    return len(attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_failure(ip: str) -> None:
    _login_attempts()[ip].append(datetime.utcnow())


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(s: Session, user: User, password: str) -> bool:
    account = (
        s.query(Account)
        .filter(Account.user_id == user.id, Account.provider_id == "credential")
        .one_or_none()
    )
    if not account or not account.password:
        return False
    return check_password_hash(account.password, password)


def load_identities() -> None:
    """
    Loads g.admin_user and g.current_user from their own cookies.
    Also assigns a per-request request_id (for audit/log correlation).
    A cookie that no longer maps to a live session of the right kind is queued for clearing.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.admin_user = None
    g.current_user = None
    g.stale_session_scopes = []
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    admin_token = request.cookies.get(ADMIN_SESSION_COOKIE)
    user_token = request.cookies.get(USER_SESSION_COOKIE)
    if not admin_token and not user_token:
        return

    try:
        s = db_session()
        if admin_token:
            admin = resolve_session(s, admin_token, SESSION_SCOPE_ADMIN)
            if admin is not None and is_user_admin(admin):
                g.admin_user = admin
            else:
                g.stale_session_scopes.append(SESSION_SCOPE_ADMIN)
        if user_token:
            user = resolve_session(s, user_token, SESSION_SCOPE_USER)
            if user is not None and user.role != ROLE_ADMIN:
                g.current_user = user
            else:
                g.stale_session_scopes.append(SESSION_SCOPE_USER)
    except Exception as e:
        current_app.logger.error("load_identities DB error (treating request as anonymous): %s", e)
        g.admin_user = None
        g.current_user = None


def clear_stale_cookies(response):
    for scope in getattr(g, "stale_session_scopes", None) or []:
        clear_session_cookie(response, scope)
    rid = getattr(g, "request_id", None)
    if rid:
        response.headers.setdefault("X-Request-ID", rid)
    return response


def _credentials() -> tuple[str, str] | None:
    body = json_body()
    email = body.get("email")
    password = body.get("password")
    if not isinstance(email, str) or not isinstance(password, str):
        return None
    email = email.strip().lower()
    if not email or not password.strip():
        return None
    return email, password


# ---------- Admin ----------
@bp.post("/admin/login")
def admin_login():
    creds = _credentials()
    if creds is None:
        return _error("Email and password required", 400)
    email, password = creds
    ip = request.remote_addr or "unknown"
    if _check_rate_limit(ip):
        return _error("Too many login attempts. Please wait 5 minutes.", 429)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not is_user_admin(user):
        _record_failure(ip)
        record_event(s, actor=None, action="auth.admin_login_refused", entity_type="User", entity_id=email, reason="Not an admin account")
        s.commit()
        current_app.logger.warning("Admin login refused for non-admin account (request_id=%s)", g.request_id)
        return _error("Admin access only. User account not authorized.", 403)
    if not verify_password(s, user, password):
        _record_failure(ip)
        record_event(s, actor=None, action="auth.login_failed", entity_type="User", entity_id=email, reason="Invalid credentials")
        s.commit()
        return _error("Invalid email or password", 401)

    _login_attempts().pop(ip, None)
    # Signing in to the back-office ends any public session on this browser.
    revoke_session(s, request.cookies.get(USER_SESSION_COOKIE))
    token = create_session(s, user, SESSION_SCOPE_ADMIN)
    record_event(s, actor=user, action="auth.admin_login", entity_type="User", entity_id=user.id)
    s.commit()

    resp = jsonify({"success": True, "user": user.to_profile()})
    set_session_cookie(resp, SESSION_SCOPE_ADMIN, token)
    clear_session_cookie(resp, SESSION_SCOPE_USER)
    return resp, 200


@bp.post("/admin/logout")
def admin_logout():
    s = db_session()
    admin = getattr(g, "admin_user", None)
    revoke_session(s, request.cookies.get(ADMIN_SESSION_COOKIE))
    if admin:
        record_event(s, actor=admin, action="auth.admin_logout", entity_type="User", entity_id=admin.id)
    s.commit()
    resp = jsonify({"success": True, "message": "Logged out from admin panel"})
    clear_session_cookie(resp, SESSION_SCOPE_ADMIN)
    return resp, 200


# ---------- Public site ----------
def _start_user_session(s: Session, user: User, status: int):
    revoke_session(s, request.cookies.get(ADMIN_SESSION_COOKIE))
    token = create_session(s, user, SESSION_SCOPE_USER)
    s.commit()
    resp = jsonify({"success": True, "user": user.to_profile()})
    set_session_cookie(resp, SESSION_SCOPE_USER, token)
    clear_session_cookie(resp, SESSION_SCOPE_ADMIN)
    return resp, status


@bp.post("/user/login")
def user_login():
    creds = _credentials()
    if creds is None:
        return _error("Email and password required", 400)
    email, password = creds
    ip = request.remote_addr or "unknown"
    if _check_rate_limit(ip):
        return _error("Too many login attempts. Please wait 5 minutes.", 429)

    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none()
    if user is not None and user.role == ROLE_ADMIN:
        record_event(s, actor=None, action="auth.user_login_refused", entity_type="User", entity_id=email, reason="Admin account")
        s.commit()
        return _error("Admin accounts cannot log in to public site. Use admin panel instead.", 403)
    if user is None or not user.is_active or not verify_password(s, user, password):
        _record_failure(ip)
        record_event(s, actor=None, action="auth.login_failed", entity_type="User", entity_id=email, reason="Invalid credentials")
        s.commit()
        return _error("Invalid email or password", 401)

    _login_attempts().pop(ip, None)
    record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=user.id)
    return _start_user_session(s, user, 200)


@bp.post("/user/logout")
def user_logout():
    s = db_session()
    user = getattr(g, "current_user", None)
    revoke_session(s, request.cookies.get(USER_SESSION_COOKIE))
    if user:
        record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=user.id)
    s.commit()
    resp = jsonify({"success": True, "redirect": "/"})
    clear_session_cookie(resp, SESSION_SCOPE_USER)
    return resp, 200


@bp.post("/user/signup")
def user_signup():
    body = json_body()
    email = body.get("email")
    password = body.get("password")
    if not isinstance(email, str) or not isinstance(password, str) or not email.strip() or not password:
        return _error("Email and password required", 400)
    email = email.strip().lower()
    role = (body.get("role") or ROLE_CUSTOMER)
    name = body.get("name") if isinstance(body.get("name"), str) else ""

    if role == ROLE_ADMIN:
        return _error("Admin accounts cannot be created via signup", 403)
    if role not in SIGNUP_ROLES:
        return _error(f"Invalid role. Must be one of: {', '.join(SIGNUP_ROLES)}", 400)
    if not is_email(email):
        return _error("A valid email address is required", 400)
    if len(password) < MIN_PASSWORD_LENGTH:
        return _error(f"Password must be at least {MIN_PASSWORD_LENGTH} characters", 400)

    s = db_session()
    if s.query(User).filter(User.email == email).one_or_none() is not None:
        return _error("An account with this email already exists", 409)

    now = datetime.utcnow()
    user = User(email=email, name=name.strip(), role=role, is_admin=False, created_at=now, updated_at=now)
    s.add(user)
    s.flush()
    s.add(Account(account_id=email, provider_id="credential", user_id=user.id, password=hash_password(password)))
    record_event(s, actor=user, action="auth.signup", entity_type="User", entity_id=user.id, metadata={"role": role})
    current_app.logger.info("New %s signup user_id=%s", role, user.id)
    return _start_user_session(s, user, 201)


def ensure_admin_user(
    s: Session,
    *,
    email: str,
    password: str,
    name: str = "Admin User",
    reset_password: bool = False,
) -> tuple[User, bool]:
    """
    Idempotently create or repair the back-office account. Returns (user, created).
    An existing password is kept unless reset_password is set.
    """
    email = email.strip().lower()
    now = datetime.utcnow()
    user = s.query(User).filter(User.email == email).one_or_none()
    created = user is None
    if created:
        user = User(email=email, name=name, created_at=now)
        s.add(user)
    user.role = ROLE_ADMIN
    user.is_admin = True
    user.is_active = True
    user.email_verified = True
    user.updated_at = now
    s.flush()

    account = (
        s.query(Account)
        .filter(Account.user_id == user.id, Account.provider_id == "credential")
        .one_or_none()
    )
    if account is None:
        s.add(Account(account_id=email, provider_id="credential", user_id=user.id, password=hash_password(password)))
    elif reset_password or not account.password:
        account.password = hash_password(password)
        account.updated_at = now
    return user, created
