"""
Server-side sessions behind the role-scoped cookies.

Each trust domain has its own cookie (admin-session-token / user-session-token)
and its own session rows, so signing in to one never authenticates the other.
"""
from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta

from flask import Response, current_app, has_request_context, request
from sqlalchemy.orm import Session

from app.escapes.constants import ADMIN_SESSION_COOKIE, USER_SESSION_COOKIE
from app.escapes.models import SESSION_SCOPE_ADMIN, SESSION_SCOPE_USER, AuthSession, User

logger = logging.getLogger(__name__)

COOKIE_FOR_SCOPE = {
    SESSION_SCOPE_ADMIN: ADMIN_SESSION_COOKIE,
    SESSION_SCOPE_USER: USER_SESSION_COOKIE,
}


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def session_lifetime(scope: str) -> timedelta:
    if scope == SESSION_SCOPE_ADMIN:
        return timedelta(hours=int(current_app.config.get("ADMIN_SESSION_HOURS", 8)))
    return timedelta(days=int(current_app.config.get("USER_SESSION_DAYS", 30)))


def create_session(s: Session, user: User, scope: str) -> str:
    """Create a session row for `user` in `scope` and return the raw cookie token."""
    if scope not in COOKIE_FOR_SCOPE:
        raise ValueError(f"Unknown session scope: {scope}")
    token = secrets.token_urlsafe(32)
    row = AuthSession(
        token_hash=hash_token(token),
        scope=scope,
        user_id=user.id,
        expires_at=datetime.utcnow() + session_lifetime(scope),
    )
    if has_request_context():
        row.ip_address = request.remote_addr
        row.user_agent = (request.user_agent.string or "")[:512] or None
    s.add(row)
    s.flush()
    return token


def resolve_session(s: Session, token: str | None, scope: str) -> User | None:
    """
    Return the active user behind `token` for `scope`, or None.
    Expired rows are removed as they are found.
    """
    if not token:
        return None
    row = s.query(AuthSession).filter(AuthSession.token_hash == hash_token(token)).one_or_none()
    if row is None or row.scope != scope:
        return None
    if row.expires_at <= datetime.utcnow():
        s.delete(row)
        s.commit()
        return None
    user = row.user
    if not user or not user.is_active:
        return None
    return user


def revoke_session(s: Session, token: str | None) -> bool:
    if not token:
        return False
    deleted = s.query(AuthSession).filter(AuthSession.token_hash == hash_token(token)).delete()
    return bool(deleted)


def revoke_user_sessions(s: Session, user: User, scope: str | None = None) -> int:
    q = s.query(AuthSession).filter(AuthSession.user_id == user.id)
    if scope:
        q = q.filter(AuthSession.scope == scope)
    return q.delete()


def set_session_cookie(response: Response, scope: str, token: str) -> None:
    cfg = current_app.config
    response.set_cookie(
        COOKIE_FOR_SCOPE[scope],
        token,
        max_age=int(session_lifetime(scope).total_seconds()),
        path="/",
        httponly=True,
        secure=bool(cfg.get("SESSION_COOKIE_SECURE")),
        samesite=cfg.get("SESSION_COOKIE_SAMESITE", "Lax"),
    )


def clear_session_cookie(response: Response, scope: str) -> None:
    response.delete_cookie(COOKIE_FOR_SCOPE[scope], path="/")
