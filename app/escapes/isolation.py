"""
Route gate between the three trust domains (admin, owner/customer, anonymous).

`route_decision` is a pure function of the request path and which sessions are
present; `gate_request` applies it to page requests. API routes are guarded
separately by the decorators in rbac.py.
"""
from __future__ import annotations

import logging

from flask import g, redirect, request

logger = logging.getLogger(__name__)

ADMIN_DASHBOARD = "/admin/dashboard"
ADMIN_LOGIN_PATHS = frozenset({"/admin/login", "/auth/admin-login"})
LOGIN_PATHS = frozenset({"/login", "/owner-login", "/auth/login"})
UNGATED_PREFIXES = ("/api/", "/static/", "/media/", "/health", "/healthz")

DASHBOARD_URLS = {
    "admin": ADMIN_DASHBOARD,
    "owner": "/owner-dashboard",
    "customer": "/account/dashboard",
    "guest": "/",
}
LOGIN_URLS = {
    "admin": "/admin/login",
    "owner": "/owner-login",
    "customer": "/login",
    "guest": "/login",
}


def dashboard_url(role: str | None) -> str:
    return DASHBOARD_URLS.get(role or "guest", "/")


def login_url(role: str | None) -> str:
    return LOGIN_URLS.get(role or "guest", "/login")


def _is_admin_path(path: str) -> bool:
    return path == "/admin" or path.startswith("/admin/") or path in ADMIN_LOGIN_PATHS


def route_decision(path: str, *, has_admin_session: bool, has_user_session: bool) -> str | None:
    """
    Return the redirect target for `path`, or None to let the request through.
    """
    if path.startswith(UNGATED_PREFIXES):
        return None

    if _is_admin_path(path):
        if path in ADMIN_LOGIN_PATHS:
            return ADMIN_DASHBOARD if has_admin_session else None
        return None if has_admin_session else "/admin/login"

    # Admins never see the public site or the customer/owner areas.
    if has_admin_session and path not in LOGIN_PATHS:
        return ADMIN_DASHBOARD

    if path.startswith("/account/dashboard") or path.startswith("/owner-dashboard"):
        if has_user_session:
            return None
        return "/owner-login" if path.startswith("/owner-dashboard") else "/login"

    if path in LOGIN_PATHS and (has_admin_session or has_user_session):
        if has_admin_session:
            return ADMIN_DASHBOARD
        if "owner" in path:
            return dashboard_url("owner")
        return dashboard_url("customer")

    return None


def gate_request():
    """before_request hook; expects identities already loaded onto g."""
    target = route_decision(
        request.path,
        has_admin_session=getattr(g, "admin_user", None) is not None,
        has_user_session=getattr(g, "current_user", None) is not None,
    )
    if target is None or target == request.path:
        return None
    logger.info("Route gate: %s -> %s (request_id=%s)", request.path, target, getattr(g, "request_id", None))
    return redirect(target)
