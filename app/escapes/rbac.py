from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, jsonify

from app.escapes.constants import DEFAULT_PROPERTY_LIMIT, PAID_PAYMENT_STATUSES, PLANS
from app.escapes.models import ROLE_ADMIN, User


def is_user_admin(user: User | None) -> bool:
    """Both the role and the admin flag must agree."""
    if not user or not user.is_active:
        return False
    return user.role == ROLE_ADMIN and bool(user.is_admin)


def has_active_plan(user: User | None) -> bool:
    if not user:
        return False
    return bool(user.plan_id) and (user.payment_status or "").lower() in PAID_PAYMENT_STATUSES


def property_limit(user: User) -> int:
    plan = PLANS.get((user.plan_id or "").lower())
    return plan["property_limit"] if plan else DEFAULT_PROPERTY_LIMIT


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def require_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Admin API guard. Reads only the admin session; a public session never counts."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        admin: User | None = getattr(g, "admin_user", None)
        if admin is None:
            # Signed in on the public site but not in the back-office.
            if getattr(g, "current_user", None) is not None:
                return _error("Forbidden - Admin only", 403)
            return _error("Unauthorized - Admin session required", 401)
        if not is_user_admin(admin):
            return _error("Forbidden - Admin only", 403)
        return fn(*args, **kwargs)

    return wrapped


def require_user(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Public-site guard. With no roles given any signed-in customer/owner passes."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if user is None or not user.is_active:
                return _error("Not authenticated", 401)
            if user.role == ROLE_ADMIN:
                return _error("Admin accounts cannot use the public site", 403)
            if roles and user.role not in roles:
                return _error(f"Forbidden - {' or '.join(roles)} access required", 403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_paid_plan(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Stack under require_user: owners need an active membership to list properties."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        if not has_active_plan(getattr(g, "current_user", None)):
            return _error("You need an active membership to submit a property. Please purchase a plan first.", 403)
        return fn(*args, **kwargs)

    return wrapped
