import hmac
from datetime import date, datetime, time, timedelta

from flask import Blueprint, current_app, g, jsonify, request

from app.escapes.audit import record_event
from app.escapes.auth import ensure_admin_user
from app.escapes.db import db_session
from app.escapes.models import AuditEvent, User
from app.escapes.modules.billing import service as billing
from app.escapes.modules.properties.models import Property
from app.escapes.modules.properties.service import as_bool, status_summary
from app.escapes.rbac import require_admin
from app.escapes.utils import MAX_INT32, json_body, parse_int

bp = Blueprint("admin", __name__)


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_admin() -> User:
    u = getattr(g, "admin_user", None)
    if not u:
        raise RuntimeError("No admin user")
    return u


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _paging(default_limit: int) -> tuple[int, int]:
    limit = min(max(parse_int(request.args.get("limit"), default_limit), 1), 500)
    offset = min(max(parse_int(request.args.get("offset"), 0), 0), MAX_INT32)
    return limit, offset


@bp.get("/profile")
@require_admin
def profile():
    u = _current_admin()
    return jsonify(
        {
            "id": u.id,
            "email": u.email,
            "name": u.name or u.email.split("@")[0],
            "role": u.role,
            "emailVerified": u.email_verified,
        }
    )


# ---------- Dashboard ----------
@bp.get("/stats")
@require_admin
def stats():
    return jsonify(billing.platform_stats(db_session()))


@bp.get("/dashboard-stats")
@require_admin
def dashboard_stats():
    return jsonify(billing.dashboard_stats(db_session()))


@bp.get("/dashboard-users")
@require_admin
def dashboard_users():
    s = db_session()
    users = s.query(User).order_by(User.created_at.desc()).all()
    return jsonify(
        {
            "users": [
                {
                    "id": u.id,
                    "name": u.name,
                    "email": u.email,
                    "role": u.role,
                    "createdAt": u.created_at.isoformat() if u.created_at else None,
                }
                for u in users
            ]
        }
    )


@bp.get("/dashboard-properties")
@require_admin
def dashboard_properties():
    s = db_session()
    status_filter = (request.args.get("status") or "pending").strip().lower()
    q = s.query(Property)
    if status_filter != "all":
        q = q.filter(Property.status == status_filter)
    rows = []
    for p in q.order_by(Property.created_at.desc()).all():
        rows.append(
            {
                "id": p.id,
                "title": p.title,
                "status": p.status,
                "ownerId": p.owner_id,
                "location": p.location,
                "region": p.region,
                "sleepsMax": p.sleeps_max,
                "bedrooms": p.bedrooms,
                "bathrooms": p.bathrooms,
                "priceFromMidweek": p.price_from_midweek,
                "priceFromWeekend": p.price_from_weekend,
                "heroImage": p.hero_image,
                "isPublished": p.is_published,
                "createdAt": p.created_at.isoformat() if p.created_at else None,
                "ownerName": p.owner.name if p.owner else None,
                "ownerEmail": p.owner.email if p.owner else None,
            }
        )
    return jsonify({"properties": rows, "summary": status_summary(s), "total": len(rows)})


@bp.get("/dashboard-payments")
@require_admin
def dashboard_payments():
    return jsonify({"payments": billing.dashboard_payments(db_session())})


@bp.get("/dashboard-subscriptions")
@require_admin
def dashboard_subscriptions():
    return jsonify({"subscriptions": billing.dashboard_subscriptions(db_session())})


# ---------- Memberships / users ----------
@bp.get("/memberships")
@require_admin
def memberships():
    return jsonify(billing.memberships(db_session()))


@bp.delete("/memberships/delete")
@require_admin
def memberships_delete():
    s = db_session()
    user_id = json_body().get("userId")
    if not user_id:
        return _error("User ID is required", 400)
    user = s.get(User, str(user_id))
    if user is None:
        return _error("User not found", 404)
    billing.clear_membership(s, user, actor=_current_admin())
    s.commit()
    return jsonify({"success": True, "message": f"Membership for {user.email} has been cancelled", "userId": user.id})


@bp.delete("/users/delete")
@require_admin
def users_delete():
    s = db_session()
    admin = _current_admin()
    user_id = json_body().get("id")
    if not user_id:
        return _error("User ID is required", 400)
    if str(user_id) == admin.id:
        return _error("Cannot delete your own admin account", 400)
    user = s.get(User, str(user_id))
    if user is None:
        return _error("User not found", 404)

    record_event(
        s,
        actor=admin,
        action="user.delete",
        entity_type="User",
        entity_id=user.id,
        metadata={"email": user.email, "role": user.role, "properties": len(user.properties)},
    )
    s.delete(user)
    s.commit()
    current_app.logger.warning("Admin %s deleted user %s", admin.id, user_id)
    return jsonify({"success": True, "message": "User deleted successfully", "deletedUserId": str(user_id)})


# ---------- Money ----------
@bp.get("/payments")
@require_admin
def payments():
    limit, offset = _paging(50)
    return jsonify(
        billing.payments(
            db_session(),
            status=(request.args.get("status") or "").strip().lower() or None,
            customer=(request.args.get("customer") or "").strip() or None,
            limit=limit,
            offset=offset,
        )
    )


@bp.get("/subscriptions")
@require_admin
def subscriptions():
    limit, offset = _paging(50)
    return jsonify(
        billing.subscriptions(
            db_session(),
            status=(request.args.get("status") or "").strip().lower() or None,
            limit=limit,
            offset=offset,
        )
    )


@bp.get("/transactions")
@require_admin
def transactions():
    limit, _ = _paging(100)
    return jsonify(
        billing.transactions(
            db_session(),
            status=(request.args.get("status") or "all").strip().lower(),
            search=request.args.get("search") or "",
            limit=limit,
        )
    )


# ---------- Audit ----------
@bp.get("/audit")
@require_admin
def audit_list():
    """
    Last 200 audit events with simple filters:
    - action (contains)
    - actor_email (contains)
    - date range (YYYY-MM-DD)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        return _error("date_from must be YYYY-MM-DD", 400)
    if (request.args.get("date_to") or "").strip() and not date_to:
        return _error("date_to must be YYYY-MM-DD", 400)

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(200).all()
    return jsonify({"events": [e.to_dict() for e in events], "total": len(events)})


# ---------- Bootstrap ----------
@bp.post("/setup")
def setup():
    """
    Create or repair the seed admin from ADMIN_EMAIL / ADMIN_PASSWORD.
    Authenticated by `Authorization: Bearer <ADMIN_SETUP_SECRET>`, not by a session.
    """
    secret = current_app.config.get("ADMIN_SETUP_SECRET") or ""
    if not secret:
        return _error("Not found", 404)
    header = request.headers.get("Authorization") or ""
    provided = header[len("Bearer "):] if header.startswith("Bearer ") else ""
    if not provided or not hmac.compare_digest(provided, secret):
        current_app.logger.warning("Admin setup refused: bad secret (request_id=%s)", getattr(g, "request_id", None))
        return _error("Unauthorized: Invalid setup secret", 401)

    s = db_session()
    cfg = current_app.config
    user, created = ensure_admin_user(
        s,
        email=cfg["ADMIN_EMAIL"],
        password=cfg["ADMIN_PASSWORD"],
        name=cfg.get("ADMIN_NAME") or "Admin User",
        reset_password=as_bool(json_body().get("resetPassword", False)),
    )
    record_event(
        s,
        actor=None,
        action="admin.setup",
        entity_type="User",
        entity_id=user.id,
        metadata={"created": created, "email": user.email},
    )
    s.commit()
    return jsonify(
        {
            "success": True,
            "message": "Admin user setup completed successfully",
            "email": user.email,
            "userId": user.id,
            "role": user.role,
            "created": created,
        }
    )
