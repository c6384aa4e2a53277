from flask import Blueprint, abort, current_app, g, render_template, send_file

from app.escapes.constants import REGIONS
from app.escapes.db import db_session
from app.escapes.modules.properties.models import Property
from app.escapes.storage import StorageError, media_type_for_key, storage_from_config

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    s = db_session()
    featured = (
        s.query(Property)
        .filter(Property.is_published.is_(True), Property.featured.is_(True))
        .order_by(Property.created_at.desc())
        .limit(6)
        .all()
    )
    return render_template("public/index.html", featured=featured, regions=REGIONS)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for the load balancer. No DB access, minimal overhead.
    """
    return "ok", 200


# ---------- Page shells (targets for the route gate) ----------
@bp.get("/login")
@bp.get("/auth/login")
def login_page():
    return render_template("public/login.html", area="customer")


@bp.get("/owner-login")
def owner_login_page():
    return render_template("public/login.html", area="owner")


@bp.get("/admin/login")
@bp.get("/auth/admin-login")
def admin_login_page():
    return render_template("admin/login.html")


@bp.get("/admin")
@bp.get("/admin/dashboard")
def admin_dashboard_page():
    return render_template("admin/dashboard.html", admin=g.admin_user)


@bp.get("/account/dashboard")
def account_dashboard_page():
    return render_template("account/dashboard.html", user=g.current_user)


@bp.get("/owner-dashboard")
def owner_dashboard_page():
    return render_template("owner/dashboard.html", user=g.current_user)


# ---------- Uploaded media ----------
@bp.get("/media/<path:key>")
def media(key: str):
    mimetype = media_type_for_key(key)
    if mimetype is None or not key.startswith("properties/"):
        abort(404)
    storage = storage_from_config(current_app.config)
    try:
        if not storage.exists(key):
            abort(404)
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    resp = send_file(fobj, mimetype=mimetype, max_age=86400)
    resp.headers["X-Content-Type-Options"] = "nosniff"
    return resp
