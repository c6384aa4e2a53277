import logging
from datetime import date

from dotenv import load_dotenv
from flask import Flask, g, jsonify, render_template, request
from sqlalchemy import inspect as sa_inspect
from werkzeug.exceptions import HTTPException

from app.escapes.config import is_production, load_config
from app.escapes.db import init_db, teardown_db_session
from app.escapes.models import Base  # noqa: F401  (must load before any module models)
from app.escapes.routes import bp as routes_bp
from app.escapes.auth import bp as auth_bp, clear_stale_cookies, load_identities
from app.escapes.account import bp as account_bp
from app.escapes.admin import bp as admin_bp
from app.escapes.isolation import gate_request
from app.escapes.modules.properties.admin import bp as admin_properties_bp
from app.escapes.modules.properties.owner import bp as owner_bp
from app.escapes.modules.properties.public import bp as properties_public_bp
from app.escapes.modules.bookings.routes import bp as bookings_bp
from app.escapes.security import api_request_guard, apply_cors_headers
from app.escapes.utils import format_date_uk, format_date_uk_long

REQUIRED_TABLES = ("user", "account", "session", "properties", "bookings", "audit_events")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL") or "INFO",
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @app.template_filter("ukdate")
    def _ukdate_filter(value) -> str:
        return format_date_uk(value) if hasattr(value, "strftime") else "—"

    @app.template_filter("ukdate_long")
    def _ukdate_long_filter(value) -> str:
        return format_date_uk_long(value) if hasattr(value, "strftime") else "—"

    @app.context_processor
    def _inject_today() -> dict:
        return {"today": date.today()}

    # Production guardrails (fail fast with clear logs)
    if is_production(app.config.get("ENV")):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage config check (log loudly, do not block boot)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(account_bp, url_prefix="/api/user")
    app.register_blueprint(bookings_bp, url_prefix="/api")
    app.register_blueprint(properties_public_bp, url_prefix="/api")
    app.register_blueprint(owner_bp, url_prefix="/api")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(admin_properties_bp, url_prefix="/api/admin")

    # Order matters: preflight/origin check, then identities, then the page gate.
    app.before_request(api_request_guard)
    app.before_request(load_identities)
    app.before_request(gate_request)
    app.after_request(clear_stale_cookies)
    app.after_request(apply_cors_headers)
    app.teardown_appcontext(teardown_db_session)

    # Schema health (lean): warn when migrations have not been applied.
    def _run_schema_health_check() -> None:
        try:
            insp = sa_inspect(app.extensions["sqlalchemy_engine"])
            missing = [t for t in REQUIRED_TABLES if not insp.has_table(t)]
        except Exception as e:
            app.logger.exception("Schema health check failed: %s", e)
            return
        if missing:
            app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))

    _run_schema_health_check()

    def _wants_json() -> bool:
        return request.path.startswith("/api/") or request.accept_mimetypes.best == "application/json"

    @app.errorhandler(HTTPException)
    def _err_http(e: HTTPException):
        if _wants_json():
            message = e.description if e.code in (400, 413) and e.description else e.name
            if e.code == 413:
                message = "File too large. Maximum size is 10MB."
            return jsonify({"error": message}), e.code
        return render_template("errors/error.html", code=e.code, name=e.name), e.code

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in logs.
        app.logger.error(
            "Unhandled 500 (request_id=%s)",
            getattr(g, "request_id", None),
            exc_info=getattr(e, "original_exception", None) or e,
        )
        if _wants_json():
            return jsonify({"error": "Internal server error"}), 500
        return render_template("errors/error.html", code=500, name="Internal Server Error"), 500

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
