import os
from dataclasses import dataclass

DEFAULT_ALLOWED_ORIGINS = (
    "https://www.groupescapehouses.co.uk",
    "https://groupescapehouses.co.uk",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
)


@dataclass(frozen=True)
class Settings:
    secret_key: str
    env: str
    database_url: str
    log_level: str

    allowed_origins: tuple[str, ...]

    admin_setup_secret: str
    admin_email: str
    admin_password: str
    admin_name: str
    admin_session_hours: int
    user_session_days: int

    storage_backend: str
    storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str
    s3_public_url: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).")


def _origins(raw: str) -> tuple[str, ...]:
    if not raw:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(o.strip().rstrip("/") for o in raw.split(",") if o.strip())


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///escapes.db"),
        log_level=_getenv("LOG_LEVEL", "INFO").upper(),
        allowed_origins=_origins(_getenv("ALLOWED_ORIGINS")),
        admin_setup_secret=_getenv("ADMIN_SETUP_SECRET", ""),
        admin_email=_getenv("ADMIN_EMAIL", "admin@groupescapehouses.co.uk").lower(),
        admin_password=os.environ.get("ADMIN_PASSWORD") or "change-me",
        admin_name=_getenv("ADMIN_NAME", "Admin User"),
        admin_session_hours=_getenv_int("ADMIN_SESSION_HOURS", 8),
        user_session_days=_getenv_int("USER_SESSION_DAYS", 30),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        storage_root=_getenv("STORAGE_ROOT", ""),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "lon1"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        s3_public_url=_getenv("S3_PUBLIC_URL", ""),
    )


def is_production(env: str | None) -> bool:
    return (env or "").strip().lower() in ("prod", "production")


def load_config() -> dict:
    s = load_settings()
    return {
        "SECRET_KEY": s.secret_key,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "LOG_LEVEL": s.log_level,
        "ALLOWED_ORIGINS": s.allowed_origins,
        "ADMIN_SETUP_SECRET": s.admin_setup_secret,
        "ADMIN_EMAIL": s.admin_email,
        "ADMIN_PASSWORD": s.admin_password,
        "ADMIN_NAME": s.admin_name,
        "ADMIN_SESSION_HOURS": s.admin_session_hours,
        "USER_SESSION_DAYS": s.user_session_days,
        "STORAGE_BACKEND": s.storage_backend,
        "STORAGE_ROOT": s.storage_root,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "S3_PUBLIC_URL": s.s3_public_url,
        # cookie defaults, shared by the role-scoped session cookies
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production(s.env),  # Require HTTPS in production
        # listing media uploads (10MB)
        "MAX_CONTENT_LENGTH": 10 * 1024 * 1024,
    }
