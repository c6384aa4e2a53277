"""
Seed the back-office admin account (idempotent).

Usage:
  python scripts/init_db.py                  # create admin if missing
  python scripts/init_db.py --reset-password # also overwrite the stored password
"""

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.escapes.auth import ensure_admin_user  # noqa: E402
from scripts._db_utils import database_url_from_env, script_session  # noqa: E402


def seed_only(*, database_url: str | None = None, reset_password: bool = False) -> None:
    """
    Create or repair the admin user from ADMIN_EMAIL / ADMIN_PASSWORD / ADMIN_NAME.
    Does NOT overwrite an existing admin user's password unless reset_password is set.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@groupescapehouses.co.uk").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Admin User").strip()

    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and admin_password == "change-me":
        raise RuntimeError("ADMIN_PASSWORD must be set in production (not default).")

    db_url = (database_url or database_url_from_env()).strip()
    with script_session(db_url) as s:
        user, created = ensure_admin_user(
            s,
            email=admin_email,
            password=admin_password,
            name=admin_name,
            reset_password=reset_password,
        )
        action = "Created" if created else "Verified"
        print(f"{action} admin user {user.email} (id={user.id})", flush=True)


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser()
    parser.add_argument("--reset-password", action="store_true", help="Overwrite the stored admin password")
    args = parser.parse_args()
    seed_only(reset_password=args.reset_password)


if __name__ == "__main__":
    main()
