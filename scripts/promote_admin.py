#!/usr/bin/env python3
"""Promote an existing user to the back-office admin role (idempotent).

Usage:
  python scripts/promote_admin.py --email someone@example.com
  python scripts/promote_admin.py --email someone@example.com --demote
"""

import argparse
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.escapes.models import ROLE_ADMIN, ROLE_CUSTOMER, SESSION_SCOPE_USER, User  # noqa: E402
from app.escapes.sessions import revoke_user_sessions  # noqa: E402
from scripts._db_utils import database_url_from_env, script_session  # noqa: E402


def set_admin(email: str, *, admin: bool = True) -> bool:
    with script_session(database_url_from_env()) as s:
        user = s.query(User).filter(User.email == email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {email}")
            return False
        if admin:
            if user.role == ROLE_ADMIN and user.is_admin:
                print(f"User is already an admin: {email}")
                return True
            user.role = ROLE_ADMIN
            user.is_admin = True
            # Public-site sessions are not valid for an admin account.
            revoke_user_sessions(s, user, scope=SESSION_SCOPE_USER)
        else:
            user.role = ROLE_CUSTOMER
            user.is_admin = False
            revoke_user_sessions(s, user)
        user.updated_at = datetime.utcnow()
        print(f"{'Promoted' if admin else 'Demoted'} {email}")
        return True


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email to promote")
    parser.add_argument("--demote", action="store_true", help="Remove admin access instead")
    args = parser.parse_args()
    ok = set_admin(args.email, admin=not args.demote)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
