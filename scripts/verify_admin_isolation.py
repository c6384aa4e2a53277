#!/usr/bin/env python3
"""
Report accounts by role and flag rows that would break admin isolation:
- role "admin" without the is_admin flag (or the reverse)
- admin accounts holding public-site sessions
- non-admin accounts holding admin sessions

Exit code 1 when anything is flagged.

Usage:
  python scripts/verify_admin_isolation.py
"""

import sys
from collections import Counter
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.escapes.models import ROLE_ADMIN, SESSION_SCOPE_ADMIN, SESSION_SCOPE_USER, AuthSession, User  # noqa: E402
from scripts._db_utils import database_url_from_env, script_session  # noqa: E402


def find_problems(s) -> list[str]:
    problems: list[str] = []
    for u in s.query(User).order_by(User.email.asc()).all():
        if u.role == ROLE_ADMIN and not u.is_admin:
            problems.append(f"{u.email}: role=admin but is_admin is false")
        if u.is_admin and u.role != ROLE_ADMIN:
            problems.append(f"{u.email}: is_admin set but role={u.role}")

    rows = s.query(AuthSession, User).join(User, AuthSession.user_id == User.id).all()
    for sess, u in rows:
        if sess.scope == SESSION_SCOPE_USER and u.role == ROLE_ADMIN:
            problems.append(f"{u.email}: admin account has a public-site session")
        if sess.scope == SESSION_SCOPE_ADMIN and not (u.role == ROLE_ADMIN and u.is_admin):
            problems.append(f"{u.email}: non-admin account has an admin session")
    return problems


def main() -> None:
    load_dotenv()
    with script_session(database_url_from_env()) as s:
        counts = Counter(role for (role,) in s.query(User.role).all())
        print("=== Accounts by role ===")
        for role in sorted(counts):
            print(f"  {role}: {counts[role]}")
        problems = find_problems(s)

    if problems:
        print(f"=== {len(problems)} isolation problem(s) ===")
        for p in problems:
            print(f"  - {p}")
        sys.exit(1)
    print("Admin isolation OK.")


if __name__ == "__main__":
    main()
