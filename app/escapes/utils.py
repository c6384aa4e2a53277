from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

from flask import request

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL_RE = re.compile(r"^https?://[^\s/$.?#].[^\s]*$", re.IGNORECASE)
_UK_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{2}|\d{4})$")


def json_body() -> dict[str, Any]:
    """Request JSON as a dict; anything else (missing, malformed, a list) is treated as empty."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def is_email(value: str | None) -> bool:
    return bool(value and _EMAIL_RE.match(value.strip()))


def is_url(value: str | None) -> bool:
    return bool(value and _URL_RE.match(value.strip()))


def parse_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


MAX_INT32 = 2**31 - 1


def parse_positive_int(value: Any) -> int | None:
    """Positive whole number that fits an INTEGER column, or None when the value is anything else."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not (value.isascii() and value.isdigit()) or len(value) > 10:
            return None
    elif not isinstance(value, int):
        return None
    n = int(value)
    return n if 0 < n <= MAX_INT32 else None


def parse_uk_date(value: str) -> date:
    """Parse dd/mm/yyyy or dd/mm/yy (two-digit years are 20xx)."""
    m = _UK_DATE_RE.match((value or "").strip())
    if not m:
        raise ValueError(f"Invalid UK date format: {value}")
    day, month, year = (int(p) for p in m.groups())
    if year < 100:
        year += 2000
    return date(year, month, day)


def parse_any_date(value: str | None) -> date | None:
    """Accept ISO (YYYY-MM-DD) or UK (DD/MM/YYYY) dates."""
    value = (value or "").strip()
    if not value:
        return None
    if "/" in value:
        return parse_uk_date(value)
    return date.fromisoformat(value)


def format_date_uk(value: date | datetime | None) -> str:
    """dd/mm/yy"""
    if value is None:
        return ""
    return value.strftime("%d/%m/%y")


def format_date_uk_long(value: date | datetime | None) -> str:
    """dd/mm/yyyy"""
    if value is None:
        return ""
    return value.strftime("%d/%m/%Y")
