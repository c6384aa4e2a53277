"""
Properties service layer.
Handles listing validation, owner submissions, and the moderation workflow
(pending -> approved/rejected) with its independent publication flag.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.escapes.audit import record_event
from app.escapes.constants import (
    PROPERTY_STATUS_APPROVED,
    PROPERTY_STATUS_PENDING,
    PROPERTY_STATUS_REJECTED,
    PROPERTY_STATUSES,
)
from app.escapes.rbac import has_active_plan, property_limit
from app.escapes.utils import is_email, is_url

from .models import Property

if TYPE_CHECKING:
    from app.escapes.models import User

logger = logging.getLogger(__name__)

REJECTION_REASON_MIN = 10
REJECTION_REASON_MAX = 500

# JSON field -> column
FIELD_MAP = {
    "title": "title",
    "location": "location",
    "region": "region",
    "sleepsMin": "sleeps_min",
    "sleepsMax": "sleeps_max",
    "bedrooms": "bedrooms",
    "bathrooms": "bathrooms",
    "priceFromMidweek": "price_from_midweek",
    "priceFromWeekend": "price_from_weekend",
    "description": "description",
    "houseRules": "house_rules",
    "checkInOut": "check_in_out",
    "iCalURL": "ical_url",
    "heroImage": "hero_image",
    "heroVideo": "hero_video",
    "floorplanURL": "floorplan_url",
    "mapLat": "map_lat",
    "mapLng": "map_lng",
    "ownerContact": "owner_contact",
}
REQUIRED_FIELDS = (
    "title",
    "location",
    "region",
    "sleepsMin",
    "sleepsMax",
    "bedrooms",
    "bathrooms",
    "priceFromMidweek",
    "priceFromWeekend",
    "description",
    "heroImage",
)
# Editing any of these on a reviewed listing sends it back for review.
CONTENT_COLUMNS = frozenset(FIELD_MAP.values())

_TEXT_RULES: dict[str, tuple[int, int | None, str]] = {
    "title": (5, 200, "Title must be between 5 and 200 characters"),
    "location": (3, None, "Location is required"),
    "region": (2, None, "Region is required"),
    "description": (50, 5000, "Description must be between 50 and 5000 characters"),
    "houseRules": (0, 2000, "House rules must not exceed 2000 characters"),
    "checkInOut": (0, 500, "Check-in/out info must not exceed 500 characters"),
}
_INT_RULES: dict[str, tuple[int, int, str]] = {
    "sleepsMin": (1, 100, "Minimum sleeps must be between 1 and 100"),
    "sleepsMax": (1, 100, "Maximum sleeps must be between 1 and 100"),
    "bedrooms": (1, 50, "Bedrooms must be between 1 and 50"),
    "bathrooms": (1, 50, "Bathrooms must be between 1 and 50"),
}
_FLOAT_RULES: dict[str, tuple[float, float, str]] = {
    "priceFromMidweek": (0, 100000, "Midweek price must be between 0 and 100000"),
    "priceFromWeekend": (0, 100000, "Weekend price must be between 0 and 100000"),
    "mapLat": (-90, 90, "Invalid latitude"),
    "mapLng": (-180, 180, "Invalid longitude"),
}
_URL_FIELDS = ("heroImage", "heroVideo", "floorplanURL", "iCalURL")


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def validate_property_payload(
    payload: dict,
    *,
    partial: bool = False,
    existing: Property | None = None,
) -> tuple[dict[str, Any], list[str]]:
    """
    Validate a JSON listing payload. Returns (column values, errors).
    With partial=True only supplied fields are checked; cross-field rules use
    `existing` for the fields that were left out.
    """
    errors: list[str] = []
    values: dict[str, Any] = {}

    if not partial:
        for field in REQUIRED_FIELDS:
            if _blank(payload.get(field)):
                errors.append(f"Missing required field: {field}")
        if errors:
            return values, errors

    for field, (lo, hi, message) in _TEXT_RULES.items():
        if field not in payload:
            continue
        raw = payload.get(field)
        if _blank(raw):
            if lo > 0:
                errors.append(message)
            else:
                values[FIELD_MAP[field]] = None
            continue
        if not isinstance(raw, str):
            errors.append(message)
            continue
        text = raw.strip()
        if len(text) < lo or (hi is not None and len(text) > hi):
            errors.append(message)
            continue
        values[FIELD_MAP[field]] = text

    for field, (lo, hi, message) in _INT_RULES.items():
        if field not in payload:
            continue
        n = _as_int(payload.get(field))
        if n is None:
            errors.append(f"{field} must be a whole number")
        elif not lo <= n <= hi:
            errors.append(message)
        else:
            values[FIELD_MAP[field]] = n

    for field, (lo, hi, message) in _FLOAT_RULES.items():
        if field not in payload:
            continue
        raw = payload.get(field)
        if field in ("mapLat", "mapLng") and _blank(raw):
            values[FIELD_MAP[field]] = None
            continue
        x = _as_float(raw)
        if x is None or not lo <= x <= hi:
            errors.append(message)
        else:
            values[FIELD_MAP[field]] = x

    for field in _URL_FIELDS:
        if field not in payload:
            continue
        raw = payload.get(field)
        if _blank(raw):
            if field == "heroImage":
                errors.append("Hero image must be a valid URL")
            else:
                values[FIELD_MAP[field]] = None
            continue
        if not isinstance(raw, str) or not is_url(raw):
            errors.append(f"{field} must be a valid URL")
        else:
            values[FIELD_MAP[field]] = raw.strip()

    if "ownerContact" in payload:
        raw = payload.get("ownerContact")
        if _blank(raw):
            values["owner_contact"] = None
        elif not isinstance(raw, str) or not is_email(raw):
            errors.append("Invalid email address")
        else:
            values["owner_contact"] = raw.strip().lower()

    sleeps_min = values.get("sleeps_min", existing.sleeps_min if existing else None)
    sleeps_max = values.get("sleeps_max", existing.sleeps_max if existing else None)
    if sleeps_min is not None and sleeps_max is not None and sleeps_max < sleeps_min:
        errors.append("Maximum sleeps must be greater than or equal to minimum sleeps")

    return values, errors


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    return slug or "property"


def unique_slug(s: Session, base: str, exclude_id: int | None = None) -> str:
    base = slugify(base)
    candidate = base
    n = 2
    while True:
        q = s.query(Property.id).filter(Property.slug == candidate)
        if exclude_id is not None:
            q = q.filter(Property.id != exclude_id)
        if q.first() is None:
            return candidate
        candidate = f"{base}-{n}"
        n += 1


def can_create_property(s: Session, owner: "User") -> tuple[bool, str | None]:
    """Active membership plus the plan's listing allowance."""
    if not has_active_plan(owner):
        return False, "You need an active membership to submit a property. Please purchase a plan first."
    current = s.query(func.count(Property.id)).filter(Property.owner_id == owner.id).scalar() or 0
    limit = property_limit(owner)
    if current >= limit:
        plan = owner.plan_id or "current"
        noun = "property" if limit == 1 else "properties"
        return False, f"Your {plan} plan allows up to {limit} {noun}. Please upgrade to add more."
    return True, None


def ensure_owner(prop: Property, user: "User") -> None:
    if prop.owner_id != user.id:
        raise PermissionError("You do not own this property")


def create_property(
    s: Session,
    values: dict[str, Any],
    *,
    owner: "User",
    actor: "User",
    slug: str | None = None,
    status: str = PROPERTY_STATUS_PENDING,
    is_published: bool = False,
    featured: bool = False,
) -> Property:
    """Create a listing. Owner submissions always arrive as pending and unpublished."""
    if status not in PROPERTY_STATUSES:
        raise ValueError(f"Invalid status: {status}")
    if status == PROPERTY_STATUS_REJECTED and is_published:
        raise ValueError("Cannot publish rejected properties")

    now = datetime.utcnow()
    prop = Property(
        owner_id=owner.id,
        slug=slug or unique_slug(s, values.get("title") or ""),
        status=status,
        is_published=is_published,
        featured=featured,
        plan=owner.plan_id,
        created_at=now,
        updated_at=now,
        **values,
    )
    s.add(prop)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="property.create",
        entity_type="Property",
        entity_id=str(prop.id),
        metadata={"title": prop.title, "owner_id": owner.id, "status": prop.status},
    )
    logger.info("Property %s created by %s (status=%s)", prop.id, actor.id, prop.status)
    return prop


def update_property(s: Session, prop: Property, values: dict[str, Any], *, actor: "User") -> Property:
    """
    Owner edit. Changing content of a reviewed or published listing returns it to
    pending and takes it off the public site until it is reviewed again.
    """
    changes = {}
    for column, new in values.items():
        old = getattr(prop, column)
        if old != new:
            changes[column] = {"old": old, "new": new}
            setattr(prop, column, new)

    resubmitted = False
    if CONTENT_COLUMNS.intersection(changes) and (prop.status != PROPERTY_STATUS_PENDING or prop.is_published):
        if prop.status != PROPERTY_STATUS_PENDING:
            changes["status"] = {"old": prop.status, "new": PROPERTY_STATUS_PENDING}
        if prop.is_published:
            changes["isPublished"] = {"old": True, "new": False}
        prop.status = PROPERTY_STATUS_PENDING
        prop.is_published = False
        prop.rejection_reason = None
        resubmitted = True

    if "title" in changes:
        prop.slug = unique_slug(s, prop.title, exclude_id=prop.id)

    if changes:
        prop.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="property.resubmit" if resubmitted else "property.edit",
            entity_type="Property",
            entity_id=str(prop.id),
            metadata={"title": prop.title, "changes": changes},
        )
    return prop


def set_property_status(
    s: Session,
    prop: Property,
    new_status: str,
    *,
    actor: "User",
    reason: str | None = None,
) -> Property:
    """
    Moderation decision.
    approved -> published; rejected -> unpublished with reason; pending keeps visibility.
    """
    if new_status not in PROPERTY_STATUSES:
        raise ValueError("Invalid status. Must be: approved, rejected, or pending")
    reason = (reason or "").strip() or None
    if new_status == PROPERTY_STATUS_REJECTED and reason is not None:
        if not REJECTION_REASON_MIN <= len(reason) <= REJECTION_REASON_MAX:
            raise ValueError(
                f"Rejection reason must be between {REJECTION_REASON_MIN} and {REJECTION_REASON_MAX} characters"
            )

    old_status = prop.status
    old_published = prop.is_published
    prop.status = new_status
    if new_status == PROPERTY_STATUS_APPROVED:
        prop.is_published = True
        prop.rejection_reason = None
    elif new_status == PROPERTY_STATUS_REJECTED:
        prop.is_published = False
        prop.rejection_reason = reason
    else:
        prop.rejection_reason = None

    now = datetime.utcnow()
    prop.reviewed_at = now
    prop.reviewed_by_user_id = actor.id
    prop.updated_at = now

    record_event(
        s,
        actor=actor,
        action=f"property.{'approve' if new_status == PROPERTY_STATUS_APPROVED else 'reject' if new_status == PROPERTY_STATUS_REJECTED else 'reset'}",
        entity_type="Property",
        entity_id=str(prop.id),
        reason=reason,
        metadata={
            "title": prop.title,
            "from": old_status,
            "to": new_status,
            "published": {"old": old_published, "new": prop.is_published},
        },
    )
    logger.info("Property %s moderated %s -> %s by %s", prop.id, old_status, new_status, actor.id)
    return prop


def set_publication(s: Session, prop: Property, is_published: bool, *, actor: "User") -> Property:
    if is_published and prop.status == PROPERTY_STATUS_REJECTED:
        raise ValueError("Cannot publish rejected properties. Please approve first.")
    old = prop.is_published
    prop.is_published = bool(is_published)
    prop.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="property.publish" if is_published else "property.unpublish",
        entity_type="Property",
        entity_id=str(prop.id),
        metadata={"title": prop.title, "from": old, "to": prop.is_published, "status": prop.status},
    )
    return prop


def delete_property(s: Session, prop: Property, *, actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="property.delete",
        entity_type="Property",
        entity_id=str(prop.id),
        metadata={"title": prop.title, "owner_id": prop.owner_id, "status": prop.status},
    )
    s.delete(prop)


def status_summary(s: Session, owner_id: str | None = None) -> dict[str, int]:
    q = s.query(Property.status, func.count(Property.id))
    if owner_id is not None:
        q = q.filter(Property.owner_id == owner_id)
    counts = {status: int(n) for status, n in q.group_by(Property.status).all()}
    summary = {status: counts.get(status, 0) for status in PROPERTY_STATUSES}
    summary["total"] = sum(counts.values())
    return summary
