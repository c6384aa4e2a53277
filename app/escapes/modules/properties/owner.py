from __future__ import annotations

from datetime import date

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy import func

from app.escapes.constants import PROPERTY_STATUSES
from app.escapes.db import db_session
from app.escapes.models import ROLE_OWNER, User
from app.escapes.modules.bookings.models import Booking
from app.escapes.modules.properties.models import Property
from app.escapes.modules.properties.service import (
    can_create_property,
    create_property,
    delete_property,
    ensure_owner,
    status_summary,
    update_property,
    validate_property_payload,
)
from app.escapes.rbac import has_active_plan, property_limit, require_paid_plan, require_user
from app.escapes.storage import MAX_IMAGE_BYTES, listing_media_key, sniff_image_type, storage_from_config
from app.escapes.utils import json_body

bp = Blueprint("owner", __name__)

REVENUE_BOOKING_STATUSES = ("confirmed", "completed")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _error(message: str, status: int, **extra):
    return jsonify({"error": message, **extra}), status


def _owned_property(property_id: int) -> tuple[Property | None, tuple | None]:
    prop = db_session().get(Property, property_id)
    if prop is None:
        return None, _error("Property not found", 404)
    try:
        ensure_owner(prop, _current_user())
    except PermissionError as e:
        return None, _error(str(e), 403)
    return prop, None


# ---------- Listings ----------
@bp.get("/owner/properties")
@require_user(ROLE_OWNER)
def owner_properties_list():
    s = db_session()
    u = _current_user()
    q = s.query(Property).filter(Property.owner_id == u.id)
    status_filter = (request.args.get("status") or "").strip().lower()
    if status_filter and status_filter != "all":
        if status_filter not in PROPERTY_STATUSES:
            return _error("Invalid status filter", 400)
        q = q.filter(Property.status == status_filter)
    props = q.order_by(Property.created_at.desc()).all()
    return jsonify(
        {
            "properties": [p.to_dict() for p in props],
            "total": len(props),
            "limit": property_limit(u),
            "hasActivePlan": has_active_plan(u),
        }
    )


@bp.post("/owner/properties/create")
@require_user(ROLE_OWNER)
@require_paid_plan
def owner_properties_create():
    s = db_session()
    u = _current_user()

    allowed, reason = can_create_property(s, u)
    if not allowed:
        return _error(reason or "Property limit reached", 403)

    values, errors = validate_property_payload(json_body())
    if errors:
        return _error(errors[0], 400, details=errors)

    prop = create_property(s, values, owner=u, actor=u)
    s.commit()
    current_app.logger.info("Owner %s submitted property %s for review", u.id, prop.id)
    return jsonify({"success": True, "property": prop.to_dict(), "message": "Property submitted for review"}), 201


@bp.get("/owner/properties/<int:property_id>")
@require_user(ROLE_OWNER)
def owner_property_detail(property_id: int):
    prop, err = _owned_property(property_id)
    if err:
        return err
    return jsonify({"property": prop.to_dict()})


@bp.put("/owner/properties/<int:property_id>")
@require_user(ROLE_OWNER)
def owner_property_update(property_id: int):
    prop, err = _owned_property(property_id)
    if err:
        return err
    s = db_session()
    values, errors = validate_property_payload(json_body(), partial=True, existing=prop)
    if errors:
        return _error(errors[0], 400, details=errors)
    update_property(s, prop, values, actor=_current_user())
    s.commit()
    return jsonify({"success": True, "property": prop.to_dict()})


@bp.delete("/owner/properties/<int:property_id>")
@require_user(ROLE_OWNER)
def owner_property_delete(property_id: int):
    prop, err = _owned_property(property_id)
    if err:
        return err
    s = db_session()
    delete_property(s, prop, actor=_current_user())
    s.commit()
    return jsonify({"success": True, "message": "Property deleted successfully"})


# ---------- Bookings / dashboard ----------
@bp.get("/owner/bookings")
@require_user(ROLE_OWNER)
def owner_bookings():
    s = db_session()
    u = _current_user()
    q = s.query(Booking).join(Property, Booking.property_id == Property.id).filter(Property.owner_id == u.id)
    status_filter = (request.args.get("status") or "").strip().lower()
    if status_filter and status_filter != "all":
        q = q.filter(Booking.booking_status == status_filter)
    bookings = q.order_by(Booking.check_in_date.asc()).all()
    return jsonify({"bookings": [b.to_dict() for b in bookings], "total": len(bookings)})


@bp.get("/owner/dashboard")
@require_user(ROLE_OWNER)
def owner_dashboard():
    s = db_session()
    u = _current_user()
    owned = s.query(Property.id).filter(Property.owner_id == u.id)

    bookings_by_status = dict(
        s.query(Booking.booking_status, func.count(Booking.id))
        .filter(Booking.property_id.in_(owned))
        .group_by(Booking.booking_status)
        .all()
    )
    revenue = (
        s.query(func.coalesce(func.sum(Booking.total_price), 0.0))
        .filter(Booking.property_id.in_(owned), Booking.booking_status.in_(REVENUE_BOOKING_STATUSES))
        .scalar()
    )
    upcoming = (
        s.query(Booking)
        .filter(
            Booking.property_id.in_(owned),
            Booking.check_in_date >= date.today(),
            Booking.booking_status.in_(("pending", "confirmed")),
        )
        .order_by(Booking.check_in_date.asc())
        .limit(5)
        .all()
    )
    return jsonify(
        {
            "properties": status_summary(s, owner_id=u.id),
            "bookings": {
                "total": int(sum(bookings_by_status.values())),
                "byStatus": {k: int(v) for k, v in bookings_by_status.items()},
            },
            "revenue": round(float(revenue or 0), 2),
            "upcomingBookings": [b.to_dict() for b in upcoming],
            "membership": {
                "planId": u.plan_id,
                "paymentStatus": u.payment_status,
                "hasActivePlan": has_active_plan(u),
                "propertyLimit": property_limit(u),
            },
        }
    )


# ---------- Media ----------
@bp.post("/upload")
@require_user(ROLE_OWNER)
def upload_image():
    f = request.files.get("file")
    if not f or not f.filename:
        return _error("No file provided", 400)
    data = f.read()
    if not data:
        return _error("Uploaded file is empty", 400)
    if len(data) > MAX_IMAGE_BYTES:
        return _error("File too large. Maximum size is 10MB.", 413)
    # The declared mimetype and filename extension are ignored; only the bytes count.
    content_type = sniff_image_type(data)
    if content_type is None:
        return _error("Only JPEG, PNG, WebP or GIF images can be uploaded", 400)

    u = _current_user()
    key = listing_media_key(u.id, f.filename, content_type)
    storage = storage_from_config(current_app.config)
    storage.put_bytes(key, data, content_type=content_type)
    url = storage.public_url(key) or f"{request.host_url.rstrip('/')}/media/{key}"
    current_app.logger.info("Owner %s uploaded %s (%d bytes)", u.id, key, len(data))
    return jsonify({"success": True, "url": url, "key": key}), 201
