from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.escapes.db import db_session
from app.escapes.modules.bookings.models import Booking
from app.escapes.modules.bookings.service import (
    BookingConflict,
    cancel_booking,
    create_booking,
    user_bookings_clause,
    validate_booking_payload,
)
from app.escapes.modules.properties.models import Property
from app.escapes.rbac import require_user
from app.escapes.utils import json_body

bp = Blueprint("bookings", __name__)


def _error(message: str, status: int, **extra):
    return jsonify({"error": message, **extra}), status


@bp.post("/bookings")
def bookings_create():
    """Guests may book anonymously or while signed in to the public site."""
    s = db_session()
    values, errors = validate_booking_payload(json_body())
    if errors:
        return _error(errors[0], 400, details=errors)

    prop = s.get(Property, values["property_id"])
    if prop is None or not prop.is_published:
        return _error("Property not found", 404)

    try:
        booking = create_booking(s, prop, values, user=getattr(g, "current_user", None))
    except BookingConflict as e:
        return _error(str(e), 409)
    except ValueError as e:
        return _error(str(e), 400)
    s.commit()
    return jsonify({"success": True, "booking": booking.to_dict()}), 201


@bp.get("/user/bookings")
@require_user()
def user_bookings():
    s = db_session()
    u = g.current_user
    bookings = (
        s.query(Booking)
        .filter(user_bookings_clause(u))
        .order_by(Booking.check_in_date.desc())
        .all()
    )
    return jsonify({"bookings": [b.to_dict() for b in bookings], "total": len(bookings)})


@bp.post("/user/bookings/<int:booking_id>/cancel")
@require_user()
def user_booking_cancel(booking_id: int):
    s = db_session()
    booking = s.get(Booking, booking_id)
    if booking is None:
        return _error("Booking not found", 404)
    try:
        cancel_booking(s, booking, actor=g.current_user)
    except PermissionError as e:
        return _error(str(e), 403)
    except ValueError as e:
        return _error(str(e), 400)
    s.commit()
    return jsonify({"success": True, "booking": booking.to_dict()})
