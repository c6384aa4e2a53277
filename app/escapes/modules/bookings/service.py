"""
Bookings service layer: nightly pricing, availability and the booking lifecycle.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy.orm import Session

from app.escapes.audit import record_event
from app.escapes.constants import ACTIVE_BOOKING_STATUSES, DEPOSIT_RATE
from app.escapes.modules.properties.models import Property
from app.escapes.utils import is_email, parse_any_date, parse_positive_int

from .models import Booking

if TYPE_CHECKING:
    from app.escapes.models import User

logger = logging.getLogger(__name__)

# Friday and Saturday nights are charged at the weekend rate.
WEEKEND_NIGHTS = frozenset({4, 5})
MAX_STAY_NIGHTS = 60


class BookingConflict(Exception):
    """Requested dates overlap an existing pending or confirmed booking."""


def _money(value: float | Decimal) -> float:
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def quote_stay(prop: Property, check_in: date, check_out: date) -> dict[str, Any]:
    if check_out <= check_in:
        raise ValueError("Check-out date must be after check-in date")
    nights = (check_out - check_in).days
    weekend = sum(1 for i in range(nights) if (check_in + timedelta(days=i)).weekday() in WEEKEND_NIGHTS)
    midweek = nights - weekend
    total = Decimal(str(prop.price_from_midweek)) * midweek + Decimal(str(prop.price_from_weekend)) * weekend
    return {
        "nights": nights,
        "midweekNights": midweek,
        "weekendNights": weekend,
        "totalPrice": _money(total),
        "depositAmount": _money(total * Decimal(str(DEPOSIT_RATE))),
    }


def has_overlap(s: Session, property_id: int, check_in: date, check_out: date, exclude_id: int | None = None) -> bool:
    """Half-open ranges: a stay may start on the day another ends."""
    q = s.query(Booking.id).filter(
        Booking.property_id == property_id,
        Booking.booking_status.in_(ACTIVE_BOOKING_STATUSES),
        Booking.check_in_date < check_out,
        Booking.check_out_date > check_in,
    )
    if exclude_id is not None:
        q = q.filter(Booking.id != exclude_id)
    return q.first() is not None


def validate_booking_payload(payload: dict) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    values: dict[str, Any] = {}

    for field in ("propertyId", "guestName", "guestEmail", "checkInDate", "checkOutDate", "numberOfGuests"):
        raw = payload.get(field)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            errors.append(f"Missing required field: {field}")
    if errors:
        return values, errors

    property_id = parse_positive_int(payload["propertyId"])
    if property_id is None:
        errors.append("Invalid property ID")
    values["property_id"] = property_id

    name = str(payload["guestName"]).strip()
    if len(name) < 2:
        errors.append("Guest name is required")
    values["guest_name"] = name

    email = str(payload["guestEmail"]).strip().lower()
    if not is_email(email):
        errors.append("Invalid email address")
    values["guest_email"] = email

    phone = payload.get("guestPhone")
    values["guest_phone"] = str(phone).strip() if phone else None

    try:
        values["check_in_date"] = parse_any_date(str(payload["checkInDate"]))
        values["check_out_date"] = parse_any_date(str(payload["checkOutDate"]))
    except ValueError:
        errors.append("Dates must be YYYY-MM-DD or DD/MM/YYYY")

    guests = parse_positive_int(payload["numberOfGuests"])
    values["number_of_guests"] = guests
    if guests is None:
        errors.append("Number of guests must be a positive whole number")

    requests_ = payload.get("specialRequests")
    if requests_ is not None:
        text = str(requests_).strip()
        if len(text) > 2000:
            errors.append("Special requests must not exceed 2000 characters")
        values["special_requests"] = text or None

    return values, errors


def create_booking(s: Session, prop: Property, values: dict[str, Any], *, user: "User | None" = None) -> Booking:
    """
    Raises ValueError for invalid dates/guest counts and BookingConflict for overlaps.
    """
    if not prop.is_published:
        raise ValueError("Property is not available for booking")

    check_in: date = values["check_in_date"]
    check_out: date = values["check_out_date"]
    if check_in < date.today():
        raise ValueError("Check-in date cannot be in the past")
    quote = quote_stay(prop, check_in, check_out)
    if quote["nights"] > MAX_STAY_NIGHTS:
        raise ValueError(f"Stays are limited to {MAX_STAY_NIGHTS} nights")

    guests = values["number_of_guests"]
    if not prop.sleeps_min <= guests <= prop.sleeps_max:
        raise ValueError(f"This property sleeps {prop.sleeps_min}-{prop.sleeps_max} guests")

    if has_overlap(s, prop.id, check_in, check_out):
        raise BookingConflict("The property is not available for the selected dates")

    now = datetime.utcnow()
    booking = Booking(
        property_id=prop.id,
        property_name=prop.title,
        user_id=user.id if user else None,
        guest_name=values["guest_name"],
        guest_email=values["guest_email"],
        guest_phone=values.get("guest_phone"),
        check_in_date=check_in,
        check_out_date=check_out,
        number_of_guests=guests,
        total_price=quote["totalPrice"],
        deposit_amount=quote["depositAmount"],
        deposit_paid=False,
        booking_status="pending",
        special_requests=values.get("special_requests"),
        created_at=now,
        updated_at=now,
    )
    s.add(booking)
    s.flush()

    record_event(
        s,
        actor=user,
        action="booking.create",
        entity_type="Booking",
        entity_id=str(booking.id),
        metadata={
            "property_id": prop.id,
            "check_in": check_in.isoformat(),
            "check_out": check_out.isoformat(),
            "total_price": booking.total_price,
        },
    )
    logger.info("Booking %s created for property %s (%s nights)", booking.id, prop.id, quote["nights"])
    return booking


def _claims_guest_email(user: "User") -> bool:
    return bool(user.email_verified and user.email)


def user_bookings_clause(user: "User"):
    """
    Filter for the bookings a signed-in user owns: the ones made while signed in,
    plus anonymous bookings made with their email once that email is verified.
    """
    clause = Booking.user_id == user.id
    if _claims_guest_email(user):
        clause = clause | (Booking.user_id.is_(None) & (Booking.guest_email == user.email.lower()))
    return clause


def booking_belongs_to(booking: Booking, user: "User") -> bool:
    if booking.user_id is not None:
        return booking.user_id == user.id
    return _claims_guest_email(user) and booking.guest_email == user.email.lower()


def cancel_booking(s: Session, booking: Booking, *, actor: "User") -> Booking:
    if not booking_belongs_to(booking, actor):
        raise PermissionError("You cannot cancel this booking")
    if booking.booking_status not in ACTIVE_BOOKING_STATUSES:
        raise ValueError(f"Cannot cancel a {booking.booking_status} booking")
    old = booking.booking_status
    booking.booking_status = "cancelled"
    booking.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="booking.cancel",
        entity_type="Booking",
        entity_id=str(booking.id),
        metadata={"from": old, "to": "cancelled"},
    )
    return booking
