from datetime import date

import pytest

from app.escapes import create_app
from app.escapes.auth import hash_password
from app.escapes.db import session_scope
from app.escapes.models import Account, AuditEvent, Base, User
from app.escapes.modules.bookings.models import Booking
from app.escapes.modules.bookings.service import quote_stay
from app.escapes.modules.properties.models import Property


def _property(owner, title, **overrides):
    data = dict(
        owner_id=owner.id,
        title=title,
        slug=title.lower().replace(" ", "-"),
        location="St Ives, Cornwall",
        region="South West",
        sleeps_min=2,
        sleeps_max=10,
        bedrooms=5,
        bathrooms=3,
        price_from_midweek=100.0,
        price_from_weekend=150.0,
        description="Clifftop house above Porthmeor beach with a sun terrace and a wood-fired hot tub.",
        hero_image="https://cdn.example.com/stives.jpg",
        status="approved",
        is_published=True,
    )
    data.update(overrides)
    return Property(**data)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        owner = User(email="owner@example.com", name="Olive Owner", role="owner", plan_id="silver", payment_status="paid")
        s.add(owner)
        for email in ("guest@example.com", "other@example.com"):
            u = User(email=email, name=email.split("@")[0], role="customer", email_verified=email == "guest@example.com")
            s.add(u)
            s.flush()
            s.add(Account(account_id=email, user_id=u.id, password=hash_password("password1")))
        s.flush()
        s.add(_property(owner, "Porthmeor House"))
        s.add(_property(owner, "Hidden Cottage", status="pending", is_published=False))

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _pid(app, title):
    with session_scope(app) as s:
        return s.query(Property.id).filter(Property.title == title).scalar()


def _booking(property_id, **overrides):
    data = {
        "propertyId": property_id,
        "guestName": "Grace Guest",
        "guestEmail": "guest@example.com",
        "checkInDate": "2030-01-03",
        "checkOutDate": "2030-01-07",
        "numberOfGuests": 6,
    }
    data.update(overrides)
    return data


def test_quote_charges_friday_and_saturday_at_weekend_rate():
    prop = Property(price_from_midweek=100.0, price_from_weekend=150.0)
    # Thursday to Monday: Thu, Fri, Sat, Sun nights
    quote = quote_stay(prop, date(2030, 1, 3), date(2030, 1, 7))
    assert quote == {
        "nights": 4,
        "midweekNights": 2,
        "weekendNights": 2,
        "totalPrice": 500.0,
        "depositAmount": 125.0,
    }


def test_quote_deposit_rounds_half_up():
    prop = Property(price_from_midweek=100.1, price_from_weekend=100.1)
    quote = quote_stay(prop, date(2030, 1, 7), date(2030, 1, 8))
    assert quote["totalPrice"] == 100.1
    assert quote["depositAmount"] == 25.03


def test_quote_rejects_empty_stay():
    prop = Property(price_from_midweek=100.0, price_from_weekend=150.0)
    with pytest.raises(ValueError):
        quote_stay(prop, date(2030, 1, 3), date(2030, 1, 3))


def test_create_booking(app, client):
    r = client.post("/api/bookings", json=_booking(_pid(app, "Porthmeor House")))
    assert r.status_code == 201
    b = r.json["booking"]
    assert b["bookingStatus"] == "pending"
    assert b["nights"] == 4
    assert b["totalPrice"] == 500.0
    assert b["depositAmount"] == 125.0
    assert b["depositPaid"] is False
    assert b["propertyName"] == "Porthmeor House"
    assert b["userId"] is None
    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "booking.create").count() == 1


def test_uk_dates_accepted(app, client):
    r = client.post(
        "/api/bookings",
        json=_booking(_pid(app, "Porthmeor House"), checkInDate="03/01/2030", checkOutDate="07/01/2030"),
    )
    assert r.status_code == 201
    assert r.json["booking"]["checkInDate"] == "2030-01-03"


def test_overlapping_dates_conflict(app, client):
    pid = _pid(app, "Porthmeor House")
    assert client.post("/api/bookings", json=_booking(pid)).status_code == 201
    r = client.post("/api/bookings", json=_booking(pid, checkInDate="2030-01-06", checkOutDate="2030-01-09"))
    assert r.status_code == 409


def test_back_to_back_stays_allowed(app, client):
    pid = _pid(app, "Porthmeor House")
    assert client.post("/api/bookings", json=_booking(pid)).status_code == 201
    r = client.post("/api/bookings", json=_booking(pid, checkInDate="2030-01-07", checkOutDate="2030-01-09"))
    assert r.status_code == 201


def test_cancelled_booking_frees_dates(app, client):
    pid = _pid(app, "Porthmeor House")
    client.post("/api/bookings", json=_booking(pid))
    with session_scope(app) as s:
        s.query(Booking).update({Booking.booking_status: "cancelled"})
    assert client.post("/api/bookings", json=_booking(pid)).status_code == 201


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"guestEmail": None}, "Missing required field: guestEmail"),
        ({"guestEmail": "nope"}, "Invalid email"),
        ({"checkInDate": "3rd Jan"}, "Dates must be"),
        ({"checkOutDate": "2030-01-02"}, "after check-in"),
        ({"checkInDate": "2020-01-01", "checkOutDate": "2020-01-03"}, "in the past"),
        ({"checkOutDate": "2030-06-01"}, "limited to 60 nights"),
        ({"numberOfGuests": 12}, "sleeps 2-10"),
        ({"numberOfGuests": 1}, "sleeps 2-10"),
        ({"numberOfGuests": 0}, "positive whole number"),
        ({"numberOfGuests": True}, "positive whole number"),
        ({"numberOfGuests": 2**40}, "positive whole number"),
        ({"propertyId": 2**63}, "Invalid property ID"),
        ({"propertyId": "9" * 5000}, "Invalid property ID"),
        ({"propertyId": 1.5}, "Invalid property ID"),
    ],
)
def test_booking_validation(app, client, overrides, message):
    r = client.post("/api/bookings", json=_booking(_pid(app, "Porthmeor House"), **overrides))
    assert r.status_code == 400
    assert message in r.json["error"]


def test_unpublished_or_missing_property_is_404(app, client):
    assert client.post("/api/bookings", json=_booking(_pid(app, "Hidden Cottage"))).status_code == 404
    assert client.post("/api/bookings", json=_booking(99999)).status_code == 404


def _login(client, email):
    r = client.post("/api/auth/user/login", json={"email": email, "password": "password1"})
    assert r.status_code == 200


def test_user_bookings_and_cancel(app, client):
    pid = _pid(app, "Porthmeor House")
    # Booked anonymously with the same email, then signed in.
    anon = app.test_client().post("/api/bookings", json=_booking(pid)).json["booking"]

    _login(client, "guest@example.com")
    r = client.get("/api/user/bookings")
    assert r.status_code == 200
    assert [b["id"] for b in r.json["bookings"]] == [anon["id"]]

    r = client.post(f"/api/user/bookings/{anon['id']}/cancel")
    assert r.status_code == 200
    assert r.json["booking"]["bookingStatus"] == "cancelled"

    r = client.post(f"/api/user/bookings/{anon['id']}/cancel")
    assert r.status_code == 400


def test_cannot_cancel_someone_elses_booking(app, client):
    booking = app.test_client().post("/api/bookings", json=_booking(_pid(app, "Porthmeor House"))).json["booking"]
    _login(client, "other@example.com")
    assert client.get("/api/user/bookings").json["total"] == 0
    assert client.post(f"/api/user/bookings/{booking['id']}/cancel").status_code == 403
    assert client.post("/api/user/bookings/99999/cancel").status_code == 404


def test_signed_in_booking_is_linked_to_user(app, client):
    _login(client, "other@example.com")
    r = client.post(
        "/api/bookings",
        json=_booking(_pid(app, "Porthmeor House"), guestEmail="other@example.com"),
    )
    assert r.status_code == 201
    assert r.json["booking"]["userId"] is not None


def test_signup_with_someone_elses_email_does_not_claim_their_bookings(app, client):
    booking = app.test_client().post(
        "/api/bookings",
        json=_booking(_pid(app, "Porthmeor House"), guestEmail="victim@example.com"),
    ).json["booking"]

    r = client.post(
        "/api/auth/user/signup",
        json={"email": "victim@example.com", "password": "password1", "name": "Not Victim"},
    )
    assert r.status_code == 201
    assert client.get("/api/user/bookings").json["total"] == 0
    assert client.post(f"/api/user/bookings/{booking['id']}/cancel").status_code == 403


def test_verified_email_does_not_claim_another_users_booking(app, client):
    _login(client, "other@example.com")
    booking = client.post(
        "/api/bookings",
        json=_booking(_pid(app, "Porthmeor House"), guestEmail="guest@example.com"),
    ).json["booking"]
    assert booking["userId"] is not None

    guest = app.test_client()
    _login(guest, "guest@example.com")
    assert guest.get("/api/user/bookings").json["total"] == 0
    assert guest.post(f"/api/user/bookings/{booking['id']}/cancel").status_code == 403


def test_user_bookings_requires_session(client):
    assert client.get("/api/user/bookings").status_code == 401
