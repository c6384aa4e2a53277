"""Owner portal: plan gate, ownership checks and resubmission."""
import pytest

from app.escapes import create_app
from app.escapes.auth import hash_password
from app.escapes.db import session_scope
from app.escapes.models import Account, Base, User
from app.escapes.modules.properties.models import Property


def _make_user(s, email, *, role="owner", plan_id=None, payment_status=None):
    u = User(email=email, name=email.split("@")[0], role=role, plan_id=plan_id, payment_status=payment_status)
    s.add(u)
    s.flush()
    s.add(Account(account_id=email, user_id=u.id, password=hash_password("password1")))
    return u


def _listing(**overrides):
    data = {
        "title": "Seaview Manor",
        "location": "Brighton, East Sussex",
        "region": "South Coast",
        "sleepsMin": 8,
        "sleepsMax": 16,
        "bedrooms": 8,
        "bathrooms": 5,
        "priceFromMidweek": 1200,
        "priceFromWeekend": 1800,
        "description": "A grand Regency house a short walk from the beach, with a hot tub and games room.",
        "heroImage": "https://cdn.example.com/seaview.jpg",
    }
    data.update(overrides)
    return data


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        _make_user(s, "bronze@example.com", plan_id="bronze", payment_status="paid")
        _make_user(s, "silver@example.com", plan_id="silver", payment_status="succeeded")
        _make_user(s, "unpaid@example.com", plan_id="gold", payment_status="pending")
        _make_user(s, "noplan@example.com")
        _make_user(s, "customer@example.com", role="customer")

    return app


@pytest.fixture()
def client(app):
    return app.test_client()


def _login(client, email):
    r = client.post("/api/auth/user/login", json={"email": email, "password": "password1"})
    assert r.status_code == 200


def test_owner_endpoints_require_session(client):
    assert client.get("/api/owner/properties").status_code == 401
    assert client.post("/api/owner/properties/create", json=_listing()).status_code == 401


def test_customer_cannot_use_owner_portal(client):
    _login(client, "customer@example.com")
    assert client.get("/api/owner/properties").status_code == 403


@pytest.mark.parametrize("email", ["noplan@example.com", "unpaid@example.com"])
def test_create_requires_active_plan(client, email):
    _login(client, email)
    r = client.post("/api/owner/properties/create", json=_listing())
    assert r.status_code == 403
    assert "active membership" in r.json["error"]


def test_create_starts_pending_and_unpublished(app, client):
    _login(client, "bronze@example.com")
    r = client.post(
        "/api/owner/properties/create",
        json=_listing(status="approved", isPublished=True, featured=True),
    )
    assert r.status_code == 201
    prop = r.json["property"]
    assert prop["status"] == "pending"
    assert prop["isPublished"] is False
    assert prop["featured"] is False
    assert prop["slug"] == "seaview-manor"
    assert prop["plan"] == "bronze"


def test_plan_limit_enforced(client):
    _login(client, "bronze@example.com")
    assert client.post("/api/owner/properties/create", json=_listing()).status_code == 201
    r = client.post("/api/owner/properties/create", json=_listing(title="Second House"))
    assert r.status_code == 403
    assert "up to 1" in r.json["error"]


def test_slugs_are_unique(client):
    _login(client, "silver@example.com")
    a = client.post("/api/owner/properties/create", json=_listing()).json["property"]
    b = client.post("/api/owner/properties/create", json=_listing()).json["property"]
    assert a["slug"] == "seaview-manor"
    assert b["slug"] == "seaview-manor-2"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"title": "Hut"}, "Title"),
        ({"sleepsMin": 10, "sleepsMax": 4}, "Maximum sleeps"),
        ({"bedrooms": 0}, "Bedrooms"),
        ({"priceFromWeekend": -5}, "Weekend price"),
        ({"description": "Too short"}, "Description"),
        ({"heroImage": "not a url"}, "heroImage"),
        ({"mapLat": 123}, "latitude"),
        ({"ownerContact": "nope"}, "email"),
        ({"region": None}, "Missing required field: region"),
    ],
)
def test_create_validation(client, overrides, message):
    _login(client, "silver@example.com")
    r = client.post("/api/owner/properties/create", json=_listing(**overrides))
    assert r.status_code == 400
    assert message in r.json["error"]


def test_list_only_own_properties(client):
    _login(client, "silver@example.com")
    client.post("/api/owner/properties/create", json=_listing())
    _login(client, "bronze@example.com")
    client.post("/api/owner/properties/create", json=_listing(title="Bronze Barn"))
    r = client.get("/api/owner/properties")
    assert r.status_code == 200
    assert [p["title"] for p in r.json["properties"]] == ["Bronze Barn"]
    assert r.json["limit"] == 1


def test_other_owner_gets_403_and_missing_gets_404(client):
    _login(client, "silver@example.com")
    pid = client.post("/api/owner/properties/create", json=_listing()).json["property"]["id"]
    _login(client, "bronze@example.com")
    assert client.get(f"/api/owner/properties/{pid}").status_code == 403
    assert client.put(f"/api/owner/properties/{pid}", json={"title": "Hijacked House"}).status_code == 403
    assert client.delete(f"/api/owner/properties/{pid}").status_code == 403
    assert client.get("/api/owner/properties/99999").status_code == 404


def test_editing_approved_listing_sends_it_back_for_review(app, client):
    _login(client, "silver@example.com")
    pid = client.post("/api/owner/properties/create", json=_listing()).json["property"]["id"]
    with session_scope(app) as s:
        p = s.get(Property, pid)
        p.status = "approved"
        p.is_published = True

    r = client.put(f"/api/owner/properties/{pid}", json={"priceFromWeekend": 1900})
    assert r.status_code == 200
    prop = r.json["property"]
    assert prop["priceFromWeekend"] == 1900
    assert prop["status"] == "pending"
    assert prop["isPublished"] is False


def test_partial_update_checks_sleeps_against_stored_values(client):
    _login(client, "silver@example.com")
    pid = client.post("/api/owner/properties/create", json=_listing()).json["property"]["id"]
    r = client.put(f"/api/owner/properties/{pid}", json={"sleepsMax": 4})
    assert r.status_code == 400


def test_owner_cannot_self_publish_via_update(client):
    _login(client, "silver@example.com")
    pid = client.post("/api/owner/properties/create", json=_listing()).json["property"]["id"]
    r = client.put(f"/api/owner/properties/{pid}", json={"isPublished": True, "status": "approved"})
    assert r.status_code == 200
    assert r.json["property"]["status"] == "pending"
    assert r.json["property"]["isPublished"] is False


def test_owner_delete(app, client):
    _login(client, "silver@example.com")
    pid = client.post("/api/owner/properties/create", json=_listing()).json["property"]["id"]
    assert client.delete(f"/api/owner/properties/{pid}").status_code == 200
    with session_scope(app) as s:
        assert s.get(Property, pid) is None


def test_owner_dashboard_counts(client):
    _login(client, "silver@example.com")
    client.post("/api/owner/properties/create", json=_listing())
    r = client.get("/api/owner/dashboard")
    assert r.status_code == 200
    assert r.json["properties"]["pending"] == 1
    assert r.json["properties"]["total"] == 1
    assert r.json["bookings"]["total"] == 0
    assert r.json["membership"]["propertyLimit"] == 3


def test_editing_published_pending_listing_unpublishes_it(app, client):
    _login(client, "silver@example.com")
    pid = client.post("/api/owner/properties/create", json=_listing()).json["property"]["id"]
    with session_scope(app) as s:
        s.get(Property, pid).is_published = True
    assert client.get("/api/properties").json["total"] == 1

    r = client.put(
        f"/api/owner/properties/{pid}",
        json={"description": "Swapped copy that the moderators have never seen before going live."},
    )
    assert r.status_code == 200
    assert r.json["property"]["status"] == "pending"
    assert r.json["property"]["isPublished"] is False
    assert client.get("/api/properties").json["total"] == 0


PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16


def _upload(client, data, filename, mimetype):
    import io

    return client.post(
        "/api/upload",
        data={"file": (io.BytesIO(data), filename, mimetype)},
        content_type="multipart/form-data",
    )


def test_upload_image_and_serve(client):
    _login(client, "silver@example.com")
    r = _upload(client, PNG_BYTES, "front view.png", "image/png")
    assert r.status_code == 201
    key = r.json["key"]
    assert key.startswith("properties/")
    assert key.endswith("front-view.png")
    served = client.get(f"/media/{key}")
    assert served.status_code == 200
    assert served.data == PNG_BYTES
    assert served.mimetype == "image/png"
    assert served.headers["X-Content-Type-Options"] == "nosniff"


def test_upload_extension_follows_image_bytes(client):
    _login(client, "silver@example.com")
    r = _upload(client, PNG_BYTES, "photo.html", "text/html")
    assert r.status_code == 201
    assert r.json["key"].endswith("-photo.png")


@pytest.mark.parametrize(
    "data, filename, mimetype",
    [
        (b"MZ", "setup.exe", "application/octet-stream"),
        (b"<script>alert(document.cookie)</script>", "x.html", "image/png"),
        (b"<svg onload=alert(1)></svg>", "x.png", "image/png"),
    ],
)
def test_upload_rejects_non_images(client, data, filename, mimetype):
    _login(client, "silver@example.com")
    r = _upload(client, data, filename, mimetype)
    assert r.status_code == 400


def test_media_refuses_non_image_keys(app, client):
    from app.escapes.storage import storage_from_config

    storage_from_config(app.config).put_bytes("properties/x/page.html", b"<script></script>")
    assert client.get("/media/properties/x/page.html").status_code == 404
