from __future__ import annotations

from flask import Blueprint, jsonify, request

from app.escapes.db import db_session
from app.escapes.modules.properties.models import Property
from app.escapes.modules.properties.service import as_bool
from app.escapes.utils import MAX_INT32, parse_int

bp = Blueprint("properties_public", __name__)


@bp.get("/properties")
def properties_list():
    """Published listings only; unpublished ones do not exist as far as the public site is concerned."""
    s = db_session()
    q = s.query(Property).filter(Property.is_published.is_(True))

    region = (request.args.get("region") or "").strip()
    if region:
        q = q.filter(Property.region == region)

    guests = min(parse_int(request.args.get("guests"), 0), MAX_INT32)
    if guests > 0:
        q = q.filter(Property.sleeps_max >= guests)

    if "featured" in request.args and as_bool(request.args.get("featured")):
        q = q.filter(Property.featured.is_(True))

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(
            (Property.title.ilike(like))
            | (Property.location.ilike(like))
            | (Property.region.ilike(like))
        )

    props = q.order_by(Property.featured.desc(), Property.created_at.desc()).all()
    return jsonify({"properties": [p.to_public_dict() for p in props], "total": len(props)})


@bp.get("/properties/<slug>")
def property_detail(slug: str):
    s = db_session()
    prop = (
        s.query(Property)
        .filter(Property.slug == slug, Property.is_published.is_(True))
        .one_or_none()
    )
    if prop is None:
        return jsonify({"error": "Property not found"}), 404
    return jsonify({"property": prop.to_public_dict()})
