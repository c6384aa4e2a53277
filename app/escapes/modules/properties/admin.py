from __future__ import annotations

import math

from flask import Blueprint, current_app, g, jsonify, request

from app.escapes.constants import PROPERTY_STATUS_APPROVED, PROPERTY_STATUS_PENDING, PROPERTY_STATUS_REJECTED, PROPERTY_STATUSES
from app.escapes.db import db_session
from app.escapes.models import User
from app.escapes.modules.properties.models import Property
from app.escapes.modules.properties.service import (
    as_bool,
    create_property,
    delete_property,
    set_property_status,
    set_publication,
    slugify,
    validate_property_payload,
)
from app.escapes.rbac import require_admin
from app.escapes.utils import MAX_INT32, json_body, parse_int, parse_positive_int

bp = Blueprint("admin_properties", __name__)

SORT_COLUMNS = {
    "createdAt": Property.created_at,
    "updatedAt": Property.updated_at,
    "title": Property.title,
    "location": Property.location,
    "region": Property.region,
    "status": Property.status,
}
MAX_PAGE_SIZE = 100


def _admin() -> User:
    u = getattr(g, "admin_user", None)
    if not u:
        raise RuntimeError("No admin user")
    return u


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def _owner_summary(owner: User | None) -> dict | None:
    if owner is None:
        return None
    return {
        "id": owner.id,
        "name": owner.name,
        "email": owner.email,
        "planId": owner.plan_id,
        "paymentStatus": owner.payment_status,
    }


def _property_from_body(body: dict) -> tuple[Property | None, tuple | None]:
    if body.get("propertyId") in (None, ""):
        return None, _error("Property ID is required", 400)
    property_id = parse_positive_int(body.get("propertyId"))
    if property_id is None:
        return None, _error("Invalid property ID", 400)
    prop = db_session().get(Property, property_id)
    if prop is None:
        return None, _error("Property not found", 404)
    return prop, None


# ---------- List / create ----------
@bp.get("/properties")
@require_admin
def properties_list():
    s = db_session()
    page = min(max(parse_int(request.args.get("page"), 1), 1), MAX_INT32)
    limit = min(max(parse_int(request.args.get("limit"), 20), 1), MAX_PAGE_SIZE)
    offset = (page - 1) * limit

    q = s.query(Property)

    status_filter = (request.args.get("status") or "all").strip().lower()
    if status_filter != "all":
        if status_filter not in PROPERTY_STATUSES:
            return _error("Invalid status filter", 400)
        q = q.filter(Property.status == status_filter)

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        q = q.filter(
            (Property.title.ilike(like))
            | (Property.location.ilike(like))
            | (Property.region.ilike(like))
        )

    region = (request.args.get("region") or "").strip()
    if region and region != "all":
        q = q.filter(Property.region == region)

    total = q.count()

    column = SORT_COLUMNS.get(request.args.get("sortBy") or "createdAt", Property.created_at)
    order = column.asc() if (request.args.get("sortOrder") or "desc").lower() == "asc" else column.desc()
    props = q.order_by(order, Property.id.desc()).limit(limit).offset(offset).all()

    rows = []
    for p in props:
        row = p.to_dict()
        row["owner"] = _owner_summary(p.owner)
        rows.append(row)

    return jsonify(
        {
            "success": True,
            "properties": rows,
            "pagination": {
                "page": page,
                "limit": limit,
                "offset": offset,
                "total": total,
                "totalPages": math.ceil(total / limit) if total else 0,
            },
        }
    )


@bp.post("/properties")
@require_admin
def properties_create():
    s = db_session()
    body = json_body()

    owner_id = body.get("ownerId")
    if not owner_id:
        return _error("Missing required field: ownerId", 400)
    owner = s.get(User, str(owner_id))
    if owner is None:
        return _error("Owner not found", 400)

    values, errors = validate_property_payload(body)
    if errors:
        return _error(errors[0], 400)

    slug = None
    if body.get("slug"):
        slug = slugify(str(body["slug"]))
        if s.query(Property.id).filter(Property.slug == slug).first() is not None:
            return _error("Slug already exists", 400)

    status = body.get("status") or PROPERTY_STATUS_PENDING
    if not isinstance(status, str):
        return _error("Status must be text", 400)
    status = status.strip().lower()
    try:
        prop = create_property(
            s,
            values,
            owner=owner,
            actor=_admin(),
            slug=slug,
            status=status,
            is_published=as_bool(body.get("isPublished", False)),
            featured=as_bool(body.get("featured", False)),
        )
    except ValueError as e:
        return _error(str(e), 400)
    if body.get("plan"):
        prop.plan = str(body["plan"]).strip().lower()
    s.commit()
    return jsonify({"success": True, "property": prop.to_dict()}), 201


# ---------- Moderation ----------
@bp.post("/properties/approve")
@require_admin
def properties_approve():
    s = db_session()
    prop, err = _property_from_body(json_body())
    if err:
        return err
    set_property_status(s, prop, PROPERTY_STATUS_APPROVED, actor=_admin())
    s.commit()
    return jsonify({"success": True, "message": "Property approved and published", "property": prop.to_dict()})


@bp.patch("/properties/approve")
@require_admin
def properties_set_status():
    s = db_session()
    body = json_body()
    prop, err = _property_from_body(body)
    if err:
        return err
    new_status = body.get("status") or ""
    reason = body.get("rejectionReason")
    if not isinstance(new_status, str):
        return _error("Status must be text", 400)
    if reason is not None and not isinstance(reason, str):
        return _error("Rejection reason must be text", 400)
    new_status = new_status.strip().lower()
    try:
        set_property_status(s, prop, new_status, actor=_admin(), reason=reason)
    except ValueError as e:
        return _error(str(e), 400)
    s.commit()
    return jsonify({"success": True, "message": f"Property status updated to {new_status}", "property": prop.to_dict()})


@bp.post("/properties/reject")
@require_admin
def properties_reject():
    s = db_session()
    body = json_body()
    prop, err = _property_from_body(body)
    if err:
        return err
    reason = body.get("reason")
    if reason is not None and not isinstance(reason, str):
        return _error("Rejection reason must be text", 400)
    try:
        set_property_status(s, prop, PROPERTY_STATUS_REJECTED, actor=_admin(), reason=reason)
    except ValueError as e:
        return _error(str(e), 400)
    s.commit()
    return jsonify({"success": True, "message": "Property rejected", "property": prop.to_dict()})


@bp.patch("/properties/<int:property_id>/publish")
@require_admin
def properties_publish(property_id: int):
    s = db_session()
    body = json_body()
    if "isPublished" not in body or not isinstance(body.get("isPublished"), bool):
        return _error("isPublished must be a boolean", 400)
    prop = s.get(Property, property_id)
    if prop is None:
        return _error("Property not found", 404)
    try:
        set_publication(s, prop, body["isPublished"], actor=_admin())
    except ValueError as e:
        return _error(str(e), 400)
    s.commit()
    state = "published" if prop.is_published else "unpublished"
    return jsonify({"success": True, "message": f"Property {state}", "property": prop.to_dict()})


@bp.delete("/properties/<int:property_id>")
@require_admin
def properties_delete(property_id: int):
    s = db_session()
    prop = s.get(Property, property_id)
    if prop is None:
        return _error("Property not found", 404)
    delete_property(s, prop, actor=_admin())
    s.commit()
    current_app.logger.info("Admin %s deleted property %s", _admin().id, property_id)
    return jsonify({"success": True, "message": "Property deleted successfully"})
