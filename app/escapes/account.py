from __future__ import annotations

from datetime import datetime

from flask import Blueprint, g, jsonify

from app.escapes.audit import record_event
from app.escapes.db import db_session
from app.escapes.models import ROLE_CUSTOMER, ROLE_OWNER
from app.escapes.rbac import has_active_plan, require_user
from app.escapes.utils import json_body

bp = Blueprint("account", __name__)

SWITCHABLE_ROLES = (ROLE_CUSTOMER, ROLE_OWNER)


@bp.get("/profile")
@require_user()
def profile():
    user = g.current_user
    data = user.to_profile()
    data["hasActivePlan"] = has_active_plan(user)
    return jsonify(data)


@bp.post("/update-role")
@require_user()
def update_role():
    """Customers and owners may switch between each other; nothing else."""
    role = json_body().get("role")
    if role not in SWITCHABLE_ROLES:
        return jsonify({"error": "Invalid role"}), 400

    s = db_session()
    user = g.current_user
    old_role = user.role
    if role != old_role:
        user.role = role
        user.updated_at = datetime.utcnow()
        s.add(user)
        record_event(
            s,
            actor=user,
            action="user.update_role",
            entity_type="User",
            entity_id=user.id,
            metadata={"from": old_role, "to": role},
        )
        s.commit()
    return jsonify({"success": True, "message": "Role updated successfully", "role": role})
