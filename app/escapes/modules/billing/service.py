"""
Back-office money views.

No payment provider is wired in: owner memberships come from user.plan_id /
user.payment_status, and guest payments are the bookings table. Amounts are GBP.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.escapes.audit import record_event
from app.escapes.constants import CURRENCY, MEMBERSHIP_PERIOD_DAYS, PAID_PAYMENT_STATUSES, PLANS, PROPERTY_STATUS_PENDING
from app.escapes.models import ROLE_ADMIN, ROLE_CUSTOMER, ROLE_OWNER, User
from app.escapes.modules.bookings.models import Booking
from app.escapes.modules.properties.models import Property
from app.escapes.rbac import has_active_plan

logger = logging.getLogger(__name__)

PAST_DUE_PAYMENT_STATUSES = frozenset({"past_due", "failed"})
REVENUE_BOOKING_STATUSES = ("confirmed", "completed")


def _round(value: float) -> float:
    return round(float(value or 0), 2)


def plan_info(plan_id: str | None) -> dict[str, Any] | None:
    return PLANS.get((plan_id or "").lower())


def membership_status(user: User) -> str:
    """active / past_due / inactive"""
    if has_active_plan(user):
        return "active"
    if user.plan_id and (user.payment_status or "").lower() in PAST_DUE_PAYMENT_STATUSES:
        return "past_due"
    return "inactive"


def payment_status_for_booking(booking: Booking) -> str:
    if booking.booking_status == "cancelled":
        return "canceled"
    if booking.deposit_paid or booking.booking_status in REVENUE_BOOKING_STATUSES:
        return "succeeded"
    return "pending"


# ---------- Memberships ----------
def membership_row(user: User) -> dict[str, Any]:
    plan = plan_info(user.plan_id)
    status = membership_status(user)
    signup = user.created_at or datetime.utcnow()
    return {
        "id": user.id,
        "name": user.name or "Unknown",
        "email": user.email,
        "planId": user.plan_id,
        "planName": plan["name"] if plan else "No plan",
        "status": status,
        "amount": plan["amount"] if plan and status == "active" else 0.0,
        "currency": CURRENCY,
        "signupDate": signup.isoformat(),
        "currentPeriodEnd": (signup + timedelta(days=MEMBERSHIP_PERIOD_DAYS)).isoformat(),
        "paymentStatus": user.payment_status or "pending",
    }


def memberships(s: Session, *, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.utcnow()
    month_start = datetime(now.year, now.month, 1)
    owners = s.query(User).filter(User.role == ROLE_OWNER).order_by(User.created_at.desc()).all()
    members = [membership_row(u) for u in owners]
    return {
        "members": members,
        "summary": {
            "totalMembers": len(members),
            "activeMembers": sum(1 for m in members if m["status"] == "active"),
            "totalRevenue": _round(sum(m["amount"] for m in members)),
            "newThisMonth": sum(1 for u in owners if u.created_at and u.created_at >= month_start),
        },
    }


def clear_membership(s: Session, user: User, *, actor: User) -> None:
    old = {"plan_id": user.plan_id, "payment_status": user.payment_status}
    user.plan_id = None
    user.payment_status = None
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="membership.delete",
        entity_type="User",
        entity_id=user.id,
        metadata={"old": old, "email": user.email},
    )
    logger.info("Membership cleared for user %s by %s", user.id, actor.id)


# ---------- Subscriptions ----------
def subscription_row(user: User) -> dict[str, Any]:
    plan = plan_info(user.plan_id)
    status = membership_status(user)
    if status == "inactive":
        status = "pending" if (user.payment_status or "").lower() == "pending" else "canceled"
    start = user.created_at or datetime.utcnow()
    return {
        "id": user.id,
        "customerEmail": user.email,
        "customerName": user.name,
        "planId": user.plan_id,
        "planName": plan["name"] if plan else (user.plan_id or "Unknown plan"),
        "amount": plan["amount"] if plan else 0.0,
        "currency": CURRENCY,
        "billingCycle": plan["billing_cycle"] if plan else "yearly",
        "status": status,
        "currentPeriodStart": start.isoformat(),
        "currentPeriodEnd": (start + timedelta(days=MEMBERSHIP_PERIOD_DAYS)).isoformat(),
        "createdAt": start.isoformat(),
    }


def subscriptions(s: Session, *, status: str | None = None, limit: int = 50, offset: int = 0) -> dict[str, Any]:
    owners = (
        s.query(User)
        .filter(User.role == ROLE_OWNER, User.plan_id.isnot(None))
        .order_by(User.created_at.desc())
        .all()
    )
    rows = [subscription_row(u) for u in owners]
    active = [r for r in rows if r["status"] == "active"]
    monthly = sum(r["amount"] / 12 if r["billingCycle"] == "yearly" else r["amount"] for r in active)
    if status and status != "all":
        rows = [r for r in rows if r["status"] == status]
    page = rows[offset : offset + limit]
    return {
        "subscriptions": page,
        "total": len(rows),
        "limit": limit,
        "offset": offset,
        "hasMore": offset + len(page) < len(rows),
        "activeSubscriptions": len(active),
        "totalMRR": _round(monthly),
    }


def dashboard_subscriptions(s: Session) -> list[dict[str, Any]]:
    owners = s.query(User).filter(User.role == ROLE_OWNER).order_by(User.created_at.desc()).all()
    out = []
    for u in owners:
        row = subscription_row(u)
        out.append(
            {
                "id": u.id,
                "email": u.email,
                "planName": row["planName"] if u.plan_id else "No plan",
                "status": "active" if row["status"] == "active" else "pending",
                "amount": row["amount"],
                "renewsAt": row["currentPeriodEnd"],
            }
        )
    return out


# ---------- Payments / transactions ----------
def payment_row(booking: Booking) -> dict[str, Any]:
    return {
        "id": booking.id,
        "customerId": booking.user_id,
        "customerEmail": booking.guest_email,
        "customerName": booking.guest_name,
        "amount": _round(booking.total_price),
        "depositAmount": _round(booking.deposit_amount),
        "currency": CURRENCY,
        "status": payment_status_for_booking(booking),
        "paymentMethod": "card",
        "created": booking.created_at.isoformat() if booking.created_at else None,
        "description": f"Booking for {booking.property_name}",
    }


def payments(
    s: Session,
    *,
    status: str | None = None,
    customer: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    q = s.query(Booking)
    if customer:
        q = q.filter(Booking.guest_email.ilike(f"%{customer.strip().lower()}%"))
    rows = [payment_row(b) for b in q.order_by(Booking.created_at.desc(), Booking.id.desc()).all()]
    if status and status != "all":
        rows = [r for r in rows if r["status"] == status]
    page = rows[offset : offset + limit]
    return {
        "payments": page,
        "total": len(rows),
        "limit": limit,
        "offset": offset,
        "hasMore": offset + len(page) < len(rows),
    }


def dashboard_payments(s: Session) -> list[dict[str, Any]]:
    return [
        {
            "id": b.id,
            "amount": _round(b.total_price),
            "status": payment_status_for_booking(b),
            "createdAt": b.created_at.isoformat() if b.created_at else None,
            "method": "Card",
        }
        for b in s.query(Booking).order_by(Booking.created_at.desc()).all()
    ]


def transactions(s: Session, *, status: str = "all", search: str = "", limit: int = 100) -> dict[str, Any]:
    rows = []
    for b in s.query(Booking).order_by(Booking.created_at.desc(), Booking.id.desc()).all():
        rows.append(
            {
                "id": b.id,
                "amount": _round(b.total_price),
                "currency": CURRENCY,
                "status": b.booking_status,
                "paymentMethod": "card",
                "description": f"Booking for {b.property_name}",
                "customer": {"name": b.guest_name or "Unknown Guest", "email": b.guest_email, "role": "guest"},
                "depositPaid": b.deposit_paid,
                "createdAt": b.created_at.isoformat() if b.created_at else None,
            }
        )

    if status and status != "all":
        rows = [r for r in rows if r["status"] == status]
    needle = (search or "").strip().lower()
    if needle:
        rows = [
            r
            for r in rows
            if needle in r["customer"]["name"].lower()
            or needle in r["customer"]["email"].lower()
            or needle in r["description"].lower()
        ]
    rows = rows[:limit]

    return {
        "transactions": rows,
        "statusCounts": {
            "all": len(rows),
            "succeeded": sum(1 for r in rows if r["status"] in REVENUE_BOOKING_STATUSES),
            "pending": sum(1 for r in rows if r["status"] == "pending"),
            "canceled": sum(1 for r in rows if r["status"] == "cancelled"),
        },
        "totalRevenue": _round(sum(r["amount"] for r in rows if r["status"] != "cancelled")),
        "total": len(rows),
    }


# ---------- Headline numbers ----------
def _count_role(s: Session, role: str) -> int:
    return int(s.query(func.count(User.id)).filter(User.role == role).scalar() or 0)


def platform_stats(s: Session) -> dict[str, Any]:
    by_status = dict(
        s.query(Booking.booking_status, func.count(Booking.id)).group_by(Booking.booking_status).all()
    )
    revenue = (
        s.query(func.coalesce(func.sum(Booking.total_price), 0.0))
        .filter(Booking.booking_status.in_(REVENUE_BOOKING_STATUSES))
        .scalar()
    )
    owners = s.query(User).filter(User.role == ROLE_OWNER).all()
    pending = (
        s.query(func.count(Property.id)).filter(Property.status == PROPERTY_STATUS_PENDING).scalar() or 0
    )
    customers = _count_role(s, ROLE_CUSTOMER)
    return {
        "totalUsers": customers,
        "totalGuests": customers,
        "totalOwners": len(owners),
        "totalAdmins": _count_role(s, ROLE_ADMIN),
        "totalBookings": int(sum(by_status.values())),
        "totalRevenue": _round(revenue),
        "paidBookings": int(by_status.get("confirmed", 0)),
        "pendingBookings": int(by_status.get("pending", 0)),
        "cancelledBookings": int(by_status.get("cancelled", 0)),
        "activeSubscriptions": sum(1 for u in owners if has_active_plan(u)),
        "pendingApprovals": int(pending),
    }


def dashboard_stats(s: Session) -> dict[str, Any]:
    owners = s.query(User).filter(User.role == ROLE_OWNER).all()
    revenue = (
        s.query(func.coalesce(func.sum(Booking.total_price), 0.0))
        .filter(Booking.booking_status.in_(REVENUE_BOOKING_STATUSES))
        .scalar()
    )
    return {
        "totalUsers": int(s.query(func.count(User.id)).scalar() or 0),
        "totalRevenue": _round(revenue),
        "totalSubscriptions": len(owners),
        "activeSubscriptions": sum(1 for u in owners if (u.payment_status or "").lower() in PAID_PAYMENT_STATUSES and u.plan_id),
    }
