"""
Central constants for the Escape Houses application.
"""
from __future__ import annotations

# Role-scoped session cookies
ADMIN_SESSION_COOKIE = "admin-session-token"
USER_SESSION_COOKIE = "user-session-token"

# Property moderation
PROPERTY_STATUS_PENDING = "pending"
PROPERTY_STATUS_APPROVED = "approved"
PROPERTY_STATUS_REJECTED = "rejected"
PROPERTY_STATUSES = (PROPERTY_STATUS_PENDING, PROPERTY_STATUS_APPROVED, PROPERTY_STATUS_REJECTED)

REGIONS = (
    "South West",
    "South Coast",
    "Midlands",
    "North",
    "Wales",
    "Scotland",
    "Lake District",
    "Peak District",
)

# Bookings
BOOKING_STATUSES = ("pending", "confirmed", "cancelled", "completed")
ACTIVE_BOOKING_STATUSES = frozenset({"pending", "confirmed"})
DEPOSIT_RATE = 0.25
CURRENCY = "GBP"

# Owner membership plans. Prices are annual, in GBP.
PLANS = {
    "bronze": {"name": "Bronze Plan", "property_limit": 1, "amount": 450.0, "billing_cycle": "yearly"},
    "silver": {"name": "Silver Plan", "property_limit": 3, "amount": 650.0, "billing_cycle": "yearly"},
    "gold": {"name": "Gold Plan", "property_limit": 10, "amount": 850.0, "billing_cycle": "yearly"},
}
DEFAULT_PROPERTY_LIMIT = 1
PAID_PAYMENT_STATUSES = frozenset({"paid", "succeeded"})
MEMBERSHIP_PERIOD_DAYS = 30
