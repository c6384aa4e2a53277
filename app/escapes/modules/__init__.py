"""
Feature modules: properties (listings, owner portal, moderation), bookings and billing.

Each module owns its models, service layer and blueprints; platform pieces
(sessions, RBAC, audit, storage, DB session) live one level up.
"""
