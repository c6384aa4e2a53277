from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from app.escapes.modules.properties.models import Property


class Base(DeclarativeBase):
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


ROLE_CUSTOMER = "customer"
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLES = (ROLE_CUSTOMER, ROLE_OWNER, ROLE_ADMIN)

SESSION_SCOPE_ADMIN = "admin"
SESSION_SCOPE_USER = "user"


class User(Base):
    __tablename__ = "user"
    __table_args__ = (Index("idx_user_role", "role"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    role: Mapped[str] = mapped_column(String(32), nullable=False, default=ROLE_CUSTOMER)  # customer, owner, admin
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    phone_number: Mapped[str | None] = mapped_column(String(64), nullable=True)
    property_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    property_website: Mapped[str | None] = mapped_column(String(512), nullable=True)

    # Owner membership
    plan_id: Mapped[str | None] = mapped_column(String(64), nullable=True)  # bronze, silver, gold
    payment_status: Mapped[str | None] = mapped_column(String(32), nullable=True)  # paid, succeeded, pending, failed, past_due

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    accounts: Mapped[list["Account"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    sessions: Mapped[list["AuthSession"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    properties: Mapped[list["Property"]] = relationship(
        "Property",
        back_populates="owner",
        foreign_keys="Property.owner_id",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_profile(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "emailVerified": self.email_verified,
            "role": self.role,
            "isAdmin": self.is_admin,
            "phoneNumber": self.phone_number,
            "propertyName": self.property_name,
            "propertyWebsite": self.property_website,
            "planId": self.plan_id,
            "paymentStatus": self.payment_status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class Account(Base):
    """Credential record; one per sign-in provider."""

    __tablename__ = "account"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    account_id: Mapped[str] = mapped_column(String(320), nullable=False)  # email for credential accounts
    provider_id: Mapped[str] = mapped_column(String(64), nullable=False, default="credential")
    user_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    password: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="accounts")


class AuthSession(Base):
    """
    Server-side session row behind a role-scoped cookie.
    Only the sha256 of the cookie value is stored.
    """

    __tablename__ = "session"
    __table_args__ = (Index("idx_session_user", "user_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    scope: Mapped[str] = mapped_column(String(16), nullable=False)  # admin, user
    user_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    user: Mapped[User] = relationship(back_populates="sessions", lazy="joined")


class AuditEvent(Base):
    """
    Append-only audit trail event.
    Keep this table intentionally generic; module tables refer to it by entity type/id.
    """

    __tablename__ = "audit_events"
    __table_args__ = (Index("idx_audit_created_at", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    client_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_user_id: Mapped[str | None] = mapped_column(ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    actor_user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "property.approve"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Property"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    reason: Mapped[str | None] = mapped_column(String(512), nullable=True)
    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "requestId": self.request_id,
            "actorEmail": self.actor_user_email,
            "action": self.action,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "reason": self.reason,
            "metadata": self.metadata_json,
        }


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.escapes.modules.properties.models import Property  # noqa: E402,F401,F811
from app.escapes.modules.bookings.models import Booking  # noqa: E402,F401
