from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.escapes.models import Base

if TYPE_CHECKING:
    from app.escapes.models import User
    from app.escapes.modules.bookings.models import Booking


class Property(Base):
    __tablename__ = "properties"
    __table_args__ = (
        Index("idx_properties_owner", "owner_id"),
        Index("idx_properties_status", "status"),
        Index("idx_properties_region", "region"),
        Index("idx_properties_published", "is_published"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(ForeignKey("user.id", ondelete="CASCADE"), nullable=False)

    # Listing
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    location: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str] = mapped_column(String(128), nullable=False)
    sleeps_min: Mapped[int] = mapped_column(Integer, nullable=False)
    sleeps_max: Mapped[int] = mapped_column(Integer, nullable=False)
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False)
    bathrooms: Mapped[int] = mapped_column(Integer, nullable=False)
    price_from_midweek: Mapped[float] = mapped_column(Float, nullable=False)
    price_from_weekend: Mapped[float] = mapped_column(Float, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    house_rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    check_in_out: Mapped[str | None] = mapped_column(String(500), nullable=True)
    ical_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Media
    hero_image: Mapped[str] = mapped_column(String(1024), nullable=False)
    hero_video: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    floorplan_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    map_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    map_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    owner_contact: Mapped[str | None] = mapped_column(String(320), nullable=True)

    # Visibility and moderation. Publication is a separate flag from status.
    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, approved, rejected
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    plan: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reviewed_by_user_id: Mapped[str | None] = mapped_column(ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    owner: Mapped["User"] = relationship("User", back_populates="properties", foreign_keys=[owner_id])
    bookings: Mapped[list["Booking"]] = relationship(
        "Booking",
        back_populates="listing",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "slug": self.slug,
            "location": self.location,
            "region": self.region,
            "sleepsMin": self.sleeps_min,
            "sleepsMax": self.sleeps_max,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "priceFromMidweek": self.price_from_midweek,
            "priceFromWeekend": self.price_from_weekend,
            "description": self.description,
            "houseRules": self.house_rules,
            "checkInOut": self.check_in_out,
            "iCalURL": self.ical_url,
            "heroImage": self.hero_image,
            "heroVideo": self.hero_video,
            "floorplanURL": self.floorplan_url,
            "mapLat": self.map_lat,
            "mapLng": self.map_lng,
            "ownerContact": self.owner_contact,
            "featured": self.featured,
            "isPublished": self.is_published,
            "status": self.status,
            "rejectionReason": self.rejection_reason,
            "plan": self.plan,
            "reviewedAt": self.reviewed_at.isoformat() if self.reviewed_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_public_dict(self) -> dict:
        """Listing as shown on the public site (no moderation or owner fields)."""
        data = self.to_dict()
        for key in ("ownerId", "status", "rejectionReason", "plan", "reviewedAt", "isPublished", "iCalURL"):
            data.pop(key, None)
        return data
