from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, Date, DateTime, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.escapes.models import Base

if TYPE_CHECKING:
    from app.escapes.modules.properties.models import Property


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index("idx_bookings_property", "property_id"),
        Index("idx_bookings_guest_email", "guest_email"),
        Index("idx_bookings_status", "booking_status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False)
    property_name: Mapped[str] = mapped_column(String(200), nullable=False)  # snapshot at booking time
    user_id: Mapped[str | None] = mapped_column(ForeignKey("user.id", ondelete="SET NULL"), nullable=True)

    guest_name: Mapped[str] = mapped_column(String(255), nullable=False)
    guest_email: Mapped[str] = mapped_column(String(320), nullable=False)
    guest_phone: Mapped[str | None] = mapped_column(String(64), nullable=True)

    check_in_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_out_date: Mapped[date] = mapped_column(Date, nullable=False)
    number_of_guests: Mapped[int] = mapped_column(Integer, nullable=False)

    total_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    deposit_amount: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    deposit_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    booking_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")  # pending, confirmed, cancelled, completed
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    listing: Mapped["Property"] = relationship("Property", back_populates="bookings")

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "propertyId": self.property_id,
            "propertyName": self.property_name,
            "userId": self.user_id,
            "guestName": self.guest_name,
            "guestEmail": self.guest_email,
            "guestPhone": self.guest_phone,
            "checkInDate": self.check_in_date.isoformat(),
            "checkOutDate": self.check_out_date.isoformat(),
            "nights": self.nights,
            "numberOfGuests": self.number_of_guests,
            "totalPrice": self.total_price,
            "depositAmount": self.deposit_amount,
            "depositPaid": self.deposit_paid,
            "bookingStatus": self.booking_status,
            "specialRequests": self.special_requests,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
