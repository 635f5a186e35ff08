"""
Booking model representing a user's reservation of tickets for an event.

Key design decisions:
- total_price is a snapshot taken when the booking is made; later price
  edits on the event never touch it
- Status field allows cancellation without deleting records; bookings are
  kept as an audit trail
- No uniqueness on (user_id, event_id): a user may book the same event
  several times
"""

import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, ForeignKey, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class BookingStatus(str, enum.Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.ACTIVE.value)
    booked_at = Column(DateTime(timezone=True), nullable=False)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    user = relationship("User", back_populates="bookings", lazy="raise")
    event = relationship("Event", back_populates="bookings", lazy="raise")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_booking_quantity_positive"),
        CheckConstraint("total_price >= 0", name="check_booking_total_price_non_negative"),
        CheckConstraint("status IN ('active', 'cancelled')", name="check_booking_status"),
        Index("ix_bookings_user_booked_at", "user_id", "booked_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, user={self.user_id}, event={self.event_id}, "
            f"qty={self.quantity}, status={self.status})>"
        )
