"""
Event model with ticket inventory tracking.

Key design decisions:
- `remaining_tickets` is denormalized (avoids SUM over bookings on every read)
  and only ever moved by guarded UPDATE statements in the booking stores
- CHECK constraints keep 0 <= remaining_tickets <= total_tickets at the DB level
- Index on (status, date) for the public listing of approved upcoming events
"""

import enum

from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, ForeignKey, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin


class EventStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    total_tickets = Column(Integer, nullable=False)
    remaining_tickets = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=EventStatus.PENDING.value)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Relationships
    organizer = relationship("User", back_populates="events", lazy="raise")
    bookings = relationship("Booking", back_populates="event", lazy="raise", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("remaining_tickets >= 0", name="check_remaining_tickets_non_negative"),
        CheckConstraint("total_tickets >= 0", name="check_total_tickets_non_negative"),
        CheckConstraint("remaining_tickets <= total_tickets", name="check_remaining_lte_total"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'declined')", name="check_event_status"
        ),
        Index("ix_events_date", "date"),
        Index("ix_events_status_date", "status", "date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, title={self.title}, status={self.status}, "
            f"remaining={self.remaining_tickets}/{self.total_tickets})>"
        )
