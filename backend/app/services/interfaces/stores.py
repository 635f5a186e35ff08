"""
Persistence interfaces consumed by the booking service.

The booking service only talks to these; the SQLAlchemy implementations
live in app.infrastructure.sql_stores. Implementations must raise
app.core.exceptions.Unavailable when the backing store cannot be reached.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Protocol

from app.models.booking import Booking


@dataclass(frozen=True)
class EventInventory:
    """Inventory-relevant view of an event."""

    id: int
    status: str
    price: Decimal
    remaining_tickets: int
    total_tickets: int


@dataclass(frozen=True)
class BookingRecord:
    """
    Detached copy of a booking as it stood when its transaction committed.
    Stays readable after the session that produced it rolls back or closes.
    """

    id: int
    user_id: int
    event_id: int
    quantity: int
    total_price: Decimal
    status: str
    booked_at: datetime
    cancelled_at: Optional[datetime] = None

    @classmethod
    def from_booking(cls, booking: Booking) -> "BookingRecord":
        return cls(
            id=booking.id,
            user_id=booking.user_id,
            event_id=booking.event_id,
            quantity=booking.quantity,
            total_price=booking.total_price,
            status=booking.status,
            booked_at=booking.booked_at,
            cancelled_at=booking.cancelled_at,
        )


@dataclass(frozen=True)
class NewBooking:
    user_id: int
    event_id: int
    quantity: int
    total_price: Decimal
    booked_at: datetime


class EventStore(ABC):

    @abstractmethod
    async def get(self, event_id: int) -> Optional[EventInventory]:
        """Return the event's current inventory, or None if it does not exist."""

    @abstractmethod
    async def conditional_decrement(self, event_id: int, quantity: int) -> Optional[EventInventory]:
        """
        Atomically subtract `quantity` from remaining tickets, but only if the
        event is approved and has at least `quantity` left.

        Returns:
            The post-update inventory, or None when the guard did not hold
        """

    @abstractmethod
    async def increment_capped(self, event_id: int, quantity: int) -> Optional[EventInventory]:
        """
        Atomically add `quantity` back, never exceeding total tickets.

        Returns:
            The post-update inventory, or None if the event does not exist
        """


class BookingStore(ABC):

    @abstractmethod
    async def create(self, booking: NewBooking) -> Booking:
        pass

    @abstractmethod
    async def get(self, booking_id: int) -> Optional[Booking]:
        """Return the booking with its event loaded, or None."""

    @abstractmethod
    async def update_status(
        self,
        booking_id: int,
        expected_status: str,
        new_status: str,
        timestamp: datetime,
    ) -> bool:
        """
        Compare-and-set the booking status.

        Returns:
            True if the booking was in `expected_status` and is now in
            `new_status`; False if the guard did not hold
        """

    @abstractmethod
    async def list_by_user(self, user_id: int) -> list[Booking]:
        """All bookings owned by the user, newest first, with events loaded."""


class UnitOfWork(Protocol):
    """Transaction boundary shared by the stores (an AsyncSession satisfies it)."""

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
