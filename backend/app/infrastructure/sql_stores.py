"""
SQLAlchemy implementations of the booking stores.

Every inventory mutation is a single guarded UPDATE: the database evaluates
the condition and applies the change in one statement, so two transactions
can never both act on the same stale read.

  conditional_decrement:
    UPDATE events SET remaining_tickets = remaining_tickets - :q
    WHERE id = :id AND status = 'approved' AND remaining_tickets >= :q
    RETURNING ...

  update_status (compare-and-set):
    UPDATE bookings SET status = :new, cancelled_at = :ts
    WHERE id = :id AND status = :expected

Both stores share the caller's AsyncSession, so their writes commit or roll
back together.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy import case, select, update
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.core.exceptions import Unavailable
from app.core.logging import get_logger
from app.core.metrics import record_db_operation
from app.models.booking import Booking, BookingStatus
from app.models.event import Event, EventStatus
from app.services.interfaces.stores import BookingStore, EventInventory, EventStore, NewBooking

logger = get_logger(__name__)

_INVENTORY_COLUMNS = (
    Event.id,
    Event.status,
    Event.price,
    Event.remaining_tickets,
    Event.total_tickets,
)


@asynccontextmanager
async def translate_store_errors(operation: str):
    """Map connectivity failures onto Unavailable; everything else propagates."""
    try:
        yield
    except (OperationalError, InterfaceError) as e:
        logger.warning("store_unavailable", operation=operation, error=str(e.orig))
        raise Unavailable(f"Database unavailable during {operation}") from e
    except DBAPIError as e:
        if e.connection_invalidated:
            logger.warning("store_connection_lost", operation=operation, error=str(e.orig))
            raise Unavailable(f"Database connection lost during {operation}") from e
        raise
    except OSError as e:
        logger.warning("store_unreachable", operation=operation, error=str(e))
        raise Unavailable(f"Database unreachable during {operation}") from e


def _to_inventory(row) -> Optional[EventInventory]:
    if row is None:
        return None
    return EventInventory(
        id=row.id,
        status=row.status,
        price=row.price,
        remaining_tickets=row.remaining_tickets,
        total_tickets=row.total_tickets,
    )


class SqlEventStore(EventStore):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, event_id: int) -> Optional[EventInventory]:
        async with translate_store_errors("event_get"):
            result = await self.session.execute(
                select(*_INVENTORY_COLUMNS).where(Event.id == event_id)
            )
            record_db_operation("read")
            return _to_inventory(result.first())

    async def conditional_decrement(self, event_id: int, quantity: int) -> Optional[EventInventory]:
        async with translate_store_errors("event_conditional_decrement"):
            result = await self.session.execute(
                update(Event)
                .where(
                    Event.id == event_id,
                    Event.status == EventStatus.APPROVED.value,
                    Event.remaining_tickets >= quantity,
                )
                .values(remaining_tickets=Event.remaining_tickets - quantity)
                .returning(*_INVENTORY_COLUMNS)
                .execution_options(synchronize_session=False)
            )
            record_db_operation("write")
            return _to_inventory(result.first())

    async def increment_capped(self, event_id: int, quantity: int) -> Optional[EventInventory]:
        restored = Event.remaining_tickets + quantity
        async with translate_store_errors("event_increment_capped"):
            result = await self.session.execute(
                update(Event)
                .where(Event.id == event_id)
                .values(
                    remaining_tickets=case(
                        (restored > Event.total_tickets, Event.total_tickets),
                        else_=restored,
                    )
                )
                .returning(*_INVENTORY_COLUMNS)
                .execution_options(synchronize_session=False)
            )
            record_db_operation("write")
            return _to_inventory(result.first())


class SqlBookingStore(BookingStore):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: NewBooking) -> Booking:
        record = Booking(
            user_id=booking.user_id,
            event_id=booking.event_id,
            quantity=booking.quantity,
            total_price=booking.total_price,
            status=BookingStatus.ACTIVE.value,
            booked_at=booking.booked_at,
        )
        async with translate_store_errors("booking_create"):
            self.session.add(record)
            await self.session.flush()
            record_db_operation("write")
        return record

    async def get(self, booking_id: int) -> Optional[Booking]:
        async with translate_store_errors("booking_get"):
            result = await self.session.execute(
                select(Booking)
                .options(joinedload(Booking.event))
                .where(Booking.id == booking_id)
                .execution_options(populate_existing=True)
            )
            record_db_operation("read")
            return result.scalar_one_or_none()

    async def update_status(
        self,
        booking_id: int,
        expected_status: str,
        new_status: str,
        timestamp: datetime,
    ) -> bool:
        async with translate_store_errors("booking_update_status"):
            result = await self.session.execute(
                update(Booking)
                .where(Booking.id == booking_id, Booking.status == expected_status)
                .values(status=new_status, cancelled_at=timestamp)
                .execution_options(synchronize_session=False)
            )
            record_db_operation("write")
            return result.rowcount == 1

    async def list_by_user(self, user_id: int) -> list[Booking]:
        async with translate_store_errors("booking_list_by_user"):
            result = await self.session.execute(
                select(Booking)
                .options(joinedload(Booking.event))
                .where(Booking.user_id == user_id)
                .order_by(Booking.booked_at.desc(), Booking.id.desc())
                .execution_options(populate_existing=True)
            )
            record_db_operation("read")
            return list(result.scalars().all())


class SqlUnitOfWork:
    """Commit/rollback on the shared session, with connectivity errors mapped."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def commit(self) -> None:
        async with translate_store_errors("commit"):
            await self.session.commit()

    async def rollback(self) -> None:
        async with translate_store_errors("rollback"):
            await self.session.rollback()
