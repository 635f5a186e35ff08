"""
Retry and rollback behaviour of BookingService, driven by in-memory stores
that can be told to fail or stall.
"""

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from app.core.exceptions import InsufficientInventory, Unavailable
from app.core.permissions import Identity, Role
from app.models.booking import Booking, BookingStatus
from app.models.event import EventStatus
from app.services.booking_service import BookingService
from app.services.interfaces.stores import (
    BookingStore,
    EventInventory,
    EventStore,
    NewBooking,
)

FIXED_NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeUnitOfWork:
    """
    Buffers writes until commit. A commit can be made to fail before applying
    (failing_commits), to apply and then fail (lost_acks), or to stall.
    """

    def __init__(self, failing_commits: int = 0, lost_acks: int = 0, commit_stall: float = 0):
        self.failing_commits = failing_commits
        self.lost_acks = lost_acks
        self.commit_stall = commit_stall
        self.pending = []
        self.commit_calls = 0
        self.commits = 0
        self.rollbacks = 0

    def stage(self, apply):
        self.pending.append(apply)

    async def commit(self) -> None:
        self.commit_calls += 1
        if self.commit_stall:
            await asyncio.sleep(self.commit_stall)
        if self.failing_commits:
            self.failing_commits -= 1
            raise Unavailable("Database unavailable during commit")
        for apply in self.pending:
            apply()
        self.pending.clear()
        self.commits += 1
        if self.lost_acks:
            self.lost_acks -= 1
            raise Unavailable("Connection lost during commit")

    async def rollback(self) -> None:
        self.pending.clear()
        self.rollbacks += 1


class FakeEventStore(EventStore):

    def __init__(
        self,
        uow: FakeUnitOfWork,
        event: EventInventory,
        stall_seconds: float = 0,
        failing_reads: int = 0,
    ):
        self.uow = uow
        self.events = {event.id: event}
        self.stall_seconds = stall_seconds
        self.failing_reads = failing_reads

    async def get(self, event_id: int) -> Optional[EventInventory]:
        if self.stall_seconds:
            await asyncio.sleep(self.stall_seconds)
        if self.failing_reads:
            self.failing_reads -= 1
            raise Unavailable("Database unavailable during event_get")
        return self.events.get(event_id)

    async def conditional_decrement(self, event_id: int, quantity: int) -> Optional[EventInventory]:
        event = self.events.get(event_id)
        if (
            event is None
            or event.status != EventStatus.APPROVED.value
            or event.remaining_tickets < quantity
        ):
            return None
        updated = replace(event, remaining_tickets=event.remaining_tickets - quantity)
        self.uow.stage(lambda: self.events.__setitem__(event_id, updated))
        return updated

    async def increment_capped(self, event_id: int, quantity: int) -> Optional[EventInventory]:
        event = self.events.get(event_id)
        if event is None:
            return None
        updated = replace(
            event,
            remaining_tickets=min(event.remaining_tickets + quantity, event.total_tickets),
        )
        self.uow.stage(lambda: self.events.__setitem__(event_id, updated))
        return updated


class FakeBookingStore(BookingStore):

    def __init__(self, uow: FakeUnitOfWork, failing_writes: int = 0):
        self.uow = uow
        self.bookings = {}
        self.failing_writes = failing_writes
        self._next_id = 1

    def _maybe_fail(self, operation: str):
        if self.failing_writes:
            self.failing_writes -= 1
            raise Unavailable(f"Database connection lost during {operation}")

    async def create(self, booking: NewBooking) -> Booking:
        self._maybe_fail("booking_create")
        record = Booking(
            id=self._next_id,
            user_id=booking.user_id,
            event_id=booking.event_id,
            quantity=booking.quantity,
            total_price=booking.total_price,
            status=BookingStatus.ACTIVE.value,
            booked_at=booking.booked_at,
        )
        self._next_id += 1
        self.uow.stage(lambda: self.bookings.__setitem__(record.id, record))
        return record

    async def get(self, booking_id: int) -> Optional[Booking]:
        return self.bookings.get(booking_id)

    async def update_status(self, booking_id, expected_status, new_status, timestamp) -> bool:
        self._maybe_fail("booking_update_status")
        booking = self.bookings.get(booking_id)
        if booking is None or booking.status != expected_status:
            return False

        def apply():
            booking.status = new_status
            booking.cancelled_at = timestamp

        self.uow.stage(apply)
        return True

    async def list_by_user(self, user_id: int) -> list[Booking]:
        return [b for b in self.bookings.values() if b.user_id == user_id]


def build(
    failing_commits=0,
    lost_acks=0,
    commit_stall=0,
    stall_seconds=0,
    failing_reads=0,
    failing_writes=0,
    **service_kwargs,
):
    uow = FakeUnitOfWork(
        failing_commits=failing_commits, lost_acks=lost_acks, commit_stall=commit_stall
    )
    event = EventInventory(
        id=1,
        status=EventStatus.APPROVED.value,
        price=Decimal("12.50"),
        remaining_tickets=10,
        total_tickets=10,
    )
    events = FakeEventStore(
        uow, event, stall_seconds=stall_seconds, failing_reads=failing_reads
    )
    bookings = FakeBookingStore(uow, failing_writes=failing_writes)
    service_kwargs.setdefault("max_attempts", 3)
    service_kwargs.setdefault("retry_backoff", 0)
    service = BookingService(
        events=events,
        bookings=bookings,
        uow=uow,
        clock=lambda: FIXED_NOW,
        **service_kwargs,
    )
    return service, events, bookings, uow


@pytest.mark.asyncio
async def test_transient_read_failure_is_retried():
    service, events, bookings, uow = build(failing_reads=2)

    booking = await service.create_booking(user_id=7, event_id=1, quantity=2)

    assert booking.total_price == Decimal("25.00")
    assert booking.booked_at == FIXED_NOW
    assert uow.rollbacks == 2
    assert uow.commits == 1
    assert events.events[1].remaining_tickets == 8
    assert list(bookings.bookings) == [booking.id]


@pytest.mark.asyncio
async def test_write_failure_after_reserve_is_retried_from_scratch():
    """The staged decrement of a failed attempt never reaches the store."""
    service, events, bookings, uow = build(failing_writes=1)

    booking = await service.create_booking(user_id=7, event_id=1, quantity=3)

    assert uow.rollbacks == 1
    assert events.events[1].remaining_tickets == 7
    assert list(bookings.bookings) == [booking.id]


@pytest.mark.asyncio
async def test_exhausted_retries_leave_no_trace():
    service, events, bookings, uow = build(failing_writes=5)

    with pytest.raises(Unavailable):
        await service.create_booking(user_id=7, event_id=1, quantity=2)

    assert uow.rollbacks == 3
    assert uow.commit_calls == 0
    assert events.events[1].remaining_tickets == 10
    assert bookings.bookings == {}


@pytest.mark.asyncio
async def test_failed_commit_is_not_retried():
    service, events, bookings, uow = build(failing_commits=1)

    with pytest.raises(Unavailable):
        await service.create_booking(user_id=7, event_id=1, quantity=2)

    assert uow.commit_calls == 1
    assert uow.rollbacks == 1
    assert events.events[1].remaining_tickets == 10
    assert bookings.bookings == {}


@pytest.mark.asyncio
async def test_lost_commit_acknowledgement_books_once():
    """Commit lands but the caller hears Unavailable; nothing is applied twice."""
    service, events, bookings, uow = build(lost_acks=1)

    with pytest.raises(Unavailable):
        await service.create_booking(user_id=7, event_id=1, quantity=2)

    assert uow.commit_calls == 1
    assert len(bookings.bookings) == 1
    assert events.events[1].remaining_tickets == 8


@pytest.mark.asyncio
async def test_stalled_commit_is_not_retried():
    service, events, bookings, uow = build(commit_stall=0.5, operation_timeout=0.01)

    with pytest.raises(Unavailable):
        await service.create_booking(user_id=7, event_id=1, quantity=1)

    assert uow.commit_calls == 1
    assert uow.rollbacks == 1
    assert bookings.bookings == {}


@pytest.mark.asyncio
async def test_stalled_store_times_out_as_unavailable():
    service, events, bookings, uow = build(
        stall_seconds=0.5, operation_timeout=0.01, max_attempts=2
    )

    with pytest.raises(Unavailable):
        await service.create_booking(user_id=7, event_id=1, quantity=1)

    assert uow.rollbacks == 2
    assert events.events[1].remaining_tickets == 10


@pytest.mark.asyncio
async def test_business_errors_are_not_retried():
    service, events, bookings, uow = build()

    with pytest.raises(InsufficientInventory):
        await service.create_booking(user_id=7, event_id=1, quantity=11)

    assert uow.rollbacks == 1
    assert uow.commit_calls == 0


@pytest.mark.asyncio
async def test_cancel_retries_write_then_restores_once():
    service, events, bookings, uow = build()
    booking = await service.create_booking(user_id=7, event_id=1, quantity=4)
    assert events.events[1].remaining_tickets == 6

    bookings.failing_writes = 1
    cancelled = await service.cancel_booking(Identity(user_id=7, role=Role.USER), booking.id)

    assert cancelled.status == BookingStatus.CANCELLED.value
    assert cancelled.cancelled_at == FIXED_NOW
    assert events.events[1].remaining_tickets == 10
    assert uow.rollbacks == 1


@pytest.mark.asyncio
async def test_cancel_result_built_without_rereading():
    """The cancelled booking comes from the transaction, not a follow-up read."""
    service, events, bookings, uow = build()
    booking = await service.create_booking(user_id=7, event_id=1, quantity=2)

    reads = []
    original_get = bookings.get

    async def counting_get(booking_id):
        reads.append(booking_id)
        return await original_get(booking_id)

    bookings.get = counting_get
    cancelled = await service.cancel_booking(Identity(user_id=7, role=Role.USER), booking.id)

    assert reads == [booking.id]
    assert cancelled.id == booking.id
    assert cancelled.quantity == 2
    assert cancelled.status == BookingStatus.CANCELLED.value
