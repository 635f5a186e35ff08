"""
Booking service with concurrency-safe ticket reservation.

CONCURRENCY STRATEGY: Guarded Single-Statement Updates
======================================================

Problem:
  Two users try to book the last ticket simultaneously.
  Both read remaining_tickets=1, both write 0, both succeed.
  Result: Oversell. The same race on cancellation restores tickets twice.

Solution:
  Inventory and booking status only change through conditional UPDATEs
  that the database evaluates atomically (see app.infrastructure.sql_stores):

  Booking:
    1. Read the event and check preconditions (exists, approved, enough left)
    2. UPDATE events SET remaining_tickets = remaining_tickets - N
       WHERE id = :event_id AND status = 'approved' AND remaining_tickets >= N
    3. If no row matched, someone else got there first -> re-read to report
       why (gone, no longer approved, sold out) and roll back
    4. INSERT the booking, COMMIT

  Cancellation:
    1. Read the booking and check preconditions (exists, owner/admin, active)
    2. UPDATE bookings SET status = 'cancelled' WHERE id = :id AND status = 'active'
    3. If no row matched, a concurrent cancellation won -> roll back
    4. UPDATE events SET remaining_tickets = min(remaining + N, total), COMMIT

  The pre-checks in step 1 only produce friendly errors; correctness comes
  from the guards. Both writes of an operation share one transaction, so
  either both land or neither does. DB CHECK constraints are the final
  safety net (0 <= remaining_tickets <= total_tickets).

  Transient store failures (Unavailable, or the per-attempt timeout) before
  COMMIT roll back and retry with exponential backoff, up to
  BOOKING_MAX_ATTEMPTS. A failure during COMMIT is never retried: the
  database may have applied it, and a second attempt would book twice.
  Callers get BookingRecord snapshots, so a later rollback on the same
  session cannot expire a result they already hold.
  Nothing outside the database happens inside the transaction; cache
  invalidation runs in the route after the service returns.
"""

import asyncio
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional, TypeVar

from app.core.config import get_settings
from app.core.exceptions import (
    Forbidden,
    InsufficientInventory,
    InvalidRequest,
    InvalidState,
    NotFound,
    TicketingError,
    Unavailable,
)
from app.core.logging import get_logger
from app.core.metrics import (
    booking_latency,
    record_booking_attempt,
    record_cancellation,
    record_db_retry,
    record_guard_rejection,
    record_tickets,
)
from app.core.permissions import Identity, can_manage_booking
from app.models.booking import Booking, BookingStatus
from app.models.event import EventStatus
from app.services.interfaces.stores import (
    BookingRecord,
    BookingStore,
    EventStore,
    NewBooking,
    UnitOfWork,
)

logger = get_logger(__name__)

T = TypeVar("T")

_OUTCOME_LABELS = {
    NotFound: "not_found",
    Forbidden: "forbidden",
    InvalidState: "invalid_state",
    InsufficientInventory: "insufficient",
    InvalidRequest: "invalid_request",
    Unavailable: "unavailable",
}


def _outcome(exc: Exception) -> str:
    return _OUTCOME_LABELS.get(type(exc), "error")


class BookingService:
    """Sole writer of event inventory and booking lifecycle."""

    def __init__(
        self,
        events: EventStore,
        bookings: BookingStore,
        uow: UnitOfWork,
        max_attempts: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        operation_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        settings = get_settings()
        self.events = events
        self.bookings = bookings
        self.uow = uow
        self.max_attempts = max_attempts or settings.BOOKING_MAX_ATTEMPTS
        self.retry_backoff = (
            settings.BOOKING_RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff
        )
        self.operation_timeout = operation_timeout or settings.DB_OPERATION_TIMEOUT_SECONDS
        self.clock = clock

    async def create_booking(self, user_id: int, event_id: int, quantity: int) -> BookingRecord:
        """
        Reserve `quantity` tickets for the user.

        Raises:
            InvalidRequest: quantity is not a positive integer
            NotFound: event does not exist
            InvalidState: event is not approved
            InsufficientInventory: fewer than `quantity` tickets remain
            Unavailable: the store stayed unreachable after all retries, or the
                commit failed with an unknown outcome
        """
        start = time.perf_counter()
        try:
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
                raise InvalidRequest("Quantity must be a positive integer", quantity=quantity)

            booking = await self._run_atomic(
                "create_booking",
                lambda: self._reserve(user_id, event_id, quantity),
                event_id=event_id,
            )
        except TicketingError as e:
            record_booking_attempt(_outcome(e))
            raise
        except Exception:
            record_booking_attempt("error")
            raise
        finally:
            booking_latency.observe(time.perf_counter() - start)

        record_booking_attempt("success")
        record_tickets("reserved", quantity)
        logger.info(
            "booking_created",
            booking_id=booking.id,
            user_id=user_id,
            event_id=event_id,
            quantity=quantity,
            total_price=str(booking.total_price),
        )
        return booking

    async def cancel_booking(self, caller: Identity, booking_id: int) -> BookingRecord:
        """
        Cancel an active booking and return its tickets to the event.

        Raises:
            NotFound: booking does not exist
            Forbidden: caller is neither the owner nor an admin
            InvalidState: booking is already cancelled
            Unavailable: the store stayed unreachable after all retries, or the
                commit failed with an unknown outcome
        """
        try:
            booking = await self._run_atomic(
                "cancel_booking",
                lambda: self._release(caller, booking_id),
                booking_id=booking_id,
            )
        except TicketingError as e:
            record_cancellation(_outcome(e))
            raise
        except Exception:
            record_cancellation("error")
            raise

        record_cancellation("success")
        record_tickets("released", booking.quantity)
        logger.info(
            "booking_cancelled",
            booking_id=booking.id,
            user_id=caller.user_id,
            event_id=booking.event_id,
            tickets_restored=booking.quantity,
        )
        return booking

    async def get_bookings_for_user(self, user_id: int) -> list[Booking]:
        """All bookings owned by the user, newest first, each with its event."""
        return await self.bookings.list_by_user(user_id)

    async def get_booking(self, caller: Identity, booking_id: int) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        if not can_manage_booking(caller, booking.user_id):
            raise Forbidden("Not allowed to view this booking", booking_id=booking_id)
        return booking

    async def _reserve(self, user_id: int, event_id: int, quantity: int) -> BookingRecord:
        event = await self.events.get(event_id)
        if event is None:
            raise NotFound(f"Event {event_id} not found", event_id=event_id)
        if event.status != EventStatus.APPROVED.value:
            raise InvalidState(
                "Event is not open for booking", event_id=event_id, event_status=event.status
            )
        if quantity > event.remaining_tickets:
            raise InsufficientInventory(
                f"Not enough tickets. Requested: {quantity}, Available: {event.remaining_tickets}",
                event_id=event_id,
            )

        reserved = await self.events.conditional_decrement(event_id, quantity)
        if reserved is None:
            await self._explain_lost_reservation(event_id, quantity)

        booking = await self.bookings.create(
            NewBooking(
                user_id=user_id,
                event_id=event_id,
                quantity=quantity,
                total_price=reserved.price * quantity,
                booked_at=self.clock(),
            )
        )
        return BookingRecord.from_booking(booking)

    async def _explain_lost_reservation(self, event_id: int, quantity: int) -> None:
        """The guarded decrement matched nothing; raise the error that applies now."""
        current = await self.events.get(event_id)
        record_guard_rejection("reserve")
        logger.info("booking_guard_rejected", event_id=event_id, requested=quantity)
        if current is None:
            raise NotFound(f"Event {event_id} not found", event_id=event_id)
        if current.status != EventStatus.APPROVED.value:
            raise InvalidState(
                "Event is not open for booking", event_id=event_id, event_status=current.status
            )
        raise InsufficientInventory(
            f"Not enough tickets. Requested: {quantity}, Available: {current.remaining_tickets}",
            event_id=event_id,
        )

    async def _release(self, caller: Identity, booking_id: int) -> BookingRecord:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise NotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        if not can_manage_booking(caller, booking.user_id):
            raise Forbidden("Not allowed to cancel this booking", booking_id=booking_id)
        if booking.status != BookingStatus.ACTIVE.value:
            raise InvalidState("Booking is already cancelled", booking_id=booking_id)

        cancelled_at = self.clock()
        transitioned = await self.bookings.update_status(
            booking_id,
            BookingStatus.ACTIVE.value,
            BookingStatus.CANCELLED.value,
            cancelled_at,
        )
        if not transitioned:
            record_guard_rejection("cancel")
            raise InvalidState("Booking is already cancelled", booking_id=booking_id)

        restored = await self.events.increment_capped(booking.event_id, booking.quantity)
        if restored is None:
            logger.warning(
                "cancel_event_missing", booking_id=booking_id, event_id=booking.event_id
            )
        return replace(
            BookingRecord.from_booking(booking),
            status=BookingStatus.CANCELLED.value,
            cancelled_at=cancelled_at,
        )

    async def _run_atomic(
        self,
        operation: str,
        work: Callable[[], Awaitable[T]],
        **log_context,
    ) -> T:
        """
        Run one transactional unit and commit it, rolling back on any failure.
        Unavailable and timeouts raised by the unit are retried; a failed
        commit is not.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await asyncio.wait_for(work(), timeout=self.operation_timeout)
            except asyncio.TimeoutError:
                await self._rollback(operation)
                error = Unavailable(f"Timed out during {operation}")
            except Unavailable as e:
                await self._rollback(operation)
                error = e
            except Exception:
                await self._rollback(operation)
                raise
            else:
                await self._commit(operation, **log_context)
                return result

            if attempt == self.max_attempts:
                logger.error(
                    "store_retries_exhausted",
                    operation=operation,
                    attempts=attempt,
                    **log_context,
                )
                raise error

            record_db_retry()
            delay = self.retry_backoff * (2 ** (attempt - 1))
            logger.info(
                "store_retry",
                operation=operation,
                attempt=attempt,
                delay_s=delay,
                reason=error.message,
                **log_context,
            )
            await asyncio.sleep(delay)

    async def _commit(self, operation: str, **log_context) -> None:
        """
        Commit once. If the store drops or stalls mid-commit the outcome is
        unknown, so the caller gets Unavailable and nothing is re-applied.
        """
        try:
            await asyncio.wait_for(self.uow.commit(), timeout=self.operation_timeout)
        except asyncio.TimeoutError:
            await self._rollback(operation)
            logger.error(
                "commit_outcome_unknown", operation=operation, reason="timeout", **log_context
            )
            raise Unavailable(f"Timed out committing {operation}")
        except Unavailable as e:
            await self._rollback(operation)
            logger.error(
                "commit_outcome_unknown", operation=operation, reason=e.message, **log_context
            )
            raise
        except Exception:
            await self._rollback(operation)
            raise

    async def _rollback(self, operation: str) -> None:
        try:
            await self.uow.rollback()
        except Unavailable as e:
            # The original failure is what the caller needs to see
            logger.warning("rollback_failed", operation=operation, error=e.message)
