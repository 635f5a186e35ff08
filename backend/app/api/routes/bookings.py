"""
Booking endpoints with concurrency-safe ticket reservation.
"""

from fastapi import APIRouter, Depends, status

from app.api.deps import get_booking_service
from app.core.permissions import Capability, Identity
from app.core.security import get_current_identity, require_capability
from app.schemas.booking import (
    BookingCreate, BookingResponse, BookingDetailResponse, BookingCancelResponse,
)
from app.services.booking_service import BookingService
from app.services.cache_service import invalidate_event_cache

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    caller: Identity = Depends(require_capability(Capability.BOOK_TICKETS)),
    service: BookingService = Depends(get_booking_service),
):
    """
    Book tickets for an approved event.

    The decrement of remaining tickets is a single guarded UPDATE, so
    concurrent requests can never oversell. Returns 409 when not enough
    tickets remain or the event is not open for booking.
    """
    booking = await service.create_booking(
        caller.user_id, booking_data.event_id, booking_data.quantity
    )
    # Committed by now; remaining_tickets changed so listings are stale
    await invalidate_event_cache()
    return booking


@router.get("/", response_model=list[BookingDetailResponse])
async def list_user_bookings(
    caller: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
):
    """Get all bookings for the authenticated user, with event details."""
    return await service.get_bookings_for_user(caller.user_id)


@router.get("/{booking_id}", response_model=BookingDetailResponse)
async def get_booking(
    booking_id: int,
    caller: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
):
    """Get one booking. Owners see their own; admins see any."""
    return await service.get_booking(caller, booking_id)


@router.delete("/{booking_id}", response_model=BookingCancelResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    caller: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
):
    """Cancel a booking and release its tickets back to the event."""
    booking = await service.cancel_booking(caller, booking_id)
    await invalidate_event_cache()
    return BookingCancelResponse(
        message="Booking cancelled and tickets restored",
        booking_id=booking.id,
        status=booking.status,
        cancelled_at=booking.cancelled_at,
    )
