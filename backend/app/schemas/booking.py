"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from app.core.config import get_settings

settings = get_settings()


class BookingCreate(BaseModel):
    event_id: int
    quantity: int = Field(default=1, gt=0, le=settings.MAX_TICKETS_PER_BOOKING)


class BookingResponse(BaseModel):
    id: int
    user_id: int
    event_id: int
    quantity: int
    total_price: Decimal
    status: str
    booked_at: datetime
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class EventSnapshot(BaseModel):
    """Display fields of the booked event."""

    id: int
    title: str
    date: datetime
    location: Optional[str]
    price: Decimal

    model_config = {"from_attributes": True}


class BookingDetailResponse(BookingResponse):
    event: Optional[EventSnapshot] = None


class BookingCancelResponse(BaseModel):
    message: str
    booking_id: int
    status: str
    cancelled_at: Optional[datetime]
