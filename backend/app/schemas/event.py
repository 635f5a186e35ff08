"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional
from pydantic import BaseModel, Field


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: datetime
    location: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    total_tickets: int = Field(..., ge=0, le=100000)


class EventUpdate(BaseModel):
    """Partial update; which fields a caller may send depends on their role."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=10, decimal_places=2)

    model_config = {"extra": "forbid"}


class EventStatusUpdate(BaseModel):
    status: Literal["approved", "declined"]


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    date: datetime
    location: Optional[str]
    category: Optional[str]
    price: Decimal
    total_tickets: int
    remaining_tickets: int
    status: str
    organizer_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False
