"""
Event endpoints with Redis caching on the public listing.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.permissions import Capability, Identity
from app.core.security import get_current_identity, require_capability
from app.db.session import get_db
from app.models.event import EventStatus
from app.schemas.event import (
    EventCreate, EventUpdate, EventStatusUpdate, EventResponse, EventListResponse,
)
from app.services import event_service
from app.services.cache_service import get_cached_events, set_cached_events, invalidate_event_cache

logger = get_logger(__name__)
router = APIRouter(prefix="/events", tags=["Events"])


def _list_response(events, total: int, page: int, page_size: int) -> dict:
    return {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    organizer: Identity = Depends(require_capability(Capability.CREATE_EVENT)),
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. It stays pending until an admin approves it."""
    event = await event_service.create_event(db, event_data, organizer)
    await db.commit()
    await invalidate_event_cache()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    """
    List approved events with pagination.
    Results are cached in Redis; the cache is invalidated whenever events
    change or tickets are booked or released.
    """
    cached = await get_cached_events(page, page_size, upcoming_only)
    if cached:
        logger.info("events_list_cache_hit", page=page)
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await event_service.list_events(db, page, page_size, upcoming_only)
    response_data = _list_response(events, total, page, page_size)
    await set_cached_events(page, page_size, upcoming_only, response_data)

    return EventListResponse(**response_data)


@router.get("/all", response_model=EventListResponse)
async def list_all_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    event_status: Optional[EventStatus] = Query(None, alias="status"),
    admin: Identity = Depends(require_capability(Capability.VIEW_ALL_EVENTS)),
    db: AsyncSession = Depends(get_db),
):
    """List every event, including pending and declined ones (admin)."""
    events, total = await event_service.list_all_events(db, page, page_size, event_status)
    return EventListResponse(**_list_response(events, total, page, page_size))


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Not cached (needs real-time ticket counts)."""
    return await event_service.get_event(db, event_id)


@router.put("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    event_data: EventUpdate,
    caller: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Edit an event. Allowed fields depend on the caller's role."""
    event = await event_service.update_event(db, event_id, event_data, caller)
    await db.commit()
    await invalidate_event_cache()
    return event


@router.put("/{event_id}/status", response_model=EventResponse)
async def update_event_status_endpoint(
    event_id: int,
    status_data: EventStatusUpdate,
    admin: Identity = Depends(require_capability(Capability.REVIEW_EVENTS)),
    db: AsyncSession = Depends(get_db),
):
    """Approve or decline an event (admin)."""
    event = await event_service.update_event_status(
        db, event_id, EventStatus(status_data.status), admin
    )
    await db.commit()
    await invalidate_event_cache()
    return event


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_endpoint(
    event_id: int,
    caller: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Delete an event that has no bookings (owner organizer or admin)."""
    await event_service.delete_event(db, event_id, caller)
    await db.commit()
    await invalidate_event_cache()
