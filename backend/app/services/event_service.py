"""
Event service handling the event catalogue: creation, listing, edits,
approval and deletion.

Ticket inventory is set once here (remaining_tickets = total_tickets on
creation) and afterwards only moved by the booking service. Edits go through
the ORM, which emits UPDATEs for the changed columns only, so they never
overwrite a concurrent inventory change.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden, InvalidRequest, InvalidState, NotFound
from app.core.logging import get_logger
from app.core.permissions import Identity, can_manage_event, editable_event_fields
from app.models.booking import Booking
from app.models.event import Event, EventStatus
from app.schemas.event import EventCreate, EventUpdate

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def create_event(db: AsyncSession, event_data: EventCreate, organizer: Identity) -> Event:
    """Create a pending event with its full ticket inventory available."""
    if _as_utc(event_data.date) <= datetime.now(timezone.utc):
        raise InvalidRequest("Event date must be in the future")

    event = Event(
        title=event_data.title,
        description=event_data.description,
        date=event_data.date,
        location=event_data.location,
        category=event_data.category,
        price=event_data.price,
        total_tickets=event_data.total_tickets,
        remaining_tickets=event_data.total_tickets,  # All tickets available initially
        status=EventStatus.PENDING.value,
        organizer_id=organizer.user_id,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info(
        "event_created",
        event_id=event.id,
        title=event.title,
        tickets=event.total_tickets,
        organizer_id=organizer.user_id,
    )
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()

    if not event:
        raise NotFound(f"Event {event_id} not found", event_id=event_id)
    return event


async def _paginate(db: AsyncSession, query, page: int, page_size: int) -> tuple[list[Event], int]:
    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    result = await db.execute(
        query
        .order_by(Event.date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = True,
) -> tuple[list[Event], int]:
    """
    Public listing: approved events only, paginated.
    Uses the ix_events_status_date index.
    """
    query = select(Event).where(Event.status == EventStatus.APPROVED.value)

    if upcoming_only:
        query = query.where(Event.date >= datetime.now(timezone.utc))

    return await _paginate(db, query, page, page_size)


async def list_all_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    status: Optional[EventStatus] = None,
) -> tuple[list[Event], int]:
    """Admin listing: every event regardless of status."""
    query = select(Event)
    if status is not None:
        query = query.where(Event.status == status.value)
    return await _paginate(db, query, page, page_size)


async def list_organizer_events(db: AsyncSession, organizer_id: int) -> list[Event]:
    result = await db.execute(
        select(Event)
        .where(Event.organizer_id == organizer_id)
        .order_by(Event.date.desc())
    )
    return list(result.scalars().all())


async def update_event(
    db: AsyncSession,
    event_id: int,
    event_data: EventUpdate,
    caller: Identity,
) -> Event:
    """
    Apply a partial update. Organizers edit display fields of their own
    events; admins may also change the price. Existing bookings keep the
    total_price they were made at.
    """
    changes = event_data.model_dump(exclude_unset=True)
    if not changes:
        raise InvalidRequest("No fields to update")

    event = await get_event(db, event_id)
    if not can_manage_event(caller, event.organizer_id):
        raise Forbidden("Not authorized to update this event", event_id=event_id)

    disallowed = sorted(set(changes) - editable_event_fields(caller))
    if disallowed:
        raise Forbidden(
            f"Not authorized to update fields: {', '.join(disallowed)}", event_id=event_id
        )

    if "date" in changes and _as_utc(changes["date"]) <= datetime.now(timezone.utc):
        raise InvalidRequest("Event date must be in the future")

    for field, value in changes.items():
        setattr(event, field, value)
    await db.flush()
    await db.refresh(event)

    logger.info("event_updated", event_id=event_id, fields=sorted(changes), user_id=caller.user_id)
    return event


async def update_event_status(
    db: AsyncSession,
    event_id: int,
    status: EventStatus,
    caller: Identity,
) -> Event:
    """Approve or decline an event (admin workflow)."""
    if status not in (EventStatus.APPROVED, EventStatus.DECLINED):
        raise InvalidRequest("Invalid status")

    event = await get_event(db, event_id)
    previous = event.status
    event.status = status.value
    await db.flush()
    await db.refresh(event)

    logger.info(
        "event_status_changed",
        event_id=event_id,
        previous=previous,
        status=status.value,
        admin_id=caller.user_id,
    )
    return event


async def delete_event(db: AsyncSession, event_id: int, caller: Identity) -> None:
    """
    Delete an event. Events that have bookings are kept: bookings are never
    deleted and must keep pointing at their event.
    """
    event = await get_event(db, event_id)
    if not can_manage_event(caller, event.organizer_id):
        raise Forbidden("Not authorized to delete this event", event_id=event_id)

    booking_count = (
        await db.execute(
            select(func.count()).select_from(Booking).where(Booking.event_id == event_id)
        )
    ).scalar()
    if booking_count:
        raise InvalidState("Event has bookings and cannot be deleted", event_id=event_id)

    await db.delete(event)
    try:
        await db.flush()
    except IntegrityError as e:
        # A booking landed between the count and the delete
        raise InvalidState("Event has bookings and cannot be deleted", event_id=event_id) from e

    logger.info("event_deleted", event_id=event_id, user_id=caller.user_id)
