"""
Role-based capabilities.

Every authorization decision goes through `has_capability`; handlers never
compare role strings directly. Field-level event edit rights live here too.
"""

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class Capability(str, Enum):
    BOOK_TICKETS = "book_tickets"
    MANAGE_ANY_BOOKING = "manage_any_booking"
    CREATE_EVENT = "create_event"
    EDIT_OWN_EVENT = "edit_own_event"
    EDIT_ANY_EVENT = "edit_any_event"
    REVIEW_EVENTS = "review_events"
    VIEW_ALL_EVENTS = "view_all_events"
    MANAGE_USERS = "manage_users"


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: frozenset({Capability.BOOK_TICKETS}),
    Role.ORGANIZER: frozenset({
        Capability.BOOK_TICKETS,
        Capability.CREATE_EVENT,
        Capability.EDIT_OWN_EVENT,
    }),
    Role.ADMIN: frozenset(Capability),
}

# Event fields each capability may change through update_event.
# Ticket counts are never editable; only bookings move inventory.
ORGANIZER_EVENT_FIELDS = frozenset({"title", "description", "date", "location", "category"})
ADMIN_EVENT_FIELDS = ORGANIZER_EVENT_FIELDS | {"price"}


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as resolved from the request token."""

    user_id: int
    role: Role


def has_capability(role: Role | str, capability: Capability) -> bool:
    try:
        role = Role(role)
    except ValueError:
        return False
    return capability in ROLE_CAPABILITIES[role]


def can_manage_booking(identity: Identity, owner_id: int) -> bool:
    """Owners act on their own bookings; admins act on any."""
    return identity.user_id == owner_id or has_capability(
        identity.role, Capability.MANAGE_ANY_BOOKING
    )


def can_manage_event(identity: Identity, organizer_id: int) -> bool:
    if has_capability(identity.role, Capability.EDIT_ANY_EVENT):
        return True
    return identity.user_id == organizer_id and has_capability(
        identity.role, Capability.EDIT_OWN_EVENT
    )


def editable_event_fields(identity: Identity) -> frozenset[str]:
    if has_capability(identity.role, Capability.EDIT_ANY_EVENT):
        return ADMIN_EVENT_FIELDS
    if has_capability(identity.role, Capability.EDIT_OWN_EVENT):
        return ORGANIZER_EVENT_FIELDS
    return frozenset()
