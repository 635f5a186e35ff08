"""
Service interfaces for dependency inversion.
Allows swapping persistence implementations without changing business logic.
"""

from .stores import BookingStore, EventInventory, EventStore, NewBooking, UnitOfWork

__all__ = ["BookingStore", "EventInventory", "EventStore", "NewBooking", "UnitOfWork"]
