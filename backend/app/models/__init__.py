from app.models.user import User
from app.models.event import Event, EventStatus
from app.models.booking import Booking, BookingStatus

__all__ = ["User", "Event", "EventStatus", "Booking", "BookingStatus"]
