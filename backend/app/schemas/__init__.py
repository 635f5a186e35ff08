from app.schemas.user import UserCreate, UserResponse, UserLogin, UserUpdate, UserRoleUpdate, Token
from app.schemas.event import (
    EventCreate, EventUpdate, EventStatusUpdate, EventResponse, EventListResponse,
)
from app.schemas.booking import (
    BookingCreate, BookingResponse, BookingDetailResponse, BookingCancelResponse, EventSnapshot,
)

__all__ = [
    "UserCreate", "UserResponse", "UserLogin", "UserUpdate", "UserRoleUpdate", "Token",
    "EventCreate", "EventUpdate", "EventStatusUpdate", "EventResponse", "EventListResponse",
    "BookingCreate", "BookingResponse", "BookingDetailResponse", "BookingCancelResponse",
    "EventSnapshot",
]
