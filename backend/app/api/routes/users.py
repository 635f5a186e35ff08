"""
User endpoints: own profile, own bookings/events, and admin user management.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_service
from app.core.permissions import Capability, Identity
from app.core.security import get_current_identity, require_capability
from app.db.session import get_db
from app.schemas.booking import BookingDetailResponse
from app.schemas.event import EventResponse
from app.schemas.user import UserResponse, UserUpdate, UserRoleUpdate
from app.services import user_service
from app.services.booking_service import BookingService
from app.services.event_service import list_organizer_events

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("/me", response_model=UserResponse)
async def get_profile(
    caller: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user(db, caller.user_id)


@router.put("/me", response_model=UserResponse)
async def update_profile(
    user_data: UserUpdate,
    caller: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_profile(db, caller.user_id, user_data)


@router.get("/me/bookings", response_model=list[BookingDetailResponse])
async def get_my_bookings(
    caller: Identity = Depends(get_current_identity),
    service: BookingService = Depends(get_booking_service),
):
    return await service.get_bookings_for_user(caller.user_id)


@router.get("/me/events", response_model=list[EventResponse])
async def get_my_events(
    organizer: Identity = Depends(require_capability(Capability.CREATE_EVENT)),
    db: AsyncSession = Depends(get_db),
):
    """Events organized by the caller, in any status."""
    return await list_organizer_events(db, organizer.user_id)


@router.get("/", response_model=list[UserResponse])
async def list_users(
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    admin: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.list_users(db, page, page_size)


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    admin: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.get_user(db, user_id)


@router.put("/{user_id}/role", response_model=UserResponse)
async def update_user_role(
    user_id: int,
    role_data: UserRoleUpdate,
    admin: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    return await user_service.update_user_role(db, user_id, role_data.role, admin)


@router.delete("/{user_id}", response_model=UserResponse, status_code=status.HTTP_200_OK)
async def deactivate_user(
    user_id: int,
    admin: Identity = Depends(require_capability(Capability.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db),
):
    """Deactivate an account. Its bookings are kept."""
    return await user_service.deactivate_user(db, user_id, admin)
