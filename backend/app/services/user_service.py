"""
User profile and admin user-management operations.

Users are never hard-deleted: their bookings are audit records, so
"deleting" a user deactivates the account.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidRequest, InvalidState, NotFound
from app.core.logging import get_logger
from app.core.permissions import Identity, Role
from app.models.user import User
from app.schemas.user import UserUpdate
from app.services.auth_service import ensure_unique

logger = get_logger(__name__)


async def get_user(db: AsyncSession, user_id: int) -> User:
    result = await db.execute(
        select(User).where(User.id == user_id).execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if not user:
        raise NotFound(f"User {user_id} not found", user_id=user_id)
    return user


async def list_users(db: AsyncSession, page: int = 1, page_size: int = 50) -> list[User]:
    result = await db.execute(
        select(User).order_by(User.id.asc()).offset((page - 1) * page_size).limit(page_size)
    )
    return list(result.scalars().all())


async def update_profile(db: AsyncSession, user_id: int, user_data: UserUpdate) -> User:
    changes = user_data.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise InvalidRequest("No fields to update")

    await ensure_unique(
        db,
        email=changes.get("email"),
        username=changes.get("username"),
        exclude_user_id=user_id,
    )

    user = await get_user(db, user_id)
    for field, value in changes.items():
        setattr(user, field, value)
    await db.flush()
    await db.refresh(user)

    logger.info("profile_updated", user_id=user_id, fields=sorted(changes))
    return user


async def update_user_role(db: AsyncSession, user_id: int, role: Role, admin: Identity) -> User:
    if user_id == admin.user_id and role != Role.ADMIN:
        raise InvalidState("Admins cannot remove their own admin role")

    user = await get_user(db, user_id)
    previous = user.role
    user.role = role.value
    await db.flush()
    await db.refresh(user)

    logger.info(
        "user_role_changed",
        user_id=user_id,
        previous=previous,
        role=role.value,
        admin_id=admin.user_id,
    )
    return user


async def deactivate_user(db: AsyncSession, user_id: int, admin: Identity) -> User:
    if user_id == admin.user_id:
        raise InvalidState("Admins cannot deactivate themselves")

    user = await get_user(db, user_id)
    user.is_active = False
    await db.flush()
    await db.refresh(user)

    logger.info("user_deactivated", user_id=user_id, admin_id=admin.user_id)
    return user
