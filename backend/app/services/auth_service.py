"""
Authentication service handling user registration and login.
"""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Conflict, Forbidden, Unauthenticated
from app.core.logging import get_logger
from app.core.security import hash_password, verify_password, create_access_token
from app.models.user import User
from app.schemas.user import UserCreate, UserLogin

logger = get_logger(__name__)


async def ensure_unique(
    db: AsyncSession,
    email: str | None = None,
    username: str | None = None,
    exclude_user_id: int | None = None,
) -> None:
    """Raise Conflict if the email or username already belongs to another user."""
    for column, value, message in (
        (User.email, email, "Email already registered"),
        (User.username, username, "Username already taken"),
    ):
        if value is None:
            continue
        query = select(User.id).where(column == value)
        if exclude_user_id is not None:
            query = query.where(User.id != exclude_user_id)
        if (await db.execute(query)).first():
            logger.warning("user_uniqueness_violation", field=column.key, value=value)
            raise Conflict(message)


async def register_user(db: AsyncSession, user_data: UserCreate) -> User:
    """
    Register a new user with hashed password.
    Raises Conflict if email or username already exists.
    """
    await ensure_unique(db, email=user_data.email, username=user_data.username)

    user = User(
        email=user_data.email,
        username=user_data.username,
        hashed_password=hash_password(user_data.password),
        role=user_data.role,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)

    logger.info("user_registered", user_id=user.id, email=user.email, role=user.role)
    return user


async def authenticate_user(db: AsyncSession, login_data: UserLogin) -> str:
    """
    Authenticate user and return JWT access token.
    Raises Unauthenticated if credentials are invalid.
    """
    result = await db.execute(select(User).where(User.email == login_data.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(login_data.password, user.hashed_password):
        logger.warning("login_failed", email=login_data.email)
        raise Unauthenticated("Invalid email or password")

    if not user.is_active:
        raise Forbidden("Account is deactivated")

    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    logger.info("user_logged_in", user_id=user.id)
    return token
