"""
Password hashing (bcrypt), JWT issuance/verification (PyJWT), and the
request dependencies that resolve the calling identity.

The token is read from the auth cookie first, then from an
`Authorization: Bearer` header.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import Forbidden, Unauthenticated
from app.core.permissions import Capability, Identity, Role, has_capability
from app.db.session import get_db
from app.models.user import User

settings = get_settings()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), hashed_password.encode("utf-8"))


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise Unauthenticated("Token has expired")
    except jwt.PyJWTError:
        raise Unauthenticated("Invalid token")


def _extract_token(request: Request) -> Optional[str]:
    token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials
    return None


async def get_current_identity(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """
    Resolve the caller. The user row is reloaded so role changes and
    deactivation take effect without waiting for the token to expire.
    """
    token = _extract_token(request)
    if not token:
        raise Unauthenticated()

    payload = decode_access_token(token)
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise Unauthenticated("Invalid token")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise Unauthenticated("Account not found or deactivated")

    return Identity(user_id=user.id, role=Role(user.role))


def require_capability(capability: Capability):
    """Dependency factory: resolve the caller and check one capability."""

    async def checker(identity: Identity = Depends(get_current_identity)) -> Identity:
        if not has_capability(identity.role, capability):
            raise Forbidden(f"Role '{identity.role.value}' cannot {capability.value.replace('_', ' ')}")
        return identity

    return checker
