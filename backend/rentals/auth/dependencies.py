"""FastAPI authentication dependencies for route protection."""

import uuid

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.auth.jwt import subject_from_token
from rentals.database import get_db
from rentals.errors import AuthenticationError, AuthorizationError
from rentals.models.user import User

# auto_error is off so a missing header produces our 401 envelope instead of FastAPI's 403.
_bearer_scheme = HTTPBearer(auto_error=False)


async def _load_user(db: AsyncSession, user_id: uuid.UUID) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Validate the Bearer access token and return the authenticated user.

    Raises:
        AuthenticationError: If the token is missing, invalid, expired, of the
            wrong type, or the user no longer exists.
    """
    if credentials is None:
        raise AuthenticationError("Authentication required")

    user_id = subject_from_token(credentials.credentials, "access")
    user = await _load_user(db, user_id)
    if user is None:
        raise AuthenticationError("Could not validate credentials")
    return user


async def get_current_active_user(user: User = Depends(get_current_user)) -> User:
    """Return the current user only if their account is active."""
    if not user.is_active:
        raise AuthorizationError("Account is inactive")
    return user


async def get_optional_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Authenticate if a Bearer token is present, otherwise return ``None``.

    Used by endpoints that anonymous guests may call (booking creation,
    payment checkout) but that attach the caller when known.
    """
    if credentials is None:
        return None
    try:
        user_id = subject_from_token(credentials.credentials, "access")
    except AuthenticationError:
        return None

    user = await _load_user(db, user_id)
    if user is None or not user.is_active:
        return None
    return user


async def require_admin(user: User = Depends(get_current_active_user)) -> User:
    if user.role != "admin":
        raise AuthorizationError("Admin access required")
    return user
