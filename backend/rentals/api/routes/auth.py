"""Auth API router — register, login, refresh, me."""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.api.deps import get_current_active_user, get_db
from rentals.auth.jwt import create_token_pair, subject_from_token
from rentals.auth.passwords import hash_password, verify_password
from rentals.errors import AuthenticationError, AuthorizationError, ConflictError
from rentals.models.user import User
from rentals.schemas.auth import (
    AuthResponse,
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from rentals.schemas.common import ApiResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _auth_response(user: User) -> AuthResponse:
    tokens = create_token_pair(str(user.id), user.role)
    return AuthResponse(user=UserResponse.model_validate(user), tokens=TokenResponse(**tokens))


# ---------------------------------------------------------------------------
# POST /register
# ---------------------------------------------------------------------------


@router.post("/register", response_model=ApiResponse[AuthResponse], status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse[AuthResponse]:
    """Register a new guest or host account with email and password."""
    existing = await db.scalar(select(User.id).where(User.email == body.email))
    if existing is not None:
        raise ConflictError("Email already registered")

    user = User(
        email=body.email,
        hashed_password=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        phone=body.phone,
        role=body.role,
    )
    db.add(user)
    await db.flush()
    logger.info("Registered %s account %s", user.role, user.id)

    return ApiResponse(data=_auth_response(user), message="Registration successful")


# ---------------------------------------------------------------------------
# POST /login
# ---------------------------------------------------------------------------


@router.post("/login", response_model=ApiResponse[AuthResponse])
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse[AuthResponse]:
    """Authenticate with email and password."""
    result = await db.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(body.password, user.hashed_password):
        raise AuthenticationError("Invalid email or password")

    if not user.is_active:
        raise AuthorizationError("Account is inactive")

    return ApiResponse(data=_auth_response(user))


# ---------------------------------------------------------------------------
# POST /refresh
# ---------------------------------------------------------------------------


@router.post("/refresh", response_model=ApiResponse[TokenResponse])
async def refresh(body: RefreshRequest, db: AsyncSession = Depends(get_db)) -> ApiResponse[TokenResponse]:
    """Exchange a valid refresh token for a new token pair."""
    user_id = subject_from_token(body.refresh_token, "refresh")

    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return ApiResponse(data=TokenResponse(**create_token_pair(str(user.id), user.role)))


# ---------------------------------------------------------------------------
# GET /me
# ---------------------------------------------------------------------------


@router.get("/me", response_model=ApiResponse[UserResponse])
async def me(current_user: User = Depends(get_current_active_user)) -> ApiResponse[UserResponse]:
    """Return the currently authenticated user's profile."""
    return ApiResponse(data=UserResponse.model_validate(current_user))
