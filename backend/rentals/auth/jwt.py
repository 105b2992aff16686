"""JWT issuance and verification for access and refresh tokens."""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from rentals.config import settings
from rentals.errors import AuthenticationError


def _encode(data: dict, token_type: str, lifetime: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"exp": now + lifetime, "iat": now, "type": token_type})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived access token.

    Args:
        data: Payload data. Must include ``sub`` (user UUID as string).
        expires_delta: Custom lifetime. Defaults to
            ``settings.jwt_access_token_expire_minutes`` minutes.
    """
    lifetime = expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    return _encode(data, "access", lifetime)


def create_refresh_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived refresh token (``settings.jwt_refresh_token_expire_days`` by default)."""
    lifetime = expires_delta or timedelta(days=settings.jwt_refresh_token_expire_days)
    return _encode(data, "refresh", lifetime)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT.

    Raises:
        jose.JWTError: If the token is invalid, expired, or malformed.
    """
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def subject_from_token(token: str, expected_type: str) -> uuid.UUID:
    """Return the user id carried by a token of the given type.

    Args:
        token: Encoded JWT string.
        expected_type: ``"access"`` or ``"refresh"``.

    Raises:
        AuthenticationError: If the token cannot be verified, has the wrong
            type, or does not carry a UUID subject.
    """
    try:
        payload = decode_token(token)
    except JWTError:
        raise AuthenticationError("Invalid or expired token") from None

    if payload.get("type") != expected_type:
        raise AuthenticationError("Invalid token type")

    sub = payload.get("sub")
    if sub is None:
        raise AuthenticationError("Invalid token payload")
    try:
        return uuid.UUID(sub)
    except ValueError:
        raise AuthenticationError("Invalid token payload") from None


def create_token_pair(user_id: str, role: str | None = None) -> dict[str, str]:
    """Create both access and refresh tokens for a user.

    The role claim is informational; authorization always re-reads the
    role from the users table.
    """
    payload = {"sub": user_id}
    if role is not None:
        payload["role"] = role
    return {
        "access_token": create_access_token(payload),
        "refresh_token": create_refresh_token(payload),
        "token_type": "bearer",
    }
