"""Typed application errors and the JSON error envelope.

Every error surfaces to clients as::

    {"success": false, "message": "...", "errors": [...]}

``errors`` is only present when there is per-field detail to report.
"""

import logging
from collections.abc import Awaitable, Callable, Iterable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


class AppError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = errors or None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body

    def __repr__(self) -> str:
        return f"<{type(self).__name__} status={self.status_code} message={self.message!r}>"


class ValidationError(AppError):
    """Malformed or missing input."""

    status_code = 400
    error_code = "VALIDATION_ERROR"


class AuthenticationError(AppError):
    """Missing, expired or otherwise invalid credentials."""

    status_code = 401
    error_code = "AUTHENTICATION_FAILED"


class AuthorizationError(AppError):
    """Caller lacks ownership of the resource or the required role."""

    status_code = 403
    error_code = "AUTHORIZATION_FAILED"


class NotFoundError(AppError):
    status_code = 404
    error_code = "RESOURCE_NOT_FOUND"


class ConflictError(AppError):
    """Duplicate or overlapping entity."""

    status_code = 409
    error_code = "CONFLICT"


class DatabaseError(AppError):
    """Unexpected failure reported by the relational store."""

    status_code = 500
    error_code = "DATABASE_ERROR"


class PaymentGatewayError(AppError):
    """The payment processor declined or failed the request."""

    status_code = 502
    error_code = "PAYMENT_GATEWAY_ERROR"


def wrap_db_errors(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Re-raise store exceptions as :class:`DatabaseError`.

    Typed application errors pass through unchanged.
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await func(*args, **kwargs)
        except AppError:
            raise
        except SQLAlchemyError as exc:
            logger.exception("Database failure in %s", func.__qualname__)
            raise DatabaseError("Database operation failed") from exc

    return wrapper


def describe_validation_errors(errors: Iterable[dict[str, Any]]) -> list[str]:
    """Flatten pydantic error dicts into ``"<field>: <reason>"`` strings."""
    described = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form")]
        message = str(error.get("msg", "Invalid value")).removeprefix("Value error, ")
        described.append(f"{'.'.join(loc) or 'request'}: {message}")
    return described
