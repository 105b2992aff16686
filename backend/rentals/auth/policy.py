"""Resource-owner-or-admin authorization policy.

Every mutating service operation asks the same question: is the caller the
owner of the resource, or do they hold an elevated role? The answer lives
here so that properties, bookings, reviews and payments agree on it.
"""

import logging
import uuid
from collections.abc import Iterable

from rentals.errors import AuthorizationError
from rentals.models.user import User

logger = logging.getLogger(__name__)


class AccessPolicy:
    """``is_owner(resource, caller) or has_role(caller, admin_roles)``."""

    def __init__(self, admin_roles: Iterable[str] = ("admin",)) -> None:
        self.admin_roles = tuple(admin_roles)

    def is_owner(self, owner_id: uuid.UUID | None, user: User | None) -> bool:
        # Orphaned resources (owner_id None) have no owner to match.
        return user is not None and owner_id is not None and owner_id == user.id

    def has_role(self, user: User | None, roles: Iterable[str]) -> bool:
        return user is not None and user.role in tuple(roles)

    def can_manage(self, owner_id: uuid.UUID | None, user: User | None) -> bool:
        return self.is_owner(owner_id, user) or self.has_role(user, self.admin_roles)

    def ensure_can_manage(self, owner_id: uuid.UUID | None, user: User | None, action: str) -> None:
        """Raise :class:`AuthorizationError` unless the caller may perform ``action``."""
        if not self.can_manage(owner_id, user):
            logger.info(
                "Denied %s for user %s (owner %s)",
                action,
                user.id if user is not None else None,
                owner_id,
            )
            raise AuthorizationError(f"You are not allowed to {action}")


policy = AccessPolicy()
