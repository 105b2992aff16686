"""Shared API dependencies — single import point for all routers.

Re-exports the database session, authentication dependencies and the
collaborators stored on ``app.state`` so that router modules can import
everything they need from one place::

    from rentals.api.deps import get_db, get_current_active_user
"""

from rentals.auth.dependencies import (
    get_current_active_user,
    get_current_user,
    get_optional_user,
    require_admin,
)
from rentals.billing.gateway import get_gateway
from rentals.database import get_db
from rentals.services.geo import get_geo_service
from rentals.services.storage import get_storage

__all__ = [
    "get_db",
    "get_current_user",
    "get_current_active_user",
    "get_optional_user",
    "require_admin",
    "get_gateway",
    "get_geo_service",
    "get_storage",
]
