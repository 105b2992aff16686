"""Shared test configuration and fixtures.

Every test gets a fresh in-memory SQLite :class:`Database` installed on
``app.state`` together with a local image store under ``tmp_path``, the
simulated payment gateway and a geo service whose upstreams are mocked.
Requests go through the real ``get_db`` dependency, so each request is its
own committed (or rolled back) unit of work, exactly as in production.
"""

import json
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import date, timedelta
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from rentals.auth.jwt import create_token_pair
from rentals.auth.passwords import hash_password
from rentals.billing.gateway import SimulatedGateway
from rentals.database import Database
from rentals.main import app
from rentals.models.user import User
from rentals.services.geo import GeoService
from rentals.services.storage import LocalImageStorage

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_PASSWORD = "testpass123"

# PNG signature plus padding; storage only checks the declared content type.
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def _unavailable_upstream(request: httpx.Request) -> httpx.Response:
    return httpx.Response(503, json={"error": "unavailable in tests"})


# ---------------------------------------------------------------------------
# Infrastructure: database, storage, gateway, geo, client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """A brand-new in-memory database with every table created."""
    db = Database(TEST_DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    return tmp_path / "media"


@pytest.fixture
def storage(media_root: Path) -> LocalImageStorage:
    return LocalImageStorage(root=media_root, base_url="/media", max_size_bytes=1024 * 1024)


@pytest.fixture
def gateway() -> SimulatedGateway:
    return SimulatedGateway()


@pytest.fixture
def geo_service() -> GeoService:
    """Geo service whose upstreams always fail, so routes fall back to straight lines."""
    return GeoService(
        nominatim_url="https://nominatim.test",
        osrm_url="https://osrm.test",
        transport=httpx.MockTransport(_unavailable_upstream),
    )


@pytest_asyncio.fixture
async def client(
    database: Database,
    storage: LocalImageStorage,
    gateway: SimulatedGateway,
    geo_service: GeoService,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the per-test collaborators."""
    app.state.database = database
    app.state.storage = storage
    app.state.gateway = gateway
    app.state.geo = geo_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Convenience fixtures: users and auth headers
# ---------------------------------------------------------------------------


async def create_user(database: Database, role: str = "user", **overrides) -> User:
    """Insert a user directly and return it (attributes stay loaded after commit)."""
    unique = uuid.uuid4().hex[:8]
    fields = {
        "email": f"{role}-{unique}@test.com",
        "hashed_password": hash_password(TEST_PASSWORD),
        "first_name": "Test",
        "last_name": role.title(),
        "is_active": True,
        "role": role,
    }
    fields.update(overrides)
    async with database.session() as session:
        user = User(**fields)
        session.add(user)
        await session.commit()
    return user


def headers_for(user: User) -> dict[str, str]:
    tokens = create_token_pair(str(user.id), user.role)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


@pytest_asyncio.fixture
async def test_user(database: Database) -> User:
    """A regular guest account."""
    return await create_user(database, "user")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    return headers_for(test_user)


@pytest_asyncio.fixture
async def host_user(database: Database) -> User:
    return await create_user(database, "host", first_name="Hana", last_name="Host")


@pytest_asyncio.fixture
async def host_headers(host_user: User) -> dict[str, str]:
    return headers_for(host_user)


@pytest_asyncio.fixture
async def other_host(database: Database) -> User:
    return await create_user(database, "host", first_name="Otto", last_name="Other")


@pytest_asyncio.fixture
async def other_host_headers(other_host: User) -> dict[str, str]:
    return headers_for(other_host)


@pytest_asyncio.fixture
async def admin_user(database: Database) -> User:
    return await create_user(database, "admin")


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict[str, str]:
    return headers_for(admin_user)


# ---------------------------------------------------------------------------
# Convenience fixtures: property and booking helpers
# ---------------------------------------------------------------------------


def property_payload(**overrides) -> dict:
    payload = {
        "title": "Test House",
        "description": "A bright test house with a garden.",
        "address": "1 Test Street",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "price": 1500,
        "bedrooms": 3,
        "bathrooms": 2,
        "square_feet": 1200,
        "property_type": "house",
        "status": "for-rent",
        "amenities": ["wifi", "parking"],
        "pets_allowed": ["dogs-allowed"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_property(client: AsyncClient, host_headers: dict) -> Callable:
    """Factory creating a property through the multipart API; returns the response data."""

    async def _make(headers: dict | None = None, files: list | None = None, **overrides) -> dict:
        response = await client.post(
            "/api/properties",
            data={"data": json.dumps(property_payload(**overrides))},
            files=files,
            headers=headers or host_headers,
        )
        assert response.status_code == 201, f"Failed to create property: {response.text}"
        return response.json()["data"]

    return _make


@pytest_asyncio.fixture
async def test_property(make_property: Callable) -> dict:
    return await make_property()


def future_dates(offset_start: int = 30, nights: int = 5) -> tuple[str, str]:
    """Return a (check_in, check_out) pair safely in the future as ISO strings."""
    check_in = date.today() + timedelta(days=offset_start)
    check_out = check_in + timedelta(days=nights)
    return check_in.isoformat(), check_out.isoformat()


def booking_payload(property_id: str, offset_start: int = 30, nights: int = 5, **overrides) -> dict:
    check_in, check_out = future_dates(offset_start, nights)
    payload = {
        "property_id": property_id,
        "guest_name": "Jane Guest",
        "guest_email": "jane@example.com",
        "guest_phone": "+1 555 0100",
        "check_in_date": check_in,
        "check_out_date": check_out,
        "guests": 2,
        "total_price": 750,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_booking(client: AsyncClient, test_property: dict) -> Callable:
    """Factory creating a booking through the API; returns the response data."""

    async def _make(headers: dict | None = None, property_id: str | None = None, **overrides) -> dict:
        response = await client.post(
            "/api/bookings",
            json=booking_payload(property_id or test_property["id"], **overrides),
            headers=headers or {},
        )
        assert response.status_code == 201, f"Failed to create booking: {response.text}"
        return response.json()["data"]

    return _make


@pytest.fixture
def png_upload() -> Callable:
    """Build an httpx ``files`` entry for a small PNG."""

    def _upload(field: str = "image", name: str = "photo.png") -> tuple:
        return (field, (name, PNG_BYTES, "image/png"))

    return _upload


@pytest.fixture
def property_data() -> Callable:
    """Payload builder for ``PropertyCreate`` JSON."""
    return property_payload


@pytest.fixture
def booking_data() -> Callable:
    """Payload builder for ``BookingCreate`` JSON."""
    return booking_payload
