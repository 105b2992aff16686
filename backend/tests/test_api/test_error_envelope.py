"""Every failure, whatever its origin, is reported in the same JSON envelope."""

import uuid

import pytest
from httpx import AsyncClient

pytestmark = pytest.mark.asyncio


class TestErrorEnvelope:
    async def test_not_found(self, client: AsyncClient) -> None:
        response = await client.get(f"/api/reviews/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Review not found"}

    async def test_invalid_path_uuid(self, client: AsyncClient) -> None:
        response = await client.get("/api/properties/not-a-uuid")
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["message"] == "Validation failed"
        assert body["errors"][0].startswith("property_id:")

    async def test_unknown_route(self, client: AsyncClient) -> None:
        response = await client.get("/api/does-not-exist")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found"}

    async def test_method_not_allowed(self, client: AsyncClient) -> None:
        response = await client.patch("/api/auth/me")
        assert response.status_code == 405
        assert response.json()["success"] is False

    async def test_malformed_json_body(self, client: AsyncClient, auth_headers: dict) -> None:
        response = await client.post(
            "/api/reviews",
            content=b"{broken",
            headers={**auth_headers, "Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_success_envelope(self, client: AsyncClient) -> None:
        response = await client.get("/api/properties/featured")
        assert response.json() == {"success": True, "message": None, "data": []}


class TestHealth:
    async def test_health(self, client: AsyncClient) -> None:
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
