"""Tests for property create, update, delete, archive/restore and image upload."""

import json
import uuid
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from httpx import AsyncClient
from sqlalchemy.exc import InvalidRequestError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from rentals.database import Database
from rentals.models.property import Property

pytestmark = pytest.mark.asyncio


def _stored_path(media_root: Path, url: str) -> Path:
    return media_root / url.removeprefix("/media/")


# ---------------------------------------------------------------------------
# POST /api/properties
# ---------------------------------------------------------------------------


class TestCreateProperty:
    async def test_create_success(self, client: AsyncClient, make_property, host_user) -> None:
        data = await make_property(price=150000, status="for-sale", amenities=["wifi", "pool", "wifi"])
        assert data["title"] == "Test House"
        assert float(data["price"]) == 150000.0
        assert data["status"] == "for-sale"
        assert sorted(data["amenities"]) == ["pool", "wifi"]
        assert data["host_id"] == str(host_user.id)
        assert data["archived"] is False
        assert data["views"] == 0
        assert data["image"] is None

    async def test_create_with_images(self, client: AsyncClient, make_property, png_upload, media_root: Path) -> None:
        data = await make_property(
            files=[
                png_upload(),
                png_upload("additional_images", "second.png"),
                png_upload("additional_images", "third.png"),
            ]
        )
        assert data["image"].startswith(f"/media/properties/{data['id']}/")
        assert data["image"].endswith(".png")
        assert _stored_path(media_root, data["image"]).is_file()
        assert len(data["additional_images"]) == 2
        for url in data["additional_images"]:
            assert _stored_path(media_root, url).is_file()

    async def test_user_is_promoted_to_host(self, client: AsyncClient, make_property, auth_headers: dict) -> None:
        await make_property(headers=auth_headers)
        me = await client.get("/api/auth/me", headers=auth_headers)
        assert me.json()["data"]["role"] == "host"

    async def test_create_unauthenticated(self, client: AsyncClient, property_data) -> None:
        response = await client.post("/api/properties", data={"data": json.dumps(property_data())})
        assert response.status_code == 401

    async def test_create_invalid_payload(self, client: AsyncClient, host_headers: dict, property_data) -> None:
        response = await client.post(
            "/api/properties",
            data={"data": json.dumps(property_data(price=-5, property_type="castle"))},
            headers=host_headers,
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert any(e.startswith("price:") for e in body["errors"])
        assert any(e.startswith("property_type:") for e in body["errors"])

    async def test_create_malformed_json(self, client: AsyncClient, host_headers: dict) -> None:
        response = await client.post("/api/properties", data={"data": "{not json"}, headers=host_headers)
        assert response.status_code == 400

    async def test_create_rejects_non_image(
        self, client: AsyncClient, host_headers: dict, property_data, media_root: Path
    ) -> None:
        response = await client.post(
            "/api/properties",
            data={"data": json.dumps(property_data())},
            files=[("image", ("notes.txt", b"hello", "text/plain"))],
            headers=host_headers,
        )
        assert response.status_code == 400
        assert response.json()["message"] == "Unsupported image type"
        listing = await client.get("/api/properties")
        assert listing.json()["data"]["total"] == 0


# ---------------------------------------------------------------------------
# PUT /api/properties/{id}
# ---------------------------------------------------------------------------


class TestUpdateProperty:
    async def test_partial_update(self, client: AsyncClient, test_property: dict, host_headers: dict) -> None:
        response = await client.put(
            f"/api/properties/{test_property['id']}",
            data={"data": json.dumps({"title": "Renamed House", "bedrooms": 4})},
            headers=host_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["title"] == "Renamed House"
        assert data["bedrooms"] == 4
        assert data["city"] == test_property["city"]
        assert sorted(data["amenities"]) == ["parking", "wifi"]

    async def test_amenities_replace_full_set(self, client: AsyncClient, test_property: dict, host_headers: dict) -> None:
        response = await client.put(
            f"/api/properties/{test_property['id']}",
            data={"data": json.dumps({"amenities": ["pool", "wifi"], "pets_allowed": []})},
            headers=host_headers,
        )
        data = response.json()["data"]
        assert sorted(data["amenities"]) == ["pool", "wifi"]
        assert data["pets_allowed"] == []

        search = await client.get("/api/properties", params={"amenities": "parking"})
        assert search.json()["data"]["total"] == 0

    async def test_null_required_field_rejected(
        self, client: AsyncClient, test_property: dict, host_headers: dict
    ) -> None:
        response = await client.put(
            f"/api/properties/{test_property['id']}",
            data={"data": json.dumps({"title": None})},
            headers=host_headers,
        )
        assert response.status_code == 400
        assert response.json()["errors"] == ["title: cannot be null"]

        unchanged = await client.get(f"/api/properties/{test_property['id']}")
        assert unchanged.json()["data"]["title"] == "Test House"

    async def test_update_by_other_host_forbidden(
        self, client: AsyncClient, test_property: dict, other_host_headers: dict
    ) -> None:
        response = await client.put(
            f"/api/properties/{test_property['id']}",
            data={"data": json.dumps({"title": "Hijacked"})},
            headers=other_host_headers,
        )
        assert response.status_code == 403
        assert response.json()["success"] is False

    async def test_update_by_admin_allowed(self, client: AsyncClient, test_property: dict, admin_headers: dict) -> None:
        response = await client.put(
            f"/api/properties/{test_property['id']}",
            data={"data": json.dumps({"is_verified": True})},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["is_verified"] is True

    async def test_new_image_replaces_old(
        self, client: AsyncClient, make_property, png_upload, host_headers: dict, media_root: Path
    ) -> None:
        created = await make_property(files=[png_upload()])
        old_path = _stored_path(media_root, created["image"])

        response = await client.put(
            f"/api/properties/{created['id']}",
            data={"data": "{}"},
            files=[png_upload(name="new.png")],
            headers=host_headers,
        )
        assert response.status_code == 200
        new_url = response.json()["data"]["image"]
        assert new_url != created["image"]
        assert _stored_path(media_root, new_url).is_file()
        assert not old_path.exists()

    async def test_old_image_kept_when_commit_fails(
        self, client: AsyncClient, make_property, png_upload, host_headers: dict, media_root: Path
    ) -> None:
        created = await make_property(files=[png_upload()])
        old_path = _stored_path(media_root, created["image"])

        failing_commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))
        with patch.object(AsyncSession, "commit", failing_commit):
            response = await client.put(
                f"/api/properties/{created['id']}",
                data={"data": "{}"},
                files=[png_upload(name="new.png")],
                headers=host_headers,
            )

        assert response.status_code == 500
        assert old_path.is_file()
        detail = await client.get(f"/api/properties/{created['id']}")
        assert detail.json()["data"]["image"] == created["image"]


# ---------------------------------------------------------------------------
# DELETE /api/properties/{id}
# ---------------------------------------------------------------------------


class TestDeleteProperty:
    async def test_delete_removes_row_and_images(
        self, client: AsyncClient, make_property, png_upload, host_headers: dict, media_root: Path
    ) -> None:
        created = await make_property(files=[png_upload(), png_upload("additional_images", "extra.png")])

        response = await client.delete(f"/api/properties/{created['id']}", headers=host_headers)
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Property deleted successfully"}

        missing = await client.get(f"/api/properties/{created['id']}")
        assert missing.status_code == 404
        assert not _stored_path(media_root, created["image"]).exists()
        assert not _stored_path(media_root, created["additional_images"][0]).exists()

    async def test_delete_with_active_booking_rejected(
        self, client: AsyncClient, test_property: dict, make_booking, host_headers: dict
    ) -> None:
        await make_booking()

        response = await client.delete(f"/api/properties/{test_property['id']}", headers=host_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Cannot delete a property with active bookings"

        still_there = await client.get(f"/api/properties/{test_property['id']}")
        assert still_there.status_code == 200

    async def test_delete_after_cancellation(
        self, client: AsyncClient, test_property: dict, make_booking, host_headers: dict
    ) -> None:
        booking = await make_booking()
        await client.patch(f"/api/bookings/{booking['id']}/cancel")

        response = await client.delete(f"/api/properties/{test_property['id']}", headers=host_headers)
        assert response.status_code == 200

        gone = await client.get(f"/api/bookings/{booking['id']}", headers=host_headers)
        assert gone.status_code == 404

    @pytest.mark.parametrize("collection", ["bookings", "reviews"])
    async def test_unread_collections_refuse_lazy_loads(
        self, database: Database, test_property: dict, collection: str
    ) -> None:
        async with database.session() as session:
            prop = await session.get(Property, uuid.UUID(test_property["id"]))
            with pytest.raises(InvalidRequestError, match="lazy='raise'"):
                getattr(prop, collection)

    async def test_delete_by_other_host_forbidden(
        self, client: AsyncClient, test_property: dict, other_host_headers: dict
    ) -> None:
        response = await client.delete(f"/api/properties/{test_property['id']}", headers=other_host_headers)
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# PATCH /api/properties/{id}/archive and /restore
# ---------------------------------------------------------------------------


class TestArchiveRestore:
    async def test_archive_hides_from_search(
        self, client: AsyncClient, test_property: dict, host_headers: dict
    ) -> None:
        response = await client.patch(
            f"/api/properties/{test_property['id']}/archive",
            json={"reason": "Renovation"},
            headers=host_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["archived"] is True
        assert data["archived_reason"] == "Renovation"
        assert data["status"] == "unavailable"
        assert data["archived_at"] is not None

        search = await client.get("/api/properties")
        assert search.json()["data"]["total"] == 0

        archived = await client.get("/api/properties/archived", headers=host_headers)
        assert [p["id"] for p in archived.json()["data"]["items"]] == [test_property["id"]]

    async def test_archive_is_idempotent(self, client: AsyncClient, test_property: dict, host_headers: dict) -> None:
        url = f"/api/properties/{test_property['id']}/archive"
        first = await client.patch(url, headers=host_headers)
        second = await client.patch(url, json={"reason": "Changed my mind"}, headers=host_headers)

        assert first.json()["data"]["archived_reason"] == "Not specified"
        assert second.status_code == 200
        assert second.json()["data"]["archived_at"] == first.json()["data"]["archived_at"]
        assert second.json()["data"]["archived_reason"] == "Not specified"

    async def test_archived_listing_scoped_to_host(
        self, client: AsyncClient, test_property: dict, host_headers: dict, other_host_headers: dict, admin_headers: dict
    ) -> None:
        await client.patch(f"/api/properties/{test_property['id']}/archive", headers=host_headers)

        other = await client.get("/api/properties/archived", headers=other_host_headers)
        admin = await client.get("/api/properties/archived", headers=admin_headers)
        assert other.json()["data"]["total"] == 0
        assert admin.json()["data"]["total"] == 1

    async def test_archive_by_other_host_forbidden(
        self, client: AsyncClient, test_property: dict, other_host_headers: dict
    ) -> None:
        response = await client.patch(f"/api/properties/{test_property['id']}/archive", headers=other_host_headers)
        assert response.status_code == 403

    async def test_restore(self, client: AsyncClient, test_property: dict, host_headers: dict) -> None:
        await client.patch(f"/api/properties/{test_property['id']}/archive", headers=host_headers)

        response = await client.patch(
            f"/api/properties/{test_property['id']}/restore",
            json={"status": "for-sale"},
            headers=host_headers,
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["archived"] is False
        assert data["archived_at"] is None
        assert data["archived_reason"] is None
        assert data["status"] == "for-sale"

        search = await client.get("/api/properties")
        assert search.json()["data"]["total"] == 1


# ---------------------------------------------------------------------------
# POST /api/properties/{id}/images
# ---------------------------------------------------------------------------


class TestUploadImage:
    async def test_additional_image(
        self, client: AsyncClient, test_property: dict, host_headers: dict, png_upload
    ) -> None:
        response = await client.post(
            f"/api/properties/{test_property['id']}/images",
            files=[png_upload()],
            headers=host_headers,
        )
        assert response.status_code == 201
        image = response.json()["data"]
        assert image["is_primary"] is False
        assert image["property_id"] == test_property["id"]

        detail = await client.get(f"/api/properties/{test_property['id']}")
        assert detail.json()["data"]["additional_images"] == [image["image_url"]]

    async def test_primary_image_replaces_previous(
        self, client: AsyncClient, make_property, host_headers: dict, png_upload, media_root: Path
    ) -> None:
        created = await make_property(files=[png_upload()])

        response = await client.post(
            f"/api/properties/{created['id']}/images",
            data={"is_primary": "true"},
            files=[png_upload(name="cover.png")],
            headers=host_headers,
        )
        new_url = response.json()["data"]["image_url"]

        detail = await client.get(f"/api/properties/{created['id']}")
        assert detail.json()["data"]["image"] == new_url
        assert not _stored_path(media_root, created["image"]).exists()

    async def test_upload_by_other_host_forbidden(
        self, client: AsyncClient, test_property: dict, other_host_headers: dict, png_upload
    ) -> None:
        response = await client.post(
            f"/api/properties/{test_property['id']}/images",
            files=[png_upload()],
            headers=other_host_headers,
        )
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Average rating maintained from reviews
# ---------------------------------------------------------------------------


class TestAverageRating:
    async def test_average_of_reviews(
        self, client: AsyncClient, make_property, auth_headers: dict, admin_headers: dict
    ) -> None:
        house = await make_property(price=150000, status="for-sale")
        for headers, rating in ((auth_headers, 5), (admin_headers, 3)):
            response = await client.post(
                "/api/reviews",
                json={"property_id": house["id"], "rating": rating, "comment": "Stayed here"},
                headers=headers,
            )
            assert response.status_code == 201

        detail = await client.get(f"/api/properties/{house['id']}")
        assert float(detail.json()["data"]["average_rating"]) == 4.0
