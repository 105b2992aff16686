"""Tests for the local image store."""

import io
from pathlib import Path

import pytest
from fastapi import UploadFile
from starlette.datastructures import Headers

from rentals.errors import ValidationError
from rentals.services.storage import LocalImageStorage, delete_image_quietly


def _upload(data: bytes = b"\x89PNG\r\n\x1a\n", content_type: str = "image/png", name: str = "a.png") -> UploadFile:
    return UploadFile(file=io.BytesIO(data), filename=name, headers=Headers({"content-type": content_type}))


@pytest.fixture
def local_storage(tmp_path: Path) -> LocalImageStorage:
    return LocalImageStorage(root=tmp_path, base_url="/media/", max_size_bytes=32)


class TestLocalImageStorage:
    async def test_upload_and_delete(self, local_storage: LocalImageStorage, tmp_path: Path):
        url = await local_storage.upload_image(_upload(), "prop-1")

        assert url.startswith("/media/properties/prop-1/")
        stored = tmp_path / url.removeprefix("/media/")
        assert stored.read_bytes() == b"\x89PNG\r\n\x1a\n"

        await local_storage.delete_image(url)
        assert not stored.exists()

    async def test_rejects_non_image(self, local_storage: LocalImageStorage):
        with pytest.raises(ValidationError, match="Unsupported image type"):
            await local_storage.upload_image(_upload(b"text", "text/plain", "a.txt"), "prop-1")

    async def test_rejects_oversized(self, local_storage: LocalImageStorage):
        with pytest.raises(ValidationError, match="Image too large"):
            await local_storage.upload_image(_upload(b"\x00" * 64), "prop-1")

    async def test_foreign_url_not_deleted(self, local_storage: LocalImageStorage):
        with pytest.raises(ValueError):
            await local_storage.delete_image("https://cdn.example.com/x.png")

    async def test_quiet_delete_swallows_failures(self, local_storage: LocalImageStorage):
        await delete_image_quietly(local_storage, "/media/properties/missing.png")
        await delete_image_quietly(local_storage, None)
