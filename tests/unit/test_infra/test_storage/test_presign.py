"""Unit tests for presigned URL generation."""

from __future__ import annotations

import pytest

from objectmover.core.settings import StorageSettings
from objectmover.infra.storage.exceptions import InvalidPathError, StorageValidationError
from objectmover.infra.storage.models import CloudPath
from objectmover.infra.storage.operations.presigned import presign


@pytest.fixture
def settings():
    return StorageSettings(
        enabled=True,
        presigned_url_expiry_seconds=900,
        max_presigned_url_expiry_seconds=3600,
    )


class TestPresign:
    @pytest.mark.asyncio
    async def test_get_uses_default_expiry(self, store, settings):
        url = await presign(store, settings, CloudPath("media", "a.png"))

        assert url.method == "GET"
        assert url.expires_in == 900
        assert url.url.startswith("https://media.s3.test/a.png")
        assert url.to_dict() == {"url": url.url}

    @pytest.mark.asyncio
    async def test_method_is_case_insensitive(self, store, settings):
        url = await presign(store, settings, CloudPath("media", "a.png"), method="put")

        assert url.method == "PUT"

    @pytest.mark.asyncio
    async def test_put_signs_content_type_and_metadata(self, store, settings):
        await presign(
            store,
            settings,
            CloudPath("media", "a.png"),
            method="PUT",
            expires_seconds=60,
            content_type="image/png",
            metadata={"owner": "qa"},
            response_headers={"Content-Disposition": "attachment"},
        )

        call = store.presign_calls[-1]
        assert call["expires_in"] == 60
        assert call["content_type"] == "image/png"
        assert call["metadata"] == {"owner": "qa"}
        assert call["response_headers"] is None

    @pytest.mark.asyncio
    async def test_get_ignores_upload_fields(self, store, settings):
        await presign(
            store,
            settings,
            CloudPath("media", "a.png"),
            content_type="image/png",
            response_headers={"Content-Disposition": "attachment"},
        )

        call = store.presign_calls[-1]
        assert call["content_type"] is None
        assert call["response_headers"] == {"Content-Disposition": "attachment"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires", [0, -5, 3601])
    async def test_expiry_out_of_range(self, store, settings, expires):
        with pytest.raises(StorageValidationError):
            await presign(store, settings, CloudPath("media", "a.png"), expires_seconds=expires)

        assert store.presign_calls == []

    @pytest.mark.asyncio
    async def test_unsupported_method(self, store, settings):
        with pytest.raises(StorageValidationError):
            await presign(store, settings, CloudPath("media", "a.png"), method="DELETE")

    @pytest.mark.asyncio
    async def test_directory_raises(self, store, settings):
        with pytest.raises(InvalidPathError):
            await presign(store, settings, CloudPath("media", "docs/"))
