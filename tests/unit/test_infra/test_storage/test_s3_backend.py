"""Unit tests for S3ObjectStore with a mocked aioboto3 client."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError
import pytest

from objectmover.core.settings.storage import StorageSettings
from objectmover.infra.storage.backends.s3.backend import S3ObjectStore, response_header_params
from objectmover.infra.storage.exceptions import (
    StorageNetworkError,
    StorageNotConfiguredError,
    StoragePermissionError,
    StorageValidationError,
)
from objectmover.infra.storage.models import CompletedPart


def client_error(code: str, status: int = 400) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        "operation",
    )


def body_stream(*chunks: bytes) -> MagicMock:
    """Mock the streaming body returned by get_object."""
    stream = MagicMock()
    stream.read = AsyncMock(side_effect=[*chunks, b""])
    body = MagicMock()
    body.__aenter__.return_value = stream
    body.__aexit__.return_value = None
    return body


@pytest.fixture
def s3_store():
    store = S3ObjectStore(StorageSettings(enabled=True, default_bucket="media"))
    store._client = AsyncMock()
    return store


class TestLifecycle:
    def test_disabled_settings_raise(self):
        with pytest.raises(StorageNotConfiguredError):
            S3ObjectStore(StorageSettings(enabled=False))

    @pytest.mark.asyncio
    async def test_calls_before_startup_raise(self):
        store = S3ObjectStore(StorageSettings(enabled=True))

        assert not store.is_ready
        with pytest.raises(StorageNotConfiguredError):
            await store.put_object("media", "a.txt", b"a")

    @pytest.mark.asyncio
    async def test_health_check(self, s3_store):
        assert await s3_store.health_check() is True
        s3_store._client.head_bucket.assert_awaited_once_with(Bucket="media")

    @pytest.mark.asyncio
    async def test_health_check_failure(self, s3_store):
        s3_store._client.head_bucket.side_effect = client_error("403", 403)

        assert await s3_store.health_check("private") is False

    @pytest.mark.asyncio
    async def test_health_check_without_bucket(self):
        store = S3ObjectStore(StorageSettings(enabled=True))
        store._client = AsyncMock()

        assert await store.health_check() is False


class TestWrites:
    @pytest.mark.asyncio
    async def test_put_object(self, s3_store):
        s3_store._client.put_object.return_value = {"ETag": '"abc"'}

        etag = await s3_store.put_object("media", "a.txt", b"a", content_type="text/plain", metadata={"k": "v"})

        assert etag == "abc"
        s3_store._client.put_object.assert_awaited_once_with(
            Bucket="media", Key="a.txt", Body=b"a", ContentType="text/plain", Metadata={"k": "v"}
        )

    @pytest.mark.asyncio
    async def test_multipart_calls(self, s3_store):
        client = s3_store._client
        client.create_multipart_upload.return_value = {"UploadId": "u-1"}
        client.upload_part.return_value = {"ETag": '"p1"'}
        client.complete_multipart_upload.return_value = {"ETag": '"final-2"'}

        upload_id = await s3_store.create_multipart_upload("media", "big.bin")
        part_etag = await s3_store.upload_part("media", "big.bin", upload_id, 1, b"x")
        etag = await s3_store.complete_multipart_upload(
            "media", "big.bin", upload_id, [CompletedPart(1, part_etag), CompletedPart(2, '"p2"')]
        )

        assert upload_id == "u-1"
        assert etag == "final-2"
        parts = client.complete_multipart_upload.call_args.kwargs["MultipartUpload"]["Parts"]
        assert [part["PartNumber"] for part in parts] == [1, 2]

    @pytest.mark.asyncio
    async def test_client_errors_are_translated(self, s3_store):
        s3_store._client.put_object.side_effect = client_error("AccessDenied", 403)

        with pytest.raises(StoragePermissionError):
            await s3_store.put_object("media", "a.txt", b"a")

    @pytest.mark.asyncio
    async def test_transport_errors_are_translated(self, s3_store):
        s3_store._client.copy_object.side_effect = EndpointConnectionError(endpoint_url="http://s3")

        with pytest.raises(StorageNetworkError):
            await s3_store.copy_object("media", "a.txt", "archive", "a.txt")

    @pytest.mark.asyncio
    async def test_delete_objects_reports_errors(self, s3_store):
        s3_store._client.delete_objects.return_value = {"Errors": [{"Key": "b.txt", "Code": "AccessDenied"}]}

        failed = await s3_store.delete_objects("media", ["a.txt", "b.txt"])

        assert failed == ["b.txt"]
        request = s3_store._client.delete_objects.call_args.kwargs["Delete"]
        assert request["Objects"] == [{"Key": "a.txt"}, {"Key": "b.txt"}]

    @pytest.mark.asyncio
    async def test_delete_objects_empty(self, s3_store):
        assert await s3_store.delete_objects("media", []) == []
        s3_store._client.delete_objects.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_objects_limit(self, s3_store):
        with pytest.raises(StorageValidationError):
            await s3_store.delete_objects("media", [f"k{i}" for i in range(1001)])


class TestReads:
    @pytest.mark.asyncio
    async def test_head_missing_returns_none(self, s3_store):
        s3_store._client.head_object.side_effect = client_error("404", 404)

        assert await s3_store.head_object("media", "nope.txt") is None

    @pytest.mark.asyncio
    async def test_head_other_errors_raise(self, s3_store):
        s3_store._client.head_object.side_effect = client_error("AccessDenied", 403)

        with pytest.raises(StoragePermissionError):
            await s3_store.head_object("media", "a.txt")

    @pytest.mark.asyncio
    async def test_head_metadata(self, s3_store):
        modified = datetime(2024, 1, 1, tzinfo=UTC)
        s3_store._client.head_object.return_value = {
            "ContentLength": 12,
            "ContentType": "text/plain",
            "ETag": '"abc"',
            "LastModified": modified,
            "Metadata": {"owner": "qa"},
        }

        info = await s3_store.head_object("media", "a.txt")

        assert info.size == 12
        assert info.etag == "abc"
        assert info.last_modified == modified
        assert info.custom_metadata == {"owner": "qa"}

    @pytest.mark.asyncio
    async def test_get_object_range(self, s3_store):
        s3_store._client.get_object.return_value = {"Body": body_stream(b"bcd")}

        data = await s3_store.get_object("media", "a.txt", start=1, end=3)

        assert data == b"bcd"
        s3_store._client.get_object.assert_awaited_once_with(Bucket="media", Key="a.txt", Range="bytes=1-3")

    @pytest.mark.asyncio
    async def test_get_object_whole(self, s3_store):
        s3_store._client.get_object.return_value = {"Body": body_stream(b"abc")}

        assert await s3_store.get_object("media", "a.txt") == b"abc"
        assert "Range" not in s3_store._client.get_object.call_args.kwargs

    @pytest.mark.asyncio
    async def test_iter_object(self, s3_store):
        s3_store._client.get_object.return_value = {"Body": body_stream(b"ab", b"c")}

        chunks = [chunk async for chunk in s3_store.iter_object("media", "a.txt", 2)]

        assert chunks == [b"ab", b"c"]

    @pytest.mark.asyncio
    async def test_list_objects_page(self, s3_store):
        s3_store._client.list_objects_v2.return_value = {
            "Contents": [{"Key": "docs/a.txt", "Size": 3, "ETag": '"e"'}],
            "CommonPrefixes": [{"Prefix": "docs/sub/"}],
            "IsTruncated": True,
            "NextContinuationToken": "next",
        }

        page = await s3_store.list_objects("media", prefix="docs/", delimiter="/")

        assert [obj.key for obj in page.objects] == ["docs/a.txt"]
        assert page.common_prefixes == ["docs/sub/"]
        assert page.next_token == "next"
        kwargs = s3_store._client.list_objects_v2.call_args.kwargs
        assert kwargs["Delimiter"] == "/"
        assert "ContinuationToken" not in kwargs

    @pytest.mark.asyncio
    async def test_stream_objects_follows_tokens(self, s3_store):
        s3_store._client.list_objects_v2.side_effect = [
            {"Contents": [{"Key": "a"}], "IsTruncated": True, "NextContinuationToken": "t1"},
            {"Contents": [{"Key": "b"}], "IsTruncated": False},
        ]

        keys = [obj.key async for obj in s3_store.stream_objects("media")]

        assert keys == ["a", "b"]
        second = s3_store._client.list_objects_v2.call_args_list[1].kwargs
        assert second["ContinuationToken"] == "t1"


class TestPresign:
    @pytest.mark.asyncio
    async def test_get_with_response_headers(self, s3_store):
        s3_store._client.generate_presigned_url = AsyncMock(return_value="https://signed")

        url = await s3_store.generate_presigned_url(
            "media", "a.png", "GET", 600, response_headers={"Content-Disposition": "attachment"}
        )

        assert url == "https://signed"
        s3_store._client.generate_presigned_url.assert_awaited_once_with(
            "get_object",
            Params={"Bucket": "media", "Key": "a.png", "ResponseContentDisposition": "attachment"},
            ExpiresIn=600,
        )

    @pytest.mark.asyncio
    async def test_put_signs_content_type(self, s3_store):
        s3_store._client.generate_presigned_url = AsyncMock(return_value="https://signed")

        await s3_store.generate_presigned_url(
            "media", "a.png", "PUT", 600, content_type="image/png", metadata={"k": "v"}
        )

        args = s3_store._client.generate_presigned_url.call_args
        assert args.args == ("put_object",)
        assert args.kwargs["Params"] == {"Bucket": "media", "Key": "a.png", "ContentType": "image/png", "Metadata": {"k": "v"}}

    @pytest.mark.asyncio
    async def test_unsupported_method(self, s3_store):
        with pytest.raises(StorageValidationError):
            await s3_store.generate_presigned_url("media", "a.png", "DELETE", 600)


class TestResponseHeaderParams:
    def test_header_spellings(self):
        params = response_header_params(
            {
                "Content-Disposition": "attachment",
                "content_type": "text/plain",
                "ResponseCacheControl": "no-cache",
            }
        )

        assert params == {
            "ResponseContentDisposition": "attachment",
            "ResponseContentType": "text/plain",
            "ResponseCacheControl": "no-cache",
        }

    def test_unsupported_header(self):
        with pytest.raises(StorageValidationError):
            response_header_params({"X-Custom": "1"})
