"""S3-compatible object store implementation.

Implements the ObjectStore protocol for AWS S3, MinIO, and other
S3-compatible services using aioboto3.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any, cast

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from objectmover.infra.storage.exceptions import (
    NOT_FOUND_CODES,
    StorageError,
    StorageNotConfiguredError,
    StorageValidationError,
    map_boto_error,
    map_transport_error,
)
from objectmover.infra.storage.models import ObjectMetadata

from ..protocol import MAX_DELETE_BATCH, ListPage

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from objectmover.core.settings.storage import StorageSettings
    from objectmover.infra.storage.models import CompletedPart

logger = logging.getLogger(__name__)

# Presign ``response_headers`` keys to GetObject override parameters
_RESPONSE_HEADER_PARAMS = {
    "cachecontrol": "ResponseCacheControl",
    "contentdisposition": "ResponseContentDisposition",
    "contentencoding": "ResponseContentEncoding",
    "contentlanguage": "ResponseContentLanguage",
    "contenttype": "ResponseContentType",
    "expires": "ResponseExpires",
}

_PRESIGN_CLIENT_METHODS = {"GET": "get_object", "PUT": "put_object"}


def response_header_params(headers: dict[str, str]) -> dict[str, str]:
    """Translate response header overrides into GetObject parameters.

    Accepts HTTP header spelling (``Content-Disposition``), snake case
    (``content_disposition``) or the parameter name itself.

    Raises:
        StorageValidationError: For headers S3 cannot override.
    """
    params: dict[str, str] = {}
    for name, value in headers.items():
        if name.startswith("Response"):
            params[name] = value
            continue
        normalized = name.lower().replace("-", "").replace("_", "")
        param = _RESPONSE_HEADER_PARAMS.get(normalized)
        if param is None:
            raise StorageValidationError(
                f"Unsupported response header override: {name}",
                metadata={"header": name, "supported": sorted(_RESPONSE_HEADER_PARAMS)},
            )
        params[param] = value
    return params


class S3ObjectStore:
    """S3-compatible object store.

    Implements the ObjectStore protocol over a single long-lived aioboto3
    client whose connection pool is shared by every concurrent part, range
    and batch item.

    Example:
        store = S3ObjectStore(settings)
        await store.startup()
        etag = await store.put_object("media", "hello.txt", b"hello")
        await store.shutdown()
    """

    def __init__(self, settings: StorageSettings) -> None:
        """Initialize the store.

        Args:
            settings: Storage settings with S3 connection configuration

        Raises:
            StorageNotConfiguredError: If storage is disabled
        """
        if not settings.is_configured:
            msg = "S3 backend not configured. Set STORAGE_ENABLED=true."
            raise StorageNotConfiguredError(msg)

        self.settings = settings
        self._session = aioboto3.Session()
        self._client: Any = None
        self._client_context: Any = None

    @property
    def backend_name(self) -> str:
        return "s3"

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    # ========================================================================
    # Lifecycle Management
    # ========================================================================

    async def startup(self) -> None:
        """Initialize S3 client and connection pool."""
        if self._client is not None:
            logger.debug("S3 backend already initialized")
            return

        logger.info(
            "Initializing S3 backend",
            extra={
                "default_bucket": self.settings.default_bucket,
                "endpoint": self.settings.endpoint,
                "region": self.settings.region,
            },
        )

        try:
            boto_config = Config(
                retries={
                    "max_attempts": self.settings.max_retries,
                    "mode": self.settings.retry_mode,
                },
                connect_timeout=self.settings.timeout,
                read_timeout=self.settings.timeout,
                max_pool_connections=self.settings.max_pool_connections,
            )

            self._client_context = self._session.client(
                "s3",
                **self.settings.get_boto3_config(),
                config=boto_config,
            )
            self._client = await self._client_context.__aenter__()

            logger.info("S3 backend initialized successfully")

        except Exception as e:
            self._client_context = None
            logger.exception("Failed to initialize S3 backend", extra={"error": str(e)})
            raise StorageError(
                f"Failed to initialize S3 backend: {e}",
                code="STORAGE_INITIALIZATION_ERROR",
            ) from e

    async def shutdown(self) -> None:
        """Shutdown S3 client gracefully."""
        if self._client_context is None:
            logger.debug("S3 backend not initialized, nothing to shutdown")
            return

        logger.info("Shutting down S3 backend")

        try:
            await self._client_context.__aexit__(None, None, None)
        except Exception as e:
            logger.warning(f"Error closing S3 client: {e}")
        finally:
            self._client = None
            self._client_context = None

    async def health_check(self, bucket: str | None = None) -> bool:
        """HEAD the bucket within the configured health check timeout."""
        if self._client is None:
            return False

        bucket = bucket or self.settings.default_bucket
        if not bucket:
            return False

        try:
            async with asyncio.timeout(self.settings.health_check_timeout):
                await self._client.head_bucket(Bucket=bucket)
            return True
        except (ClientError, BotoCoreError, TimeoutError) as e:
            logger.warning("S3 health check failed", extra={"error": str(e), "bucket": bucket})
            return False

    def _ensure_client(self) -> Any:
        """Return the initialized client.

        Raises:
            StorageNotConfiguredError: If startup() has not been called
        """
        if self._client is None:
            msg = "S3 backend not initialized. Call startup() first."
            raise StorageNotConfiguredError(msg)
        return self._client

    @contextmanager
    def _translate_errors(self, operation: str, bucket: str, key: str | None = None) -> Iterator[None]:
        """Re-raise botocore failures as StorageError subclasses."""
        try:
            yield
        except ClientError as e:
            logger.debug(
                "S3 request failed",
                extra={"operation": operation, "bucket": bucket, "key": key, "error": str(e)},
            )
            raise map_boto_error(e, operation=operation, key=key, bucket=bucket) from e
        except BotoCoreError as e:
            logger.debug(
                "S3 transport error",
                extra={"operation": operation, "bucket": bucket, "key": key, "error": str(e)},
            )
            raise map_transport_error(e, operation=operation, key=key, bucket=bucket) from e

    # ========================================================================
    # Writes
    # ========================================================================

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        client = self._ensure_client()
        extra_args: dict[str, Any] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            extra_args["Metadata"] = metadata

        with self._translate_errors("put_object", bucket, key):
            response = await client.put_object(Bucket=bucket, Key=key, Body=body, **extra_args)

        logger.debug(
            "Object stored",
            extra={"bucket": bucket, "key": key, "size_bytes": len(body)},
        )
        return str(response.get("ETag", "")).strip('"')

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        client = self._ensure_client()
        extra_args: dict[str, Any] = {}
        if content_type:
            extra_args["ContentType"] = content_type
        if metadata:
            extra_args["Metadata"] = metadata

        with self._translate_errors("create_multipart_upload", bucket, key):
            response = await client.create_multipart_upload(Bucket=bucket, Key=key, **extra_args)
        return cast("str", response["UploadId"])

    async def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> str:
        client = self._ensure_client()
        with self._translate_errors("upload_part", bucket, key):
            response = await client.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=body,
            )
        return str(response["ETag"])

    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: list[CompletedPart],
    ) -> str:
        client = self._ensure_client()
        with self._translate_errors("complete_multipart_upload", bucket, key):
            response = await client.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": [part.to_boto() for part in parts]},
            )
        return str(response.get("ETag", "")).strip('"')

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        client = self._ensure_client()
        with self._translate_errors("abort_multipart_upload", bucket, key):
            await client.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)

    async def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
    ) -> None:
        client = self._ensure_client()
        with self._translate_errors("copy_object", source_bucket, source_key):
            await client.copy_object(
                CopySource={"Bucket": source_bucket, "Key": source_key},
                Bucket=dest_bucket,
                Key=dest_key,
            )

        logger.debug(
            "Object copied server-side",
            extra={
                "source_bucket": source_bucket,
                "source_key": source_key,
                "dest_bucket": dest_bucket,
                "dest_key": dest_key,
            },
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        client = self._ensure_client()
        with self._translate_errors("delete_object", bucket, key):
            await client.delete_object(Bucket=bucket, Key=key)

    async def delete_objects(self, bucket: str, keys: list[str]) -> list[str]:
        if not keys:
            return []
        if len(keys) > MAX_DELETE_BATCH:
            raise StorageValidationError(
                f"delete_objects accepts at most {MAX_DELETE_BATCH} keys",
                metadata={"count": len(keys)},
            )

        client = self._ensure_client()
        with self._translate_errors("delete_objects", bucket):
            response = await client.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
            )

        errors = response.get("Errors", [])
        for error in errors:
            logger.warning(
                "Object could not be deleted",
                extra={"bucket": bucket, "key": error.get("Key"), "code": error.get("Code")},
            )
        return [error["Key"] for error in errors]

    # ========================================================================
    # Reads
    # ========================================================================

    async def head_object(self, bucket: str, key: str) -> ObjectMetadata | None:
        client = self._ensure_client()
        try:
            response = await client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in NOT_FOUND_CODES:
                return None
            raise map_boto_error(e, operation="head_object", key=key, bucket=bucket) from e
        except BotoCoreError as e:
            raise map_transport_error(e, operation="head_object", key=key, bucket=bucket) from e

        return ObjectMetadata(
            key=key,
            size=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            etag=str(response.get("ETag", "")).strip('"') or None,
            last_modified=response.get("LastModified"),
            custom_metadata=dict(response.get("Metadata", {})),
        )

    async def get_object(
        self,
        bucket: str,
        key: str,
        start: int | None = None,
        end: int | None = None,
    ) -> bytes:
        client = self._ensure_client()
        kwargs: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if start is not None:
            kwargs["Range"] = f"bytes={start}-{'' if end is None else end}"

        with self._translate_errors("get_object", bucket, key):
            response = await client.get_object(**kwargs)
            async with response["Body"] as stream:
                data = await stream.read()
        return bytes(data)

    async def iter_object(self, bucket: str, key: str, chunk_size: int) -> AsyncIterator[bytes]:
        client = self._ensure_client()
        with self._translate_errors("get_object", bucket, key):
            response = await client.get_object(Bucket=bucket, Key=key)
            async with response["Body"] as stream:
                while chunk := await stream.read(chunk_size):
                    yield bytes(chunk)

    async def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str | None = None,
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ListPage:
        client = self._ensure_client()
        kwargs: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": max_keys}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if continuation_token:
            kwargs["ContinuationToken"] = continuation_token

        with self._translate_errors("list_objects", bucket, prefix):
            response = await client.list_objects_v2(**kwargs)

        objects = [
            ObjectMetadata(
                key=item["Key"],
                size=int(item.get("Size", 0)),
                etag=str(item.get("ETag", "")).strip('"') or None,
                last_modified=item.get("LastModified"),
            )
            for item in response.get("Contents", [])
        ]
        common_prefixes = [item["Prefix"] for item in response.get("CommonPrefixes", [])]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None

        logger.debug(
            "Listed objects",
            extra={
                "bucket": bucket,
                "prefix": prefix,
                "count": len(objects),
                "prefixes": len(common_prefixes),
                "has_more": next_token is not None,
            },
        )
        return ListPage(objects=objects, common_prefixes=common_prefixes, next_token=next_token)

    async def stream_objects(self, bucket: str, prefix: str = "") -> AsyncIterator[ObjectMetadata]:
        continuation_token: str | None = None

        while True:
            page = await self.list_objects(
                bucket=bucket,
                prefix=prefix,
                continuation_token=continuation_token,
            )
            for obj in page.objects:
                yield obj

            continuation_token = page.next_token
            if continuation_token is None:
                break

    # ========================================================================
    # Presigned URLs
    # ========================================================================

    async def generate_presigned_url(
        self,
        bucket: str,
        key: str,
        method: str,
        expires_in: int,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        response_headers: dict[str, str] | None = None,
    ) -> str:
        client = self._ensure_client()
        client_method = _PRESIGN_CLIENT_METHODS.get(method.upper())
        if client_method is None:
            raise StorageValidationError(
                f"Unsupported presign method: {method}",
                metadata={"method": method, "supported": sorted(_PRESIGN_CLIENT_METHODS)},
            )

        params: dict[str, Any] = {"Bucket": bucket, "Key": key}
        if client_method == "put_object":
            if content_type:
                params["ContentType"] = content_type
            if metadata:
                params["Metadata"] = metadata
        elif response_headers:
            params.update(response_header_params(response_headers))

        with self._translate_errors("generate_presigned_url", bucket, key):
            url = await client.generate_presigned_url(
                client_method,
                Params=params,
                ExpiresIn=expires_in,
            )

        logger.debug(
            "Generated presigned URL",
            extra={"bucket": bucket, "key": key, "method": method, "expires_in": expires_in},
        )
        return cast("str", url)
