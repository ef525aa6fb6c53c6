"""Single object operations: delete, read into memory, inspect."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from objectmover.infra.storage.exceptions import (
    InvalidPathError,
    StorageFileNotFoundError,
    as_storage_error,
    is_retryable,
)
from objectmover.infra.storage.instrumentation import track_storage_operation
from objectmover.infra.storage.models import (
    CloudPath,
    DirectoryMetadata,
    ObjectMetadata,
    TransferResult,
)
from objectmover.utils.retry import RetryStrategy, retry_call

from .directory import is_placeholder_key, iter_objects

if TYPE_CHECKING:
    from datetime import datetime

    from objectmover.core.settings.transfer import TransferSettings
    from objectmover.infra.storage.backends.protocol import ObjectStore

logger = logging.getLogger(__name__)


class ObjectOperations:
    def __init__(self, store: ObjectStore, settings: TransferSettings) -> None:
        self._store = store
        self._settings = settings
        self._retry = RetryStrategy.from_settings(settings, retry_if=is_retryable)

    async def delete(self, path: CloudPath) -> TransferResult:
        """Delete one object. A missing object still counts as deleted."""
        if path.is_directory:
            msg = f"Use a directory delete for prefixes: {path.uri}"
            raise InvalidPathError(msg, metadata={"path": path.uri})

        async with track_storage_operation("delete", key=path.key, bucket=path.bucket) as ctx:
            try:
                await retry_call(
                    self._store.delete_object,
                    path.bucket,
                    path.key,
                    strategy=self._retry,
                    timeout=self._settings.call_timeout,
                    name="delete_object",
                )
            except Exception as e:
                error = as_storage_error(e, "delete")
                ctx["failed"] = error.code
                return TransferResult.failed(error.message, code=error.code, path=path.uri)
            return TransferResult.ok(path=path.uri)

    async def get_bytes(self, path: CloudPath) -> bytes:
        """Read the whole object into memory.

        Raises:
            StorageFileNotFoundError: If the object does not exist
            StorageError: For any other failure, after retries
        """
        if path.is_directory:
            msg = f"Cannot read a directory prefix: {path.uri}"
            raise InvalidPathError(msg, metadata={"path": path.uri})

        async with track_storage_operation("get_bytes", key=path.key, bucket=path.bucket) as ctx:
            try:
                data = await retry_call(
                    self._store.get_object,
                    path.bucket,
                    path.key,
                    strategy=self._retry,
                    timeout=self._settings.call_timeout,
                    name="get_object",
                )
            except Exception as e:
                raise as_storage_error(e, "get_bytes") from e
            ctx["result_size"] = len(data)
            return data

    async def object_info(self, path: CloudPath) -> ObjectMetadata | DirectoryMetadata:
        """Metadata of the object at ``path``, or the aggregate of the prefix.

        A key naming a real object returns its metadata. Otherwise the key is
        treated as a prefix and every object beneath it is summed; the
        directory placeholder itself is not counted.

        Raises:
            StorageFileNotFoundError: If neither an object nor a prefix exists
        """
        async with track_storage_operation("object_info", key=path.key, bucket=path.bucket):
            try:
                if not path.is_directory:
                    info = await retry_call(
                        self._store.head_object,
                        path.bucket,
                        path.key,
                        strategy=self._retry,
                        timeout=self._settings.call_timeout,
                        name="head_object",
                    )
                    if info is not None:
                        return info
                return await self._aggregate(path.as_directory())
            except StorageFileNotFoundError:
                raise
            except Exception as e:
                raise as_storage_error(e, "object_info") from e

    async def _aggregate(self, directory: CloudPath) -> DirectoryMetadata:
        seen = False
        count = 0
        total = 0
        latest: datetime | None = None
        listing = iter_objects(
            self._store,
            directory.bucket,
            directory.key,
            strategy=self._retry,
            timeout=self._settings.call_timeout,
        )
        async for obj in listing:
            seen = True
            if is_placeholder_key(obj.key):
                continue
            count += 1
            total += obj.size
            if obj.last_modified is not None and (latest is None or obj.last_modified > latest):
                latest = obj.last_modified

        if not seen:
            raise StorageFileNotFoundError(
                f"No object or prefix at {directory.uri}",
                metadata={"bucket": directory.bucket, "key": directory.key},
            )
        return DirectoryMetadata(
            key=directory.key,
            object_count=count,
            total_size=total,
            last_modified_latest=latest,
        )
