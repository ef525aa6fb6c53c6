"""Directory semantics over a flat key namespace.

A directory is a key convention, not a stored type: a prefix ending in
``/``, optionally marked by a zero-length placeholder object whose key is
the prefix itself. Any object sharing the prefix makes the directory
exist, with or without a placeholder.
"""

from __future__ import annotations

import asyncio
from fnmatch import fnmatchcase
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from objectmover.infra.storage.backends.protocol import MAX_DELETE_BATCH
from objectmover.infra.storage.exceptions import (
    InvalidPathError,
    as_storage_error,
    is_retryable,
)
from objectmover.infra.storage.instrumentation import track_storage_operation
from objectmover.infra.storage.models import (
    SEPARATOR,
    AnyPath,
    BatchItemError,
    BatchReport,
    CloudPath,
    DirectoryEntry,
    ListFormat,
    ListType,
    LocalPath,
    TransferOptions,
    TransferRequest,
    TransferResult,
)
from objectmover.infra.storage.path import PathResolver
from objectmover.utils.retry import RetryStrategy, retry_call

from .batch import BatchCoordinator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from objectmover.core.settings.transfer import TransferSettings
    from objectmover.infra.storage.backends.protocol import ObjectStore
    from objectmover.infra.storage.models import ObjectMetadata

    from .copy import CopyOrchestrator

logger = logging.getLogger(__name__)

R = TypeVar("R")

PLACEHOLDER_CONTENT_TYPE = "application/x-directory"


def is_placeholder_key(key: str) -> bool:
    return key.endswith(SEPARATOR)


async def iter_objects(
    store: ObjectStore,
    bucket: str,
    prefix: str,
    *,
    strategy: RetryStrategy,
    timeout: float,
) -> AsyncIterator[ObjectMetadata]:
    """Every object under ``prefix``, fetching each listing page with retries."""
    token: str | None = None
    while True:
        page = await retry_call(
            store.list_objects,
            bucket,
            prefix=prefix,
            continuation_token=token,
            strategy=strategy,
            timeout=timeout,
            name="list_objects",
        )
        for obj in page.objects:
            yield obj
        token = page.next_token
        if token is None:
            return


def _parent_prefixes(relative: str) -> list[str]:
    """Every intermediate directory of a relative key: ``a/b/c`` -> ``a/``, ``a/b/``."""
    parts = relative.rstrip(SEPARATOR).split(SEPARATOR)[:-1]
    return [SEPARATOR.join(parts[: i + 1]) + SEPARATOR for i in range(len(parts))]


def _format_entries(entries: list[DirectoryEntry], fmt: ListFormat) -> list[str] | list[DirectoryEntry]:
    match fmt:
        case ListFormat.PATHS:
            return [entry.uri for entry in entries]
        case ListFormat.KEYS:
            return [entry.key for entry in entries]
        case ListFormat.NAMES:
            return [entry.name for entry in entries]
        case ListFormat.ENTRIES:
            return entries
    msg = f"Unknown list format: {fmt}"
    raise ValueError(msg)


class DirectoryService:
    """create, exists, list, delete and copy for prefix directories."""

    def __init__(
        self,
        store: ObjectStore,
        settings: TransferSettings,
        copier: CopyOrchestrator,
    ) -> None:
        self._store = store
        self._settings = settings
        self._copier = copier
        self._retry = RetryStrategy.from_settings(settings, retry_if=is_retryable)

    async def _call(self, func: Callable[..., Awaitable[R]], *args: Any, name: str, **kwargs: Any) -> R:
        return await retry_call(
            func,
            *args,
            strategy=self._retry,
            timeout=self._settings.call_timeout,
            name=name,
            **kwargs,
        )

    def _iter_objects(self, bucket: str, prefix: str) -> AsyncIterator[ObjectMetadata]:
        return iter_objects(
            self._store, bucket, prefix, strategy=self._retry, timeout=self._settings.call_timeout
        )

    # ========================================================================
    # create / exists
    # ========================================================================

    async def create(self, prefix: CloudPath) -> TransferResult:
        """Write the placeholder for ``prefix``; an existing directory is left as is."""
        directory = PathResolver.normalize_directory(prefix)
        if directory.key == "":
            return TransferResult.ok("bucket root always exists", created=False, path=directory.uri)

        async with track_storage_operation("directory_create", key=directory.key, bucket=directory.bucket) as ctx:
            try:
                existing = await self._call(
                    self._store.head_object, directory.bucket, directory.key, name="head_object"
                )
                if existing is not None:
                    ctx["created"] = False
                    return TransferResult.ok(created=False, path=directory.uri)
                await self._call(
                    self._store.put_object,
                    directory.bucket,
                    directory.key,
                    b"",
                    content_type=PLACEHOLDER_CONTENT_TYPE,
                    name="put_object",
                )
            except Exception as e:
                error = as_storage_error(e, "directory_create")
                ctx["failed"] = error.code
                return TransferResult.failed(error.message, code=error.code, path=directory.uri)

            ctx["created"] = True
            logger.debug("Created directory placeholder", extra={"path": directory.uri})
            return TransferResult.ok(created=True, path=directory.uri)

    async def exists(self, prefix: CloudPath) -> bool:
        """True when the placeholder or any object under the prefix exists.

        Raises:
            StorageError: If the store cannot be queried
        """
        directory = PathResolver.normalize_directory(prefix)
        if directory.key:
            placeholder = await self._call(
                self._store.head_object, directory.bucket, directory.key, name="head_object"
            )
            if placeholder is not None:
                return True
        page = await self._call(
            self._store.list_objects,
            directory.bucket,
            prefix=directory.key,
            max_keys=1,
            name="list_objects",
        )
        return bool(page.objects or page.common_prefixes)

    # ========================================================================
    # delete
    # ========================================================================

    async def delete(self, prefix: CloudPath) -> TransferResult:
        """Delete every object under the prefix, placeholder included.

        A prefix with no objects is a successful no-op.

        Raises:
            InvalidPathError: If the prefix is the bucket root
        """
        directory = PathResolver.normalize_directory(prefix)
        if directory.key == "":
            msg = f"Refusing to delete the whole bucket: {directory.uri}"
            raise InvalidPathError(msg, metadata={"bucket": directory.bucket})

        async with track_storage_operation("directory_delete", key=directory.key, bucket=directory.bucket) as ctx:
            try:
                keys = [obj.key async for obj in self._iter_objects(directory.bucket, directory.key)]
                failed: list[str] = []
                for start in range(0, len(keys), MAX_DELETE_BATCH):
                    chunk = keys[start : start + MAX_DELETE_BATCH]
                    failed.extend(
                        await self._call(
                            self._store.delete_objects, directory.bucket, chunk, name="delete_objects"
                        )
                    )
            except Exception as e:
                error = as_storage_error(e, "directory_delete")
                ctx["failed"] = error.code
                return TransferResult.failed(error.message, code=error.code, path=directory.uri)

            ctx["deleted"] = len(keys) - len(failed)
            if failed:
                ctx["failed"] = "STORAGE_PARTIAL_BATCH_FAILURE"
                return TransferResult.failed(
                    f"{len(failed)} object(s) could not be deleted",
                    code="STORAGE_PARTIAL_BATCH_FAILURE",
                    path=directory.uri,
                    deleted=len(keys) - len(failed),
                    failed_keys=failed,
                )
            logger.info("Deleted directory", extra={"path": directory.uri, "objects": len(keys)})
            return TransferResult.ok(path=directory.uri, deleted=len(keys))

    # ========================================================================
    # copy
    # ========================================================================

    async def copy(
        self,
        source: AnyPath,
        destination: AnyPath,
        recurse: bool = False,
        concurrency: int | None = None,
        fail_fast: bool | None = None,
        options: TransferOptions | None = None,
    ) -> BatchReport:
        """Copy every object under ``source`` to the same relative key under ``destination``.

        ``source`` may be a remote prefix or a local directory. Success
        requires every constituent copy to succeed; failures are listed per
        key in the report.
        """
        source = PathResolver.normalize_directory(source)
        destination = PathResolver.normalize_directory(destination)
        options = options or TransferOptions()

        async with track_storage_operation("directory_copy", source=str(source), destination=str(destination)) as ctx:
            try:
                relatives = await self._collect_sources(source, recurse)
            except Exception as e:
                error = as_storage_error(e, "directory_copy")
                ctx["failed"] = error.code
                return BatchReport(
                    success=False,
                    errors=[BatchItemError(index=0, message=error.message, key=str(source), code=error.code)],
                )

            if not relatives and not await self._source_exists(source):
                ctx["failed"] = "STORAGE_NOT_FOUND"
                return BatchReport(
                    success=False,
                    errors=[
                        BatchItemError(
                            index=0,
                            message=f"Source directory not found: {source}",
                            key=str(source),
                            code="STORAGE_NOT_FOUND",
                        )
                    ],
                )

            requests = [
                TransferRequest(source=source.join(relative), destination=destination.join(relative), options=options)
                for relative in relatives
            ]
            coordinator = BatchCoordinator(self._copy_entry, operation="directory_copy")
            report = await coordinator.run_batch(
                requests,
                concurrency=concurrency or self._settings.batch_concurrency,
                fail_fast=self._settings.fail_fast if fail_fast is None else fail_fast,
            )
            ctx["objects"] = len(requests)
            if not report.success:
                ctx["failed"] = "STORAGE_PARTIAL_BATCH_FAILURE"
            return report

    async def _collect_sources(self, source: AnyPath, recurse: bool) -> list[str]:
        """Relative keys of every object to copy, in listing order."""
        if isinstance(source, LocalPath):
            return await asyncio.to_thread(self._walk_local, source.as_path(), recurse)

        if recurse:
            return [obj.key[len(source.key) :] async for obj in self._iter_objects(source.bucket, source.key)]

        relatives: list[str] = []
        token: str | None = None
        while True:
            page = await self._call(
                self._store.list_objects,
                source.bucket,
                prefix=source.key,
                delimiter=SEPARATOR,
                continuation_token=token,
                name="list_objects",
            )
            relatives.extend(obj.key[len(source.key) :] for obj in page.objects)
            token = page.next_token
            if token is None:
                return relatives

    @staticmethod
    def _walk_local(root: Path, recurse: bool) -> list[str]:
        if not root.is_dir():
            return []
        candidates = root.rglob("*") if recurse else root.iterdir()
        return sorted(path.relative_to(root).as_posix() for path in candidates if path.is_file())

    async def _source_exists(self, source: AnyPath) -> bool:
        if isinstance(source, LocalPath):
            return await asyncio.to_thread(source.as_path().is_dir)
        return await self.exists(source)

    async def _copy_entry(self, request: TransferRequest) -> TransferResult:
        """Copy one object; placeholders become directories at the destination."""
        source, destination = request.source, request.destination
        if isinstance(source, CloudPath) and source.is_directory:
            if isinstance(destination, CloudPath):
                return await self.create(destination)
            await asyncio.to_thread(destination.as_path().mkdir, parents=True, exist_ok=True)
            return TransferResult.ok(created=True, path=str(destination))
        return await self._copier.copy(source, destination, request.options)

    async def _list_shallow(self, directory: CloudPath) -> list[DirectoryEntry]:
        found: dict[str, DirectoryEntry] = {}
        token: str | None = None
        while True:
            page = await self._call(
                self._store.list_objects,
                directory.bucket,
                prefix=directory.key,
                delimiter=SEPARATOR,
                continuation_token=token,
                name="list_objects",
            )
            for obj in page.objects:
                if obj.key == directory.key:
                    continue
                found[obj.key] = DirectoryEntry(
                    bucket=directory.bucket,
                    key=obj.key,
                    is_directory=is_placeholder_key(obj.key),
                    size=obj.size,
                    last_modified=obj.last_modified,
                )
            for sub in page.common_prefixes:
                found.setdefault(sub, DirectoryEntry(bucket=directory.bucket, key=sub, is_directory=True))
            token = page.next_token
            if token is None:
                return list(found.values())

    async def _list_recursive(self, directory: CloudPath) -> list[DirectoryEntry]:
        found: dict[str, DirectoryEntry] = {}
        async for obj in self._iter_objects(directory.bucket, directory.key):
            relative = obj.key[len(directory.key) :]
            if not relative:
                continue
            for parent in _parent_prefixes(relative):
                key = directory.key + parent
                found.setdefault(key, DirectoryEntry(bucket=directory.bucket, key=key, is_directory=True))
            found[obj.key] = DirectoryEntry(
                bucket=directory.bucket,
                key=obj.key,
                is_directory=is_placeholder_key(obj.key),
                size=obj.size,
                last_modified=obj.last_modified,
            )
        return list(found.values())

    # ========================================================================
    # list
    # ========================================================================

    async def list(
        self,
        prefix: CloudPath,
        recurse: bool = False,
        filter: str | None = None,  # noqa: A002
        type: ListType = ListType.ALL,  # noqa: A002
        format: ListFormat = ListFormat.PATHS,  # noqa: A002
    ) -> list[str] | list[DirectoryEntry]:
        """Enumerate the directory.

        Without ``recurse`` anything past the next separator collapses into
        one sub-directory entry. ``filter`` is a glob matched against entry
        names (without the trailing separator). The directory's own
        placeholder is never listed.
        """
        directory = PathResolver.normalize_directory(prefix)
        async with track_storage_operation("directory_list", key=directory.key, bucket=directory.bucket) as ctx:
            if recurse:
                entries = await self._list_recursive(directory)
            else:
                entries = await self._list_shallow(directory)

            if type is ListType.FILES:
                entries = [entry for entry in entries if not entry.is_directory]
            elif type is ListType.DIRECTORIES:
                entries = [entry for entry in entries if entry.is_directory]
            if filter:
                entries = [entry for entry in entries if fnmatchcase(entry.name.rstrip(SEPARATOR), filter)]

            entries.sort(key=lambda entry: entry.key)
            ctx["count"] = len(entries)
            return _format_entries(entries, format)
