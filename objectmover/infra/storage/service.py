"""Transfer service: one entry point per operation, with lifecycle management.

This module provides the main interface over the transfer engines:
- Singleton pattern for process-wide access
- Startup/shutdown of the object store client
- Raw path strings resolved against the default bucket
- Settings-derived defaults for batch concurrency and fail-fast

Every method accepts ``s3://bucket/key`` URIs, bare keys (resolved against
``STORAGE_DEFAULT_BUCKET``) or already resolved path objects.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from objectmover.core.settings import get_storage_settings, get_transfer_settings

from .backends.factory import create_object_store
from .exceptions import InvalidPathError, StorageNotConfiguredError, StorageValidationError
from .instrumentation import track_storage_operation
from .models import (
    BatchReport,
    CloudPath,
    ListFormat,
    ListType,
    LocalPath,
    TransferOptions,
    TransferRequest,
    TransferResult,
)
from .operations import (
    BatchCoordinator,
    CopyOrchestrator,
    DirectoryService,
    DownloadEngine,
    ObjectOperations,
    UploadEngine,
    presign,
)
from .path import PathResolver

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from objectmover.core.settings.storage import StorageSettings
    from objectmover.core.settings.transfer import TransferSettings

    from .backends.protocol import ObjectStore
    from .models import AnyPath, DirectoryEntry, DirectoryMetadata, ObjectMetadata, PresignedUrl

logger = logging.getLogger(__name__)

P = TypeVar("P", CloudPath, LocalPath)


class TransferService:
    """High-level transfer service.

    Example:
        service = get_transfer_service()
        await service.startup()

        result = await service.upload("./report.csv", "s3://reports/2024/report.csv")
        report = await service.batch_download(["a.bin", "b.bin"], "./downloads/")

        await service.shutdown()
    """

    def __init__(
        self,
        storage_settings: StorageSettings | None = None,
        transfer_settings: TransferSettings | None = None,
        store: ObjectStore | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            storage_settings: Optional override, loaded from the environment otherwise
            transfer_settings: Optional override, loaded from the environment otherwise
            store: Optional object store, built from storage settings otherwise
        """
        self._storage_settings = storage_settings or get_storage_settings()
        self._transfer_settings = transfer_settings or get_transfer_settings()
        self._store = store
        self._resolver = PathResolver(self._storage_settings.default_bucket)
        self._initialized = False

        self._uploader: UploadEngine | None = None
        self._downloader: DownloadEngine | None = None
        self._copier: CopyOrchestrator | None = None
        self._directories: DirectoryService | None = None
        self._objects: ObjectOperations | None = None

    @property
    def is_ready(self) -> bool:
        return self._initialized and self._store is not None and self._store.is_ready

    @property
    def storage_settings(self) -> StorageSettings:
        return self._storage_settings

    @property
    def transfer_settings(self) -> TransferSettings:
        return self._transfer_settings

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    async def startup(self) -> None:
        """Start the object store client and build the engines.

        Raises:
            StorageNotConfiguredError: If storage is disabled and no store was given
        """
        if self._initialized:
            return
        if self._store is None:
            self._store = create_object_store(self._storage_settings)

        logger.info(
            "Starting transfer service",
            extra={
                "backend": self._store.backend_name,
                "endpoint": self._storage_settings.endpoint,
                "default_bucket": self._storage_settings.default_bucket,
            },
        )
        await self._store.startup()

        settings = self._transfer_settings
        self._uploader = UploadEngine(self._store, settings)
        self._downloader = DownloadEngine(self._store, settings)
        self._copier = CopyOrchestrator(self._store, settings, self._uploader, self._downloader)
        self._directories = DirectoryService(self._store, settings, self._copier)
        self._objects = ObjectOperations(self._store, settings)
        self._initialized = True
        logger.info("Transfer service started")

    async def shutdown(self) -> None:
        if not self._initialized:
            logger.debug("Transfer service not initialized, nothing to shutdown")
            return
        if self._store is not None:
            await self._store.shutdown()
        self._initialized = False
        logger.info("Transfer service shutdown complete")

    async def health_check(self) -> bool:
        """True when the default bucket answers within the health check timeout."""
        if not self.is_ready or self._store is None:
            return False
        return await self._store.health_check(self._storage_settings.default_bucket)

    def _ensure_ready(self) -> ObjectStore:
        """Return the started store.

        Raises:
            StorageNotConfiguredError: If startup() has not completed
        """
        if not self.is_ready or self._store is None:
            raise StorageNotConfiguredError(
                message="Transfer service is not initialized",
                metadata={"is_configured": self._storage_settings.is_configured},
            )
        return self._store

    # ========================================================================
    # Single transfers
    # ========================================================================

    async def upload(
        self,
        source: str | LocalPath,
        destination: str | CloudPath,
        options: TransferOptions | None = None,
    ) -> TransferResult:
        self._ensure_ready()
        assert self._uploader is not None
        return await self._uploader.upload(
            self._resolver.resolve_local(source),
            self._resolver.resolve_remote(destination),
            options,
        )

    async def download(
        self,
        source: str | CloudPath,
        destination: str | LocalPath,
        options: TransferOptions | None = None,
    ) -> TransferResult:
        self._ensure_ready()
        assert self._downloader is not None
        return await self._downloader.download(
            self._resolver.resolve_remote(source),
            self._resolver.resolve_local(destination),
            options,
        )

    async def copy(
        self,
        source: str | AnyPath,
        destination: str | AnyPath,
        options: TransferOptions | None = None,
    ) -> TransferResult:
        self._ensure_ready()
        assert self._copier is not None
        return await self._copier.copy(
            self._resolver.resolve_any(source),
            self._resolver.resolve_any(destination),
            options,
        )

    # ========================================================================
    # Batches
    # ========================================================================

    async def batch_upload(
        self,
        sources: Sequence[str | LocalPath],
        destinations: Sequence[str | CloudPath] | str | CloudPath,
        concurrency: int | None = None,
        fail_fast: bool | None = None,
        options: TransferOptions | None = None,
    ) -> BatchReport:
        """Upload many files.

        ``destinations`` is either one destination per source or a single
        remote directory receiving every file under its base name.
        """
        self._ensure_ready()
        assert self._uploader is not None
        local = [self._resolver.resolve_local(source) for source in sources]
        remote = self._pair_destinations(local, destinations, self._resolver.resolve_remote)
        requests = [
            TransferRequest(source=src, destination=dst, options=options or TransferOptions())
            for src, dst in zip(local, remote, strict=True)
        ]
        uploader = self._uploader

        async def run(request: TransferRequest) -> TransferResult:
            return await uploader.upload(request.source, request.destination, request.options)  # type: ignore[arg-type]

        return await self._run_batch("batch_upload", run, requests, concurrency, fail_fast, options)

    async def batch_download(
        self,
        sources: Sequence[str | CloudPath],
        destinations: Sequence[str | LocalPath] | str | LocalPath,
        concurrency: int | None = None,
        fail_fast: bool | None = None,
        options: TransferOptions | None = None,
    ) -> BatchReport:
        """Download many objects.

        ``destinations`` is either one destination per source or a single
        local directory receiving every object under its base name.
        """
        self._ensure_ready()
        assert self._downloader is not None
        remote = [self._resolver.resolve_remote(source) for source in sources]
        local = self._pair_destinations(remote, destinations, self._resolver.resolve_local)
        requests = [
            TransferRequest(source=src, destination=dst, options=options or TransferOptions())
            for src, dst in zip(remote, local, strict=True)
        ]
        downloader = self._downloader

        async def run(request: TransferRequest) -> TransferResult:
            return await downloader.download(request.source, request.destination, request.options)  # type: ignore[arg-type]

        return await self._run_batch("batch_download", run, requests, concurrency, fail_fast, options)

    @staticmethod
    def _pair_destinations(
        sources: Sequence[AnyPath],
        destinations: Sequence[str | P] | str | P,
        resolve: Callable[[Any], P],
    ) -> list[P]:
        if isinstance(destinations, str | CloudPath | LocalPath):
            directory = PathResolver.normalize_directory(resolve(destinations))
            return [directory for _ in sources]
        if len(destinations) != len(sources):
            raise StorageValidationError(
                "Sources and destinations must have the same length",
                metadata={"sources": len(sources), "destinations": len(destinations)},
            )
        return [resolve(destination) for destination in destinations]

    async def _run_batch(
        self,
        operation: str,
        runner: Callable[[TransferRequest], Awaitable[TransferResult]],
        requests: list[TransferRequest],
        concurrency: int | None,
        fail_fast: bool | None,
        options: TransferOptions | None,
    ) -> BatchReport:
        settings = self._transfer_settings
        if options is not None:
            concurrency = concurrency or options.concurrency
            fail_fast = options.fail_fast if fail_fast is None else fail_fast
        coordinator = BatchCoordinator(runner, operation=operation)
        async with track_storage_operation(operation, items=len(requests)) as ctx:
            report = await coordinator.run_batch(
                requests,
                concurrency=concurrency or settings.batch_concurrency,
                fail_fast=settings.fail_fast if fail_fast is None else fail_fast,
            )
            if not report.success:
                ctx["failed"] = "STORAGE_PARTIAL_BATCH_FAILURE"
            return report

    # ========================================================================
    # Objects
    # ========================================================================

    async def delete(self, path: str | CloudPath) -> TransferResult:
        self._ensure_ready()
        assert self._objects is not None
        return await self._objects.delete(self._resolver.resolve_remote(path))

    async def get_bytes(self, path: str | CloudPath) -> bytes:
        self._ensure_ready()
        assert self._objects is not None
        return await self._objects.get_bytes(self._resolver.resolve_remote(path))

    async def object_info(self, path: str | CloudPath) -> ObjectMetadata | DirectoryMetadata:
        self._ensure_ready()
        assert self._objects is not None
        return await self._objects.object_info(self._resolver.resolve_remote(path))

    async def presign(
        self,
        path: str | CloudPath,
        method: str = "GET",
        expires_seconds: int | None = None,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
        response_headers: dict[str, str] | None = None,
    ) -> PresignedUrl:
        store = self._ensure_ready()
        return await presign(
            store,
            self._storage_settings,
            self._resolver.resolve_remote(path),
            method=method,
            expires_seconds=expires_seconds,
            content_type=content_type,
            metadata=metadata,
            response_headers=response_headers,
        )

    # ========================================================================
    # Directories
    # ========================================================================

    def _directory(self, prefix: str | CloudPath) -> CloudPath:
        return PathResolver.normalize_directory(self._resolver.resolve_remote(prefix))

    async def directory_create(self, prefix: str | CloudPath) -> TransferResult:
        self._ensure_ready()
        assert self._directories is not None
        return await self._directories.create(self._directory(prefix))

    async def directory_exists(self, prefix: str | CloudPath) -> bool:
        self._ensure_ready()
        assert self._directories is not None
        return await self._directories.exists(self._directory(prefix))

    async def directory_delete(self, prefix: str | CloudPath) -> TransferResult:
        self._ensure_ready()
        assert self._directories is not None
        return await self._directories.delete(self._directory(prefix))

    async def directory_list(
        self,
        prefix: str | CloudPath,
        recurse: bool = False,
        filter: str | None = None,  # noqa: A002
        type: ListType | str = ListType.ALL,  # noqa: A002
        format: ListFormat | str = ListFormat.PATHS,  # noqa: A002
    ) -> list[str] | list[DirectoryEntry]:
        self._ensure_ready()
        assert self._directories is not None
        return await self._directories.list(
            self._directory(prefix),
            recurse=recurse,
            filter=filter,
            type=ListType(type),
            format=ListFormat(format),
        )

    async def directory_copy(
        self,
        source: str | AnyPath,
        destination: str | AnyPath,
        recurse: bool = False,
        concurrency: int | None = None,
        fail_fast: bool | None = None,
    ) -> BatchReport:
        """Copy a directory; either side may be local, not both."""
        self._ensure_ready()
        assert self._directories is not None
        src = self._resolver.resolve_any(source)
        dst = self._resolver.resolve_any(destination)
        if isinstance(src, LocalPath) and isinstance(dst, LocalPath):
            msg = "Directory copy needs at least one remote side"
            raise InvalidPathError(msg, metadata={"source": str(src), "destination": str(dst)})
        return await self._directories.copy(
            src, dst, recurse=recurse, concurrency=concurrency, fail_fast=fail_fast
        )


# Singleton instance
_transfer_service: TransferService | None = None


def get_transfer_service() -> TransferService:
    """Get the singleton transfer service instance.

    Creates the instance on first call. The service must be started via
    startup() before use.
    """
    global _transfer_service
    if _transfer_service is None:
        _transfer_service = TransferService()
    return _transfer_service


def reset_transfer_service() -> None:
    """Reset the singleton instance (for testing only)."""
    global _transfer_service
    _transfer_service = None
