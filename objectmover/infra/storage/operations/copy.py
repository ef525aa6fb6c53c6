"""Single object copy between any two locations.

- local to remote: delegated to ``UploadEngine``
- remote to local: delegated to ``DownloadEngine``
- local to local: ``shutil.copy2`` on a worker thread
- remote to remote: server-side ``copy_object`` first, falling back to a
  two-phase copy (download into a private staging directory, then upload)
  when server-side copy is disabled, the object is too large for it, or
  the store keeps rejecting it after the retry budget
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from pathlib import Path
import shutil
import tempfile
from typing import TYPE_CHECKING

from objectmover.infra.storage import metrics
from objectmover.infra.storage.exceptions import (
    InvalidPathError,
    StorageFileNotFoundError,
    StoragePermissionError,
    as_storage_error,
    is_retryable,
)
from objectmover.infra.storage.instrumentation import track_storage_operation
from objectmover.infra.storage.models import (
    AnyPath,
    CloudPath,
    LocalPath,
    ObjectMetadata,
    TransferOptions,
    TransferResult,
)
from objectmover.utils.retry import RetryStrategy, retry_call

from .strategy import REASON_REJECTED, ServerSideCopy, TwoPhaseCopy, choose_copy_strategy

if TYPE_CHECKING:
    from objectmover.core.settings.transfer import TransferSettings
    from objectmover.infra.storage.backends.protocol import ObjectStore

    from .download import DownloadEngine
    from .upload import UploadEngine

logger = logging.getLogger(__name__)

STAGING_PREFIX = "objectmover-copy-"

# Failures a two-phase copy cannot fix either
_TERMINAL_COPY_ERRORS = (StorageFileNotFoundError, StoragePermissionError)


class CopyOrchestrator:
    """Copies one object, choosing the cheapest path between the endpoints."""

    def __init__(
        self,
        store: ObjectStore,
        settings: TransferSettings,
        uploader: UploadEngine,
        downloader: DownloadEngine,
    ) -> None:
        self._store = store
        self._settings = settings
        self._uploader = uploader
        self._downloader = downloader
        self._retry = RetryStrategy.from_settings(settings, retry_if=is_retryable)

    async def copy(
        self,
        source: AnyPath,
        destination: AnyPath,
        options: TransferOptions | None = None,
    ) -> TransferResult:
        """Copy ``source`` to ``destination``.

        A directory destination receives the source's base name.

        Raises:
            InvalidPathError: If the source is a directory prefix
        """
        if source.is_directory:
            msg = f"Cannot copy a directory as an object: {source}"
            raise InvalidPathError(msg, metadata={"source": str(source)})

        options = options or TransferOptions()
        match (source, destination):
            case (LocalPath(), CloudPath()):
                return await self._uploader.upload(source, destination, options)
            case (CloudPath(), LocalPath()):
                return await self._downloader.download(source, destination, options)
            case (CloudPath(), CloudPath()):
                return await self._copy_remote(source, destination, options)
            case (LocalPath(), LocalPath()):
                return await self._copy_local(source, destination)
            case _:
                msg = f"Unsupported copy endpoints: {source!r} -> {destination!r}"
                raise InvalidPathError(msg)

    async def _copy_local(self, source: LocalPath, destination: LocalPath) -> TransferResult:
        target = destination.as_path()
        if destination.is_directory or target.is_dir():
            target = target / source.name
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copy2, source.as_path(), target)
        except OSError as e:
            error = as_storage_error(e, "copy")
            return TransferResult.failed(error.message, code=error.code, source=str(source))
        return TransferResult.ok(strategy="local", source=str(source), destination=str(target))

    # ========================================================================
    # Remote to remote
    # ========================================================================

    async def _copy_remote(
        self,
        source: CloudPath,
        destination: CloudPath,
        options: TransferOptions,
    ) -> TransferResult:
        if destination.is_directory:
            destination = destination.join(source.name)

        async with track_storage_operation(
            "copy", key=destination.key, bucket=destination.bucket, source=source.uri
        ) as ctx:
            result = await self._copy_remote_object(source, destination, options)
            result = result.with_metadata(source=source.uri, destination=destination.uri)
            if result.success:
                ctx["result_size"] = result.metadata.get("size")
            else:
                ctx["failed"] = result.metadata.get("code", "STORAGE_ERROR")
                ctx["message"] = result.message
            ctx["strategy"] = result.metadata.get("strategy")
            return result

    async def _copy_remote_object(
        self,
        source: CloudPath,
        destination: CloudPath,
        options: TransferOptions,
    ) -> TransferResult:
        timeout = options.get("timeout", self._settings.call_timeout)
        try:
            info = await retry_call(
                self._store.head_object,
                source.bucket,
                source.key,
                strategy=self._retry,
                timeout=timeout,
                name="head_object",
            )
        except Exception as e:
            error = as_storage_error(e, "copy")
            return TransferResult.failed(error.message, code=error.code)
        if info is None:
            return TransferResult.failed(f"Object not found: {source.uri}", code="STORAGE_NOT_FOUND")

        strategy = choose_copy_strategy(
            info.size,
            server_side_enabled=self._settings.server_side_copy_enabled,
            max_server_side_bytes=self._settings.max_server_side_copy_bytes,
        )

        if isinstance(strategy, ServerSideCopy):
            try:
                await retry_call(
                    self._store.copy_object,
                    source.bucket,
                    source.key,
                    destination.bucket,
                    destination.key,
                    strategy=self._retry,
                    timeout=timeout,
                    name="copy_object",
                )
            except Exception as e:
                error = as_storage_error(e, "copy")
                if isinstance(error, _TERMINAL_COPY_ERRORS):
                    metrics.record_strategy("copy", strategy.kind)
                    return TransferResult.failed(error.message, code=error.code, strategy=strategy.kind)
                logger.info(
                    "Server-side copy rejected, falling back to two-phase copy",
                    extra={"source": source.uri, "destination": destination.uri, "code": error.code},
                )
                strategy = TwoPhaseCopy(reason=REASON_REJECTED)
            else:
                metrics.record_strategy("copy", strategy.kind)
                return TransferResult.ok(strategy=strategy.kind, size=info.size)

        metrics.record_strategy("copy", strategy.kind)
        result = await self._copy_two_phase(source, destination, info, options)
        return result.with_metadata(strategy=strategy.kind, fallback_reason=strategy.reason, size=info.size)

    async def _copy_two_phase(
        self,
        source: CloudPath,
        destination: CloudPath,
        info: ObjectMetadata,
        options: TransferOptions,
    ) -> TransferResult:
        """Download into a private staging directory, then upload from it.

        The staging directory is removed on every exit path, including
        cancellation.
        """
        staging = await asyncio.to_thread(tempfile.mkdtemp, prefix=STAGING_PREFIX, dir=self._settings.temp_dir)
        try:
            staged = LocalPath(str(Path(staging) / "object"))
            downloaded = await self._downloader.download(source, staged, options)
            if not downloaded.success:
                return TransferResult.failed(
                    downloaded.message or "download phase failed",
                    code=downloaded.metadata.get("code"),
                    phase="download",
                )

            upload_options = dataclasses.replace(
                options,
                content_type=options.content_type or info.content_type,
                metadata=options.metadata or info.custom_metadata or None,
            )
            uploaded = await self._uploader.upload(staged, destination, upload_options)
            if not uploaded.success:
                return TransferResult.failed(
                    uploaded.message or "upload phase failed",
                    code=uploaded.metadata.get("code"),
                    phase="upload",
                )
            return TransferResult.ok(etag=uploaded.metadata.get("etag"))
        finally:
            await asyncio.shield(asyncio.to_thread(shutil.rmtree, staging, ignore_errors=True))
