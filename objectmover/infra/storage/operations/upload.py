"""Upload engine: local file to object store.

Files up to ``upload_multipart_threshold`` bytes go up in one put. Larger
files use the multipart protocol:

1. initiate, obtaining an upload id (a failure here leaves nothing behind)
2. read the file in sequential parts and upload them concurrently, holding
   at most ``max_buffered_parts`` part bodies in memory
3. complete with the parts sorted by part number, or abort the session

Every initiated session ends in exactly one complete or abort, including
when the surrounding task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from typing import TYPE_CHECKING

from objectmover.infra.storage import metrics
from objectmover.infra.storage.exceptions import (
    InvalidPathError,
    StorageError,
    as_storage_error,
    first_failure,
    is_retryable,
)
from objectmover.infra.storage.instrumentation import track_storage_operation
from objectmover.infra.storage.models import (
    CloudPath,
    LocalPath,
    MultipartSession,
    TransferOptions,
    TransferResult,
)
from objectmover.utils.retry import RetryStrategy, retry_call

from .progress import ProgressTracker
from .strategy import Multipart, SinglePart, choose_upload_strategy

if TYPE_CHECKING:
    from pathlib import Path

    from objectmover.core.settings.transfer import TransferSettings
    from objectmover.infra.storage.backends.protocol import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def guess_content_type(filename: str) -> str:
    content_type, _ = mimetypes.guess_type(filename)
    return content_type or DEFAULT_CONTENT_TYPE


class UploadEngine:
    """Moves one local file to one remote key."""

    def __init__(self, store: ObjectStore, settings: TransferSettings) -> None:
        self._store = store
        self._settings = settings
        self._retry = RetryStrategy.from_settings(settings, retry_if=is_retryable)
        self._single_put_retry = RetryStrategy.from_settings(
            settings,
            max_attempts=settings.single_put_attempts,
            retry_if=is_retryable,
        )

    async def upload(
        self,
        source: LocalPath,
        destination: CloudPath,
        options: TransferOptions | None = None,
    ) -> TransferResult:
        """Upload ``source`` to ``destination``.

        A directory destination (trailing separator) receives the file's
        base name. Transfer failures are returned as a failed result.

        Raises:
            InvalidPathError: If source is not local or destination is not remote
        """
        if not isinstance(source, LocalPath) or not isinstance(destination, CloudPath):
            msg = "upload requires a local source and a remote destination"
            raise InvalidPathError(msg, metadata={"source": str(source), "destination": str(destination)})

        options = options or TransferOptions()
        file_path = source.as_path()
        if destination.is_directory:
            destination = destination.join(file_path.name)

        async with track_storage_operation(
            "upload", key=destination.key, bucket=destination.bucket
        ) as ctx:
            result = await self._upload(file_path, destination, options)
            if result.success:
                ctx["result_size"] = result.metadata.get("size")
            else:
                ctx["failed"] = result.metadata.get("code", "STORAGE_ERROR")
                ctx["message"] = result.message
            return result

    async def _upload(
        self,
        file_path: Path,
        destination: CloudPath,
        options: TransferOptions,
    ) -> TransferResult:
        base = {"source": str(file_path), "destination": destination.uri}
        try:
            stat = await asyncio.to_thread(file_path.stat)
        except OSError as e:
            error = as_storage_error(e, "upload")
            return TransferResult.failed(error.message, code=error.code, **base)
        if not file_path.is_file():
            return TransferResult.failed(
                f"Not a regular file: {file_path}", code="STORAGE_INVALID_PATH", **base
            )

        size = stat.st_size
        strategy = choose_upload_strategy(
            size,
            threshold=self._settings.upload_multipart_threshold,
            part_size=options.get("part_size", self._settings.part_size),
            max_parts=self._settings.max_parts,
        )
        metrics.record_strategy("upload", strategy.kind)
        content_type = options.content_type or guess_content_type(file_path.name)

        logger.debug(
            "Uploading file",
            extra={**base, "size_bytes": size, "strategy": strategy.kind},
        )

        match strategy:
            case SinglePart():
                result = await self._upload_single(file_path, destination, size, content_type, options)
            case Multipart(part_size=part_size, part_count=part_count):
                result = await self._upload_multipart(
                    file_path, destination, size, part_size, part_count, content_type, options
                )
        return result.with_metadata(strategy=strategy.kind, size=size, **base)

    # ========================================================================
    # Single put
    # ========================================================================

    async def _upload_single(
        self,
        file_path: Path,
        destination: CloudPath,
        size: int,
        content_type: str,
        options: TransferOptions,
    ) -> TransferResult:
        try:
            body = await asyncio.to_thread(file_path.read_bytes)
            etag = await retry_call(
                self._store.put_object,
                destination.bucket,
                destination.key,
                body,
                content_type=content_type,
                metadata=options.metadata,
                strategy=self._single_put_retry,
                timeout=options.get("timeout", self._settings.call_timeout),
                name="put_object",
            )
        except Exception as e:
            error = as_storage_error(e, "upload")
            logger.warning(
                f"Upload failed: {error.message}",
                extra={"key": destination.key, "bucket": destination.bucket, "code": error.code},
            )
            return TransferResult.failed(error.message, code=error.code)

        ProgressTracker(size, options.on_progress).advance(size)
        return TransferResult.ok(etag=etag, parts=1)

    # ========================================================================
    # Multipart
    # ========================================================================

    async def _upload_multipart(
        self,
        file_path: Path,
        destination: CloudPath,
        size: int,
        part_size: int,
        part_count: int,
        content_type: str,
        options: TransferOptions,
    ) -> TransferResult:
        timeout = options.get("timeout", self._settings.call_timeout)
        try:
            upload_id = await retry_call(
                self._store.create_multipart_upload,
                destination.bucket,
                destination.key,
                content_type=content_type,
                metadata=options.metadata,
                strategy=self._retry,
                timeout=timeout,
                name="create_multipart_upload",
            )
        except Exception as e:
            error = as_storage_error(e, "upload")
            return TransferResult.failed(
                f"Multipart initiation failed: {error.message}", code=error.code
            )

        session = MultipartSession(upload_id=upload_id, bucket=destination.bucket, key=destination.key)
        try:
            await self._upload_parts(session, file_path, size, part_size, part_count, options, timeout)
            etag = await retry_call(
                self._store.complete_multipart_upload,
                session.bucket,
                session.key,
                session.upload_id,
                session.ordered_parts(),
                strategy=self._retry,
                timeout=timeout,
                name="complete_multipart_upload",
            )
        except asyncio.CancelledError:
            await asyncio.shield(self._abort(session, timeout))
            raise
        except Exception as e:
            error = as_storage_error(e, "upload")
            logger.warning(
                f"Multipart upload failed, aborting session: {error.message}",
                extra={"key": session.key, "upload_id": session.upload_id, "code": error.code},
            )
            abort_error = await asyncio.shield(self._abort(session, timeout))
            result = TransferResult.failed(
                error.message,
                code=error.code,
                upload_id=session.upload_id,
                parts_completed=len(session.parts),
                aborted=abort_error is None,
            )
            if abort_error is not None:
                result = result.with_metadata(abort_error=abort_error.message)
            return result

        return TransferResult.ok(etag=etag, parts=part_count, part_size=part_size, upload_id=upload_id)

    async def _upload_parts(
        self,
        session: MultipartSession,
        file_path: Path,
        size: int,
        part_size: int,
        part_count: int,
        options: TransferOptions,
        timeout: float,
    ) -> None:
        """Read parts sequentially and upload them concurrently.

        The buffer semaphore is acquired before a part is read and released
        once it is uploaded, so memory is bounded by ``max_buffered_parts``
        part bodies. The first part to exhaust its retries cancels the rest.
        """
        buffered = asyncio.Semaphore(options.get("max_buffered_parts", self._settings.max_buffered_parts))
        workers = asyncio.Semaphore(options.get("concurrency", self._settings.upload_concurrency))
        progress = ProgressTracker(size, options.on_progress)

        handle = await asyncio.to_thread(open, file_path, "rb")
        try:
            async with asyncio.TaskGroup() as tg:
                for part_number in range(1, part_count + 1):
                    await buffered.acquire()
                    try:
                        body = await asyncio.to_thread(handle.read, part_size)
                    except BaseException:
                        buffered.release()
                        raise
                    tg.create_task(
                        self._upload_part(session, part_number, body, buffered, workers, timeout, progress)
                    )
        except BaseExceptionGroup as group:
            raise first_failure(group) from None
        finally:
            await asyncio.to_thread(handle.close)

    async def _upload_part(
        self,
        session: MultipartSession,
        part_number: int,
        body: bytes,
        buffered: asyncio.Semaphore,
        workers: asyncio.Semaphore,
        timeout: float,
        progress: ProgressTracker,
    ) -> None:
        try:
            async with workers:
                etag = await retry_call(
                    self._store.upload_part,
                    session.bucket,
                    session.key,
                    session.upload_id,
                    part_number,
                    body,
                    strategy=self._retry,
                    timeout=timeout,
                    name="upload_part",
                )
        finally:
            buffered.release()

        session.add_part(part_number, etag)
        metrics.storage_multipart_parts_total.inc()
        progress.advance(len(body))

    async def _abort(self, session: MultipartSession, timeout: float) -> StorageError | None:
        """Abort the session; return the abort failure instead of raising it."""
        try:
            await retry_call(
                self._store.abort_multipart_upload,
                session.bucket,
                session.key,
                session.upload_id,
                strategy=self._retry,
                timeout=timeout,
                name="abort_multipart_upload",
            )
        except Exception as e:
            error = as_storage_error(e, "abort_multipart_upload")
            metrics.storage_multipart_aborts_total.labels(outcome="abort_failed").inc()
            logger.exception(
                "Failed to abort multipart upload",
                extra={"key": session.key, "upload_id": session.upload_id},
            )
            return error

        metrics.storage_multipart_aborts_total.labels(outcome="aborted").inc()
        logger.info(
            "Aborted multipart upload",
            extra={"key": session.key, "upload_id": session.upload_id},
        )
        return None
