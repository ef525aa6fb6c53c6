"""Download engine: object store to local file.

Objects up to ``download_multipart_threshold`` bytes are streamed with one
GET. Larger objects are split into a range plan and fetched with
concurrent ranged GETs, each written at its own offset of a preallocated
file. The number of ranges in flight is governed by ``ConcurrencyThrottle``,
which halves its limit on bursts of connection-level failures and climbs
back one slot at a time as ranges succeed.

Bytes always land in ``<destination>.part`` first and are moved into place
with ``os.replace`` once complete, so a failed or cancelled download never
leaves a truncated destination behind.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
import logging
import os
from pathlib import Path
import threading
from typing import TYPE_CHECKING, BinaryIO

from objectmover.infra.storage import metrics
from objectmover.infra.storage.exceptions import (
    InvalidPathError,
    StorageFileNotFoundError,
    as_storage_error,
    first_failure,
    is_connection_failure,
    is_retryable,
)
from objectmover.infra.storage.instrumentation import track_storage_operation
from objectmover.infra.storage.models import (
    ByteRange,
    CloudPath,
    LocalPath,
    TransferOptions,
    TransferResult,
)
from objectmover.infra.tracing import add_span_event
from objectmover.utils.retry import RetryStrategy, retry_call

from .progress import ProgressTracker
from .strategy import Ranged, SingleStream, choose_download_strategy

if TYPE_CHECKING:
    from objectmover.core.settings.transfer import TransferSettings
    from objectmover.infra.storage.backends.protocol import ObjectStore

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".part"


class ConcurrencyThrottle:
    """Adaptive ceiling on concurrent ranged reads within one download.

    ``acquire`` blocks while ``in_flight`` has reached ``limit``, so a
    reduction takes effect for the very next dispatch. Ranges already in
    flight are left to finish.

    Args:
        limit: Starting (and maximum) concurrency
        minimum: Floor for reductions
        failure_threshold: Connection failures in a row that halve the limit
        recovery_successes: Successes in a row that raise the limit by one
    """

    def __init__(
        self,
        limit: int,
        minimum: int = 1,
        failure_threshold: int = 2,
        recovery_successes: int = 4,
    ) -> None:
        if limit < 1:
            msg = f"limit must be at least 1, got {limit}"
            raise ValueError(msg)
        self.maximum = limit
        self.minimum = max(1, min(minimum, limit))
        self.limit = limit
        self.in_flight = 0
        self.peak = 0
        self.reductions = 0
        self._failure_threshold = failure_threshold
        self._recovery_successes = recovery_successes
        self._failures = 0
        self._successes = 0
        self._condition = asyncio.Condition()

    async def acquire(self) -> None:
        async with self._condition:
            await self._condition.wait_for(lambda: self.in_flight < self.limit)
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)

    async def release(self) -> None:
        async with self._condition:
            self.in_flight -= 1
            self._condition.notify_all()

    def record_failure(self, error: BaseException) -> None:
        """Count a failed range attempt; connection-level failures may lower the limit.

        Lowering never needs to wake waiters, so this is safe to call from
        synchronous retry callbacks.
        """
        if not is_connection_failure(error):
            return
        self._successes = 0
        self._failures += 1
        if self._failures < self._failure_threshold or self.limit <= self.minimum:
            return

        self._failures = 0
        self.limit = max(self.minimum, self.limit // 2)
        self.reductions += 1
        metrics.storage_download_throttle_reductions_total.inc()
        metrics.storage_download_concurrency_limit.set(self.limit)
        logger.info(
            "Reduced ranged download concurrency",
            extra={"limit": self.limit, "in_flight": self.in_flight},
        )
        add_span_event("download.throttle_reduced", {"limit": self.limit})

    async def record_success(self) -> None:
        async with self._condition:
            self._failures = 0
            self._successes += 1
            if self._successes < self._recovery_successes or self.limit >= self.maximum:
                return
            self._successes = 0
            self.limit += 1
            metrics.storage_download_concurrency_limit.set(self.limit)
            self._condition.notify_all()


def resolve_local_destination(source: CloudPath, destination: LocalPath) -> Path:
    """Destination file for ``source``; directories receive the object's base name."""
    target = destination.as_path()
    if destination.is_directory or target.is_dir():
        return target / source.name
    return target


def partial_path(target: Path) -> Path:
    return target.with_name(f"{target.name}{PARTIAL_SUFFIX}")


class _OffsetWriter:
    """Positional writes into one open file from worker threads."""

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle
        self._lock = threading.Lock()

    def write_at(self, offset: int, data: bytes) -> None:
        with self._lock:
            self._handle.seek(offset)
            self._handle.write(data)


class DownloadEngine:
    """Moves one remote object to one local file."""

    def __init__(self, store: ObjectStore, settings: TransferSettings) -> None:
        self._store = store
        self._settings = settings
        self._retry = RetryStrategy.from_settings(settings, retry_if=is_retryable)

    async def download(
        self,
        source: CloudPath,
        destination: LocalPath,
        options: TransferOptions | None = None,
    ) -> TransferResult:
        """Download ``source`` into ``destination``.

        Raises:
            InvalidPathError: If source is not a remote object key or
                destination is not local
        """
        if not isinstance(source, CloudPath) or not isinstance(destination, LocalPath):
            msg = "download requires a remote source and a local destination"
            raise InvalidPathError(msg, metadata={"source": str(source), "destination": str(destination)})
        if source.is_directory:
            msg = f"Cannot download a directory prefix as a file: {source.uri}"
            raise InvalidPathError(msg, metadata={"source": source.uri})

        options = options or TransferOptions()
        target = resolve_local_destination(source, destination)

        async with track_storage_operation("download", key=source.key, bucket=source.bucket) as ctx:
            result = await self._download(source, target, options)
            if result.success:
                ctx["result_size"] = result.metadata.get("size")
            else:
                ctx["failed"] = result.metadata.get("code", "STORAGE_ERROR")
                ctx["message"] = result.message
            return result

    async def _download(self, source: CloudPath, target: Path, options: TransferOptions) -> TransferResult:
        base = {"source": source.uri, "destination": str(target)}
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
            error = as_storage_error(e, "download")
            return TransferResult.failed(error.message, code=error.code, **base)
        if info is None:
            error = StorageFileNotFoundError(
                f"Object not found: {source.uri}", metadata={"bucket": source.bucket, "key": source.key}
            )
            return TransferResult.failed(error.message, code=error.code, **base)

        strategy = choose_download_strategy(
            info.size,
            threshold=self._settings.download_multipart_threshold,
            chunk_size=self._settings.download_chunk_size,
        )
        metrics.record_strategy("download", strategy.kind)
        logger.debug(
            "Downloading object",
            extra={**base, "size_bytes": info.size, "strategy": strategy.kind},
        )

        partial = partial_path(target)
        progress = ProgressTracker(info.size, options.on_progress)
        extra: dict[str, int] = {}
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            match strategy:
                case SingleStream():
                    await retry_call(
                        self._stream_to_file,
                        source,
                        partial,
                        progress,
                        timeout,
                        strategy=self._retry,
                        name="get_object",
                    )
                case Ranged(ranges=ranges):
                    extra = await self._download_ranges(source, partial, info.size, ranges, progress, options)
            await asyncio.to_thread(os.replace, partial, target)
        except asyncio.CancelledError:
            await asyncio.shield(asyncio.to_thread(partial.unlink, missing_ok=True))
            raise
        except Exception as e:
            await asyncio.to_thread(partial.unlink, missing_ok=True)
            error = as_storage_error(e, "download")
            logger.warning(
                f"Download failed: {error.message}",
                extra={"key": source.key, "bucket": source.bucket, "code": error.code},
            )
            return TransferResult.failed(
                error.message, code=error.code, strategy=strategy.kind, size=info.size, **extra, **base
            )

        return TransferResult.ok(
            strategy=strategy.kind, size=info.size, etag=info.etag, **extra, **base
        )

    # ========================================================================
    # Single stream
    # ========================================================================

    async def _stream_to_file(
        self,
        source: CloudPath,
        partial: Path,
        progress: ProgressTracker,
        timeout: float,
    ) -> None:
        """One streamed GET; each chunk read is bounded by ``timeout``.

        A retry restarts from the first byte, truncating what was written.
        """
        handle = await asyncio.to_thread(open, partial, "wb")
        written = 0
        chunk_size = self._settings.stream_chunk_size
        try:
            async with aclosing(self._store.iter_object(source.bucket, source.key, chunk_size)) as chunks:
                while True:
                    async with asyncio.timeout(timeout):
                        chunk = await anext(chunks, None)
                    if chunk is None:
                        break
                    await asyncio.to_thread(handle.write, chunk)
                    written += len(chunk)
                    progress.advance(len(chunk))
        except BaseException:
            # Progress restarts with the next attempt
            progress.transferred -= written
            raise
        finally:
            await asyncio.to_thread(handle.close)

    # ========================================================================
    # Ranged reads
    # ========================================================================

    async def _download_ranges(
        self,
        source: CloudPath,
        partial: Path,
        size: int,
        ranges: tuple[ByteRange, ...],
        progress: ProgressTracker,
        options: TransferOptions,
    ) -> dict[str, int]:
        concurrency = options.get("concurrency", self._settings.download_concurrency)
        throttle = ConcurrencyThrottle(
            limit=concurrency,
            minimum=self._settings.min_download_concurrency,
            failure_threshold=self._settings.throttle_failure_threshold,
            recovery_successes=self._settings.throttle_recovery_successes,
        )
        timeout = options.get("timeout", self._settings.call_timeout)

        handle = await asyncio.to_thread(open, partial, "wb+")
        try:
            await asyncio.to_thread(handle.truncate, size)
            writer = _OffsetWriter(handle)
            try:
                async with asyncio.TaskGroup() as tg:
                    for byte_range in ranges:
                        await throttle.acquire()
                        tg.create_task(
                            self._fetch_range(source, byte_range, writer, throttle, progress, timeout)
                        )
            except BaseExceptionGroup as group:
                raise first_failure(group) from None
        finally:
            await asyncio.to_thread(handle.close)

        return {
            "ranges": len(ranges),
            "peak_concurrency": throttle.peak,
            "throttle_reductions": throttle.reductions,
        }

    async def _fetch_range(
        self,
        source: CloudPath,
        byte_range: ByteRange,
        writer: _OffsetWriter,
        throttle: ConcurrencyThrottle,
        progress: ProgressTracker,
        timeout: float,
    ) -> None:
        """Fetch one range inside an already acquired throttle slot.

        A body shorter than the range is a retryable connection failure.
        """

        async def get_range() -> bytes:
            data = await self._store.get_object(
                source.bucket, source.key, start=byte_range.start, end=byte_range.end
            )
            if len(data) != byte_range.length:
                msg = f"Short read for {byte_range.header}: got {len(data)} bytes"
                raise ConnectionError(msg)
            return data

        try:
            data = await retry_call(
                get_range,
                strategy=self._retry,
                timeout=timeout,
                name="get_object_range",
                on_retry=lambda error, _attempt: throttle.record_failure(error),
            )
        except Exception as e:
            throttle.record_failure(e)
            raise
        finally:
            await throttle.release()

        await asyncio.to_thread(writer.write_at, byte_range.start, data)
        await throttle.record_success()
        progress.advance(len(data))
