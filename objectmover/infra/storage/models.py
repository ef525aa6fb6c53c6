"""Data structures shared by the transfer engines.

Paths, per-call options, results and reports are immutable frozen
dataclasses. The only mutable structure is ``MultipartSession``, which
accumulates completed parts until it is committed or aborted.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

from .exceptions import InvalidPathError, PartialBatchFailureError

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

T = TypeVar("T")

SEPARATOR = "/"
REMOTE_SCHEME = "s3://"


# ============================================================================
# Paths
# ============================================================================


@dataclass(frozen=True)
class CloudPath:
    """A bucket/key address on the object store.

    A key ending in the separator (or the empty key, meaning the bucket
    root) denotes a directory prefix.

    Attributes:
        bucket: Bucket name, never empty
        key: Object key or prefix, without a leading separator
    """

    bucket: str
    key: str = ""

    def __post_init__(self) -> None:
        if not self.bucket:
            raise InvalidPathError("Remote path requires a bucket", metadata={"key": self.key})

    @property
    def is_remote(self) -> bool:
        return True

    @property
    def is_directory(self) -> bool:
        return self.key == "" or self.key.endswith(SEPARATOR)

    @property
    def uri(self) -> str:
        return f"{REMOTE_SCHEME}{self.bucket}/{self.key}"

    @property
    def name(self) -> str:
        """Last key component; directories keep their trailing separator."""
        stripped = self.key.rstrip(SEPARATOR)
        base = stripped.rsplit(SEPARATOR, 1)[-1]
        return f"{base}{SEPARATOR}" if self.is_directory and base else base

    def as_directory(self) -> CloudPath:
        if self.is_directory:
            return self
        return CloudPath(self.bucket, f"{self.key}{SEPARATOR}")

    def join(self, relative: str) -> CloudPath:
        """Append a relative key beneath this path, treating it as a prefix."""
        base = self.as_directory().key
        return CloudPath(self.bucket, f"{base}{relative.lstrip(SEPARATOR)}")

    def relative_to(self, prefix: CloudPath) -> str:
        """Key of this path relative to a directory ``prefix`` in the same bucket."""
        base = prefix.as_directory().key
        if self.bucket != prefix.bucket or not self.key.startswith(base):
            raise InvalidPathError(
                f"{self.uri} is not under {prefix.uri}",
                metadata={"path": self.uri, "prefix": prefix.uri},
            )
        return self.key[len(base) :]

    def __str__(self) -> str:
        return self.uri


@dataclass(frozen=True)
class LocalPath:
    """A path on the local filesystem.

    ``is_directory`` reflects only how the path was written (trailing
    separator); it never touches the disk.
    """

    path: str

    @property
    def is_remote(self) -> bool:
        return False

    @property
    def is_directory(self) -> bool:
        return self.path.endswith(("/", "\\"))

    @property
    def name(self) -> str:
        return Path(self.path).name

    def as_path(self) -> Path:
        return Path(self.path)

    def join(self, relative: str) -> LocalPath:
        return LocalPath(str(Path(self.path) / relative))

    def __str__(self) -> str:
        return self.path


AnyPath = CloudPath | LocalPath


# ============================================================================
# Requests and options
# ============================================================================


@dataclass(frozen=True)
class TransferOptions:
    """Per-call overrides for the transfer engines.

    Any field left as ``None`` falls back to ``TransferSettings``.

    Attributes:
        concurrency: Concurrent parts, ranges or batch items
        fail_fast: Abort sibling work after the first failure
        part_size: Preferred multipart part size in bytes
        timeout: Per network call timeout in seconds
        max_buffered_parts: Parts held in memory during an upload
        content_type: MIME type recorded on uploaded objects
        metadata: User metadata recorded on uploaded objects
        on_progress: Called with ``(bytes_done, bytes_total)``
    """

    concurrency: int | None = None
    fail_fast: bool | None = None
    part_size: int | None = None
    timeout: float | None = None
    max_buffered_parts: int | None = None
    content_type: str | None = None
    metadata: dict[str, str] | None = None
    on_progress: Callable[[int, int], None] | None = None

    def get(self, name: str, default: T) -> T:
        """Return the option ``name``, or ``default`` when it was not set."""
        value = getattr(self, name)
        return default if value is None else value


@dataclass(frozen=True)
class TransferRequest:
    """One source to destination transfer, owned by the caller."""

    source: AnyPath
    destination: AnyPath
    options: TransferOptions = field(default_factory=TransferOptions)


# ============================================================================
# Results
# ============================================================================


@dataclass(frozen=True)
class TransferResult:
    """Terminal outcome of one transfer.

    Attributes:
        success: True when the transfer completed
        error: True when it failed (always ``not success``)
        message: Failure cause, or an optional note on success
        metadata: Strategy used, byte counts, error code, index, ...
    """

    success: bool
    error: bool
    message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str | None = None, **metadata: Any) -> TransferResult:
        return cls(success=True, error=False, message=message, metadata=metadata)

    @classmethod
    def failed(cls, message: str, **metadata: Any) -> TransferResult:
        return cls(success=False, error=True, message=message, metadata=metadata)

    def with_metadata(self, **metadata: Any) -> TransferResult:
        return TransferResult(
            success=self.success,
            error=self.error,
            message=self.message,
            metadata={**self.metadata, **metadata},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "error": self.error}
        if self.message is not None:
            payload["message"] = self.message
        if self.metadata:
            payload["metadata"] = dict(self.metadata)
        return payload


# ============================================================================
# Multipart upload and ranged download
# ============================================================================


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    etag: str

    def to_boto(self) -> dict[str, Any]:
        return {"PartNumber": self.part_number, "ETag": self.etag}


@dataclass
class MultipartSession:
    """A live multipart upload on the store.

    Created on initiation and ended by exactly one of complete or abort.
    Parts may be appended in any completion order.
    """

    upload_id: str
    bucket: str
    key: str
    parts: list[CompletedPart] = field(default_factory=list)

    def add_part(self, part_number: int, etag: str) -> None:
        self.parts.append(CompletedPart(part_number=part_number, etag=etag))

    def ordered_parts(self) -> list[CompletedPart]:
        return sorted(self.parts, key=lambda part: part.part_number)


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range ``[start, end]`` of an object."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def header(self) -> str:
        return f"bytes={self.start}-{self.end}"


# ============================================================================
# Batches
# ============================================================================


@dataclass(frozen=True)
class BatchItem:
    index: int
    request: TransferRequest


@dataclass(frozen=True)
class BatchItemError:
    """One failed batch item.

    Attributes:
        index: Position of the item in the caller's input
        message: Failure cause
        key: Destination key (or local path) of the item
        code: Storage error code, when known
    """

    index: int
    message: str
    key: str | None = None
    code: str | None = None


@dataclass(frozen=True)
class BatchReport:
    """Aggregate outcome of a batch or directory copy.

    ``results`` is ordered by input index. Without fail-fast it holds one
    result per input item; with fail-fast it holds only items that reached
    a terminal state, and ``aborted`` lists the indexes that were cancelled
    or never started.
    """

    success: bool
    results: list[TransferResult] = field(default_factory=list)
    errors: list[BatchItemError] = field(default_factory=list)
    aborted: list[int] = field(default_factory=list)

    @property
    def failed_keys(self) -> list[str]:
        return [error.key for error in self.errors if error.key is not None]

    @property
    def was_aborted(self) -> bool:
        return bool(self.aborted)

    def raise_for_failure(self) -> None:
        if not self.success:
            raise PartialBatchFailureError(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "results": [result.to_dict() for result in self.results],
            "errors": [asdict(error) for error in self.errors],
            "aborted": list(self.aborted),
        }


# ============================================================================
# Metadata and listings
# ============================================================================


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata of a real object.

    Attributes:
        key: Object key
        size: Object size in bytes
        content_type: MIME type (not returned by listings)
        etag: Entity tag, without quotes
        last_modified: Last modification timestamp
        custom_metadata: User metadata (not returned by listings)
    """

    key: str
    size: int
    content_type: str | None = None
    etag: str | None = None
    last_modified: datetime | None = None
    custom_metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_directory(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "is_directory": False,
            "size": self.size,
            "content_type": self.content_type,
            "etag": self.etag,
            "last_modified": self.last_modified.isoformat() if self.last_modified else None,
            "metadata": dict(self.custom_metadata),
        }


@dataclass(frozen=True)
class DirectoryMetadata:
    """Aggregate over every object beneath a prefix."""

    key: str
    object_count: int
    total_size: int
    last_modified_latest: datetime | None = None

    @property
    def is_directory(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "is_directory": True,
            "object_count": self.object_count,
            "total_size": self.total_size,
            "last_modified_latest": (
                self.last_modified_latest.isoformat() if self.last_modified_latest else None
            ),
        }


class ListType(StrEnum):
    FILES = "files"
    DIRECTORIES = "directories"
    ALL = "all"


class ListFormat(StrEnum):
    PATHS = "paths"
    KEYS = "keys"
    NAMES = "names"
    ENTRIES = "entries"


@dataclass(frozen=True)
class DirectoryEntry:
    bucket: str
    key: str
    is_directory: bool
    size: int = 0
    last_modified: datetime | None = None

    @property
    def name(self) -> str:
        return CloudPath(self.bucket, self.key).name

    @property
    def uri(self) -> str:
        return f"{REMOTE_SCHEME}{self.bucket}/{self.key}"


@dataclass(frozen=True)
class PresignedUrl:
    url: str
    method: str
    expires_in: int

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url}
