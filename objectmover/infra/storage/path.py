"""Path classification and normalization for local and remote locations.

A raw path string is resolved into either a ``CloudPath`` (bucket + key on
the object store) or a ``LocalPath``. Remote paths are written as
``s3://bucket/key``; a bare relative key is remote only when a default
bucket is configured, otherwise it names a local file.

Example:
    ```python
    resolver = PathResolver(default_bucket="media")

    resolver.resolve("s3://archive/2024/report.csv")
    # CloudPath(bucket="archive", key="2024/report.csv")

    resolver.resolve("videos/intro.mp4")
    # CloudPath(bucket="media", key="videos/intro.mp4")

    resolver.resolve("./intro.mp4")
    # LocalPath(path="./intro.mp4")

    PathResolver.normalize_directory(CloudPath("media", "videos"))
    # CloudPath(bucket="media", key="videos/")
    ```

Everything in this module is pure: no filesystem or network access.
"""

from __future__ import annotations

import os
import re
from typing import overload

from .exceptions import InvalidPathError
from .models import REMOTE_SCHEME, SEPARATOR, AnyPath, CloudPath, LocalPath

# S3 bucket naming rules, relaxed to allow dots and uppercase used by MinIO setups
_BUCKET_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{1,61}[A-Za-z0-9]$")

# S3 limits keys to 1024 bytes of UTF-8
MAX_KEY_BYTES = 1024

_LOCAL_PREFIXES = ("/", "./", "../", "~", "file://")


def is_remote_uri(raw: str) -> bool:
    """True when ``raw`` carries the remote scheme prefix."""
    return raw[: len(REMOTE_SCHEME)].lower() == REMOTE_SCHEME


def _looks_local(raw: str) -> bool:
    if raw.startswith(_LOCAL_PREFIXES) or raw in {".", ".."}:
        return True
    # Windows drive letters (C:\..., C:/...)
    return len(raw) > 2 and raw[1] == ":" and raw[2] in "\\/"


def _validate_key(key: str, raw: str) -> None:
    if "\x00" in key:
        raise InvalidPathError("Key contains a null byte", metadata={"path": raw})
    if len(key.encode("utf-8")) > MAX_KEY_BYTES:
        raise InvalidPathError(
            f"Key exceeds {MAX_KEY_BYTES} bytes",
            metadata={"path": raw, "length": len(key.encode("utf-8"))},
        )


class PathResolver:
    """Resolve raw path strings against an optional default bucket.

    Attributes:
        default_bucket: Bucket applied to bare relative keys, or None
    """

    def __init__(self, default_bucket: str | None = None) -> None:
        self.default_bucket = default_bucket or None

    def resolve(self, raw: str, default_bucket: str | None = None) -> AnyPath:
        """Classify ``raw`` as remote or local and normalize it.

        Args:
            raw: ``s3://bucket/key``, a bare key, or a local filesystem path
            default_bucket: Overrides the resolver's default bucket for this call

        Returns:
            CloudPath for remote locations, LocalPath otherwise. A trailing
            separator on the input is preserved as the directory marker.

        Raises:
            InvalidPathError: Empty input, a remote URI without a bucket, an
                invalid bucket name, or a key the store would reject.
        """
        if not raw or not raw.strip():
            raise InvalidPathError("Path is empty", metadata={"path": raw})

        bucket = default_bucket or self.default_bucket

        if is_remote_uri(raw):
            return self._parse_remote(raw, bucket)

        if _looks_local(raw) or bucket is None:
            if raw.startswith("file://"):
                return LocalPath(raw[len("file://") :])
            return LocalPath(raw)

        key = raw.lstrip(SEPARATOR)
        _validate_key(key, raw)
        return CloudPath(bucket=bucket, key=key)

    def resolve_remote(self, raw: str | CloudPath, default_bucket: str | None = None) -> CloudPath:
        """Resolve ``raw`` and require a remote location.

        Raises:
            InvalidPathError: If ``raw`` resolves to a local path.
        """
        if isinstance(raw, CloudPath):
            return raw
        path = self.resolve(raw, default_bucket)
        if not isinstance(path, CloudPath):
            raise InvalidPathError(
                "Expected a remote path (s3://bucket/key or a key with a default bucket)",
                metadata={"path": raw},
            )
        return path

    def resolve_local(self, raw: str | LocalPath) -> LocalPath:
        """Treat ``raw`` as a local path even when a default bucket is set.

        Raises:
            InvalidPathError: If ``raw`` is a remote URI or empty.
        """
        if isinstance(raw, LocalPath):
            return raw
        if not raw or not raw.strip():
            raise InvalidPathError("Path is empty", metadata={"path": raw})
        if is_remote_uri(raw):
            raise InvalidPathError("Expected a local path", metadata={"path": raw})
        if raw.startswith("file://"):
            return LocalPath(raw[len("file://") :])
        return LocalPath(raw)

    def resolve_any(self, raw: str | AnyPath, default_bucket: str | None = None) -> AnyPath:
        if isinstance(raw, CloudPath | LocalPath):
            return raw
        return self.resolve(raw, default_bucket)

    def _parse_remote(self, raw: str, default_bucket: str | None) -> CloudPath:
        remainder = raw[len(REMOTE_SCHEME) :]
        bucket, _, key = remainder.partition(SEPARATOR)

        if not bucket:
            # "s3:///key" means "key in the default bucket"
            if default_bucket is None:
                raise InvalidPathError(
                    "Remote path has no bucket and no default bucket is configured",
                    metadata={"path": raw},
                )
            bucket = default_bucket

        if not _BUCKET_RE.match(bucket):
            raise InvalidPathError(f"Invalid bucket name: {bucket!r}", metadata={"path": raw})

        key = key.lstrip(SEPARATOR)
        _validate_key(key, raw)
        return CloudPath(bucket=bucket, key=key)

    @overload
    @staticmethod
    def normalize_directory(path: CloudPath) -> CloudPath: ...

    @overload
    @staticmethod
    def normalize_directory(path: LocalPath) -> LocalPath: ...

    @overload
    @staticmethod
    def normalize_directory(path: str) -> str: ...

    @staticmethod
    def normalize_directory(path: AnyPath | str) -> AnyPath | str:
        """Append a trailing separator if absent. Idempotent.

        The empty key (bucket root) is already a directory and stays empty.
        """
        if isinstance(path, CloudPath):
            return path.as_directory()
        if isinstance(path, LocalPath):
            if path.is_directory:
                return path
            return LocalPath(f"{path.path}{os.sep}")
        if path == "" or path.endswith(SEPARATOR):
            return path
        return f"{path}{SEPARATOR}"
