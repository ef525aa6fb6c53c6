"""Object store protocol consumed by the transfer engines.

This module defines:
- The ``ObjectStore`` protocol: the exact surface of bucket/key operations
  the engines need (put, multipart, ranged get, server-side copy, delete,
  prefix listing, presign)
- ``ListPage``: one page of a prefix listing

Every method raises a ``StorageError`` subclass on failure. Retryable kinds
(network errors, timeouts, throttling) are retried by the engines, not by
implementations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from objectmover.infra.storage.models import CompletedPart, ObjectMetadata

# DeleteObjects accepts at most this many keys per request
MAX_DELETE_BATCH = 1000


@dataclass(frozen=True)
class ListPage:
    """One page of a prefix listing.

    Attributes:
        objects: Objects directly matching the request
        common_prefixes: Collapsed sub-prefixes when a delimiter was given
        next_token: Continuation token, or None on the last page
    """

    objects: list[ObjectMetadata] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    next_token: str | None = None


class ObjectStore(Protocol):
    """Protocol interface for object store backends.

    Uses structural typing (Protocol) rather than inheritance; the
    in-memory store used by the test suite satisfies it without importing
    anything from here.
    """

    # ========================================================================
    # Properties and lifecycle
    # ========================================================================

    @property
    def backend_name(self) -> str:
        """Name of the backend (e.g., 's3')."""
        ...

    @property
    def is_ready(self) -> bool:
        """Check if backend is initialized and ready for operations."""
        ...

    async def startup(self) -> None:
        """Create clients and connection pools."""
        ...

    async def shutdown(self) -> None:
        """Close clients and release connections."""
        ...

    async def health_check(self, bucket: str | None = None) -> bool:
        """Check connectivity to ``bucket`` (the default bucket when None)."""
        ...

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
        """Store ``body`` at ``bucket/key`` in one request.

        Returns:
            ETag of the stored object
        """
        ...

    async def create_multipart_upload(
        self,
        bucket: str,
        key: str,
        content_type: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Initiate a multipart upload.

        Returns:
            Upload id identifying the session
        """
        ...

    async def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
    ) -> str:
        """Upload one part (1-based ``part_number``).

        Returns:
            ETag of the part
        """
        ...

    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: list[CompletedPart],
    ) -> str:
        """Commit the session with parts sorted by part number.

        Returns:
            ETag of the assembled object
        """
        ...

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> None:
        """Discard the session and any uploaded parts."""
        ...

    async def copy_object(
        self,
        source_bucket: str,
        source_key: str,
        dest_bucket: str,
        dest_key: str,
    ) -> None:
        """Server-side copy without moving bytes through the client."""
        ...

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete one object. Deleting an absent key is not an error."""
        ...

    async def delete_objects(self, bucket: str, keys: list[str]) -> list[str]:
        """Delete up to ``MAX_DELETE_BATCH`` keys in one request.

        Returns:
            Keys the store failed to delete
        """
        ...

    # ========================================================================
    # Reads
    # ========================================================================

    async def head_object(self, bucket: str, key: str) -> ObjectMetadata | None:
        """Fetch object metadata, or None when the object is absent."""
        ...

    async def get_object(
        self,
        bucket: str,
        key: str,
        start: int | None = None,
        end: int | None = None,
    ) -> bytes:
        """Read the object, or the inclusive byte range ``[start, end]``."""
        ...

    def iter_object(self, bucket: str, key: str, chunk_size: int) -> AsyncIterator[bytes]:
        """Stream the object body in chunks of at most ``chunk_size`` bytes."""
        ...

    async def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        delimiter: str | None = None,
        continuation_token: str | None = None,
        max_keys: int = 1000,
    ) -> ListPage:
        """List one page of keys under ``prefix``."""
        ...

    def stream_objects(
        self,
        bucket: str,
        prefix: str = "",
    ) -> AsyncIterator[ObjectMetadata]:
        """Yield every object under ``prefix`` across all pages."""
        ...

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
        """Sign a GET or PUT request for ``bucket/key``."""
        ...
