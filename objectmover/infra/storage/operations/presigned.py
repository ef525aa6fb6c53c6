"""Presigned URL generation.

Signing is done by the store client; this module validates the request
and picks the defaults:

- ``GET`` URLs may carry ``response_headers`` overrides
  (``Content-Type``, ``Content-Disposition``, ...) applied when the object
  is served
- ``PUT`` URLs sign the content type and user metadata, so the uploader
  must send the same values
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from objectmover.infra.storage.exceptions import InvalidPathError, StorageValidationError
from objectmover.infra.storage.instrumentation import track_storage_operation
from objectmover.infra.storage.models import CloudPath, PresignedUrl

if TYPE_CHECKING:
    from objectmover.core.settings.storage import StorageSettings
    from objectmover.infra.storage.backends.protocol import ObjectStore

logger = logging.getLogger(__name__)

PRESIGN_METHODS = ("GET", "PUT")


async def presign(
    store: ObjectStore,
    settings: StorageSettings,
    path: CloudPath,
    method: str = "GET",
    expires_seconds: int | None = None,
    content_type: str | None = None,
    metadata: dict[str, str] | None = None,
    response_headers: dict[str, str] | None = None,
) -> PresignedUrl:
    """Create a presigned URL for one object.

    Args:
        store: Started object store
        settings: Storage settings supplying the default and maximum expiry
        path: Object to sign for
        method: ``GET`` or ``PUT``
        expires_seconds: Lifetime of the URL (settings default when None)
        content_type: Signed content type (PUT only)
        metadata: Signed user metadata (PUT only)
        response_headers: Response overrides (GET only)

    Raises:
        InvalidPathError: If ``path`` is a directory prefix
        StorageValidationError: If the method or expiry is not acceptable

    Example:
        url = await presign(store, settings, CloudPath("media", "a.png"), expires_seconds=600)
        print(url.to_dict()["url"])
    """
    if path.is_directory:
        msg = f"Cannot presign a directory prefix: {path.uri}"
        raise InvalidPathError(msg, metadata={"path": path.uri})

    method = method.upper()
    if method not in PRESIGN_METHODS:
        raise StorageValidationError(
            f"Unsupported presign method: {method}",
            metadata={"method": method, "supported": list(PRESIGN_METHODS)},
        )

    expires_in = settings.presigned_url_expiry_seconds if expires_seconds is None else expires_seconds
    if not 1 <= expires_in <= settings.max_presigned_url_expiry_seconds:
        raise StorageValidationError(
            f"Expiry must be between 1 and {settings.max_presigned_url_expiry_seconds} seconds",
            metadata={"expires_seconds": expires_in},
        )

    if method == "PUT" and response_headers:
        logger.debug("Ignoring response headers on a PUT presign", extra={"key": path.key})
        response_headers = None

    async with track_storage_operation("presign", key=path.key, bucket=path.bucket, method=method):
        url = await store.generate_presigned_url(
            path.bucket,
            path.key,
            method,
            expires_in,
            content_type=content_type if method == "PUT" else None,
            metadata=metadata if method == "PUT" else None,
            response_headers=response_headers,
        )
    return PresignedUrl(url=url, method=method, expires_in=expires_in)
