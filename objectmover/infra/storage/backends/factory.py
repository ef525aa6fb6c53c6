"""Backend factory for creating object stores from settings."""

from __future__ import annotations

from typing import TYPE_CHECKING

from objectmover.core.settings.storage import StorageBackendType
from objectmover.infra.storage.exceptions import StorageNotConfiguredError

if TYPE_CHECKING:
    from objectmover.core.settings.storage import StorageSettings

    from .protocol import ObjectStore


def create_object_store(settings: StorageSettings) -> ObjectStore:
    """Create the object store matching ``settings.backend``.

    Args:
        settings: Storage configuration settings

    Returns:
        An object store implementing the ObjectStore protocol (not yet started)

    Raises:
        StorageNotConfiguredError: If storage is disabled or the backend is unsupported

    Example:
        store = create_object_store(get_storage_settings())
        await store.startup()
    """
    if not settings.is_configured:
        msg = "Storage not configured. Set STORAGE_ENABLED=true."
        raise StorageNotConfiguredError(msg)

    match settings.backend:
        case StorageBackendType.S3 | StorageBackendType.MINIO:
            # MinIO speaks the S3 API; only the endpoint differs
            from .s3.backend import S3ObjectStore

            return S3ObjectStore(settings)

        case _:
            msg = (
                f"Unsupported storage backend: {settings.backend}. "
                f"Supported backends: {', '.join(t.value for t in StorageBackendType)}"
            )
            raise StorageNotConfiguredError(msg)
