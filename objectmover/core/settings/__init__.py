"""Pydantic Settings v2 configuration.

Settings are split by concern and loaded from environment variables
(or a local ``.env`` file):

- ``STORAGE_*``  object store connection (endpoint, bucket, credentials)
- ``TRANSFER_*`` engine thresholds, part sizes, concurrency and retry policy
- ``LOG_*``      logging output

Import settings via cached loaders:
    from objectmover.core.settings import get_transfer_settings
"""

from __future__ import annotations

from .loader import (
    clear_all_caches,
    get_logging_settings,
    get_storage_settings,
    get_transfer_settings,
)
from .logs import LoggingSettings
from .storage import StorageBackendType, StorageSettings
from .transfer import TransferSettings

__all__ = [
    "LoggingSettings",
    "StorageBackendType",
    "StorageSettings",
    "TransferSettings",
    "clear_all_caches",
    "get_logging_settings",
    "get_storage_settings",
    "get_transfer_settings",
]
