"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from objectmover.core.settings.loader import get_transfer_settings

    settings = get_transfer_settings()  # First call: loads and validates
    settings = get_transfer_settings()  # Subsequent calls: returns cached instance

Testing:
    In tests, clear the cache to force reload:
    clear_all_caches()

    Or construct settings directly:
    settings = TransferSettings(part_size=5 * 1024 * 1024)
"""

from __future__ import annotations

from functools import lru_cache

from .logs import LoggingSettings
from .storage import StorageSettings
from .transfer import TransferSettings


@lru_cache(maxsize=1)
def get_storage_settings() -> StorageSettings:
    """Get cached object store settings.

    Returns:
        Validated and frozen StorageSettings instance.
    """
    return StorageSettings()


@lru_cache(maxsize=1)
def get_transfer_settings() -> TransferSettings:
    """Get cached transfer engine settings.

    Returns:
        Validated and frozen TransferSettings instance.
    """
    return TransferSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear all settings caches.

    Useful for testing or when you need to force reload settings.
    """
    get_storage_settings.cache_clear()
    get_transfer_settings.cache_clear()
    get_logging_settings.cache_clear()
