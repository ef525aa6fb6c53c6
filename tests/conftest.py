"""Pytest configuration and shared fixtures.

Organization:
    - Environment: keeps settings loaders away from a developer's .env
    - Settings Fixtures: small thresholds and zero backoff for fast tests
    - Store Fixtures: the in-memory object store and started engines
    - Utility Fixtures: deterministic payloads and local files
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest

from objectmover.core.settings import StorageSettings, TransferSettings, clear_all_caches
from objectmover.infra.storage.service import TransferService, reset_transfer_service
from tests.fixtures import InMemoryObjectStore

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterator
    from pathlib import Path

KIB = 1024

os.environ.setdefault("STORAGE_ENABLED", "true")
os.environ.setdefault("LOG_LEVEL", "WARNING")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _isolate_settings() -> Iterator[None]:
    """Drop cached settings and the service singleton around every test."""
    clear_all_caches()
    reset_transfer_service()
    yield
    clear_all_caches()
    reset_transfer_service()


@pytest.fixture
def transfer_settings() -> TransferSettings:
    """Transfer settings tuned for tests.

    Uploads above 1 KiB and downloads above 64 KiB take the chunked paths,
    and retries never sleep.
    """
    return TransferSettings(
        upload_multipart_threshold=KIB,
        download_multipart_threshold=64 * KIB,
        download_chunk_size=64 * KIB,
        stream_chunk_size=64 * KIB,
        upload_concurrency=3,
        download_concurrency=4,
        max_buffered_parts=2,
        batch_concurrency=2,
        retry_max_attempts=3,
        retry_base_delay=0.0,
        retry_max_delay=0.0,
        call_timeout=5.0,
    )


@pytest.fixture
def storage_settings() -> StorageSettings:
    return StorageSettings(enabled=True, default_bucket="media")


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
async def service(
    store: InMemoryObjectStore,
    storage_settings: StorageSettings,
    transfer_settings: TransferSettings,
) -> AsyncIterator[TransferService]:
    """Started TransferService over the in-memory store."""
    svc = TransferService(storage_settings, transfer_settings, store=store)
    await svc.startup()
    yield svc
    await svc.shutdown()


# ============================================================================
# Utility Fixtures
# ============================================================================


def make_payload(size: int) -> bytes:
    """Deterministic, non-repeating-looking bytes of the given length."""
    return bytes((i * 31 + i // 251) % 256 for i in range(size))


@pytest.fixture
def payload() -> Callable[[int], bytes]:
    return make_payload


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., Path]:
    """Write ``data`` to ``tmp_path / name`` and return the path."""

    def _write(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    return _write
