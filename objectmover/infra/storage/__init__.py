"""Transfer engine for S3-compatible object stores.

This package moves data between the local filesystem and an object store
and emulates directories over its flat key namespace:
- TransferService with singleton pattern and full observability
- Single-part and multipart uploads with bounded part buffering
- Streamed and concurrent ranged downloads with adaptive throttling
- Batch transfers with fail-fast cancellation
- Server-side copy with a two-phase fallback
- Prefix directories (create, exists, list, delete, copy)
- Presigned GET/PUT URLs
- Prometheus metrics and OpenTelemetry instrumentation

Quick Start:
    from objectmover.infra.storage import get_transfer_service

    service = get_transfer_service()
    await service.startup()
    result = await service.upload("./data.bin", "s3://bucket/data.bin")
    if not result.success:
        print(result.message)
"""

from __future__ import annotations

from .exceptions import (
    InvalidPathError,
    PartialBatchFailureError,
    StorageError,
    StorageFileNotFoundError,
    StorageIntegrityError,
    StorageNetworkError,
    StorageNotConfiguredError,
    StoragePermissionError,
    StorageTimeoutError,
    StorageValidationError,
    TransferAbortedError,
)
from .models import (
    BatchItemError,
    BatchReport,
    CloudPath,
    DirectoryEntry,
    DirectoryMetadata,
    ListFormat,
    ListType,
    LocalPath,
    ObjectMetadata,
    PresignedUrl,
    TransferOptions,
    TransferRequest,
    TransferResult,
)
from .path import PathResolver
from .service import TransferService, get_transfer_service, reset_transfer_service

__all__ = [
    "BatchItemError",
    "BatchReport",
    "CloudPath",
    "DirectoryEntry",
    "DirectoryMetadata",
    "InvalidPathError",
    "ListFormat",
    "ListType",
    "LocalPath",
    "ObjectMetadata",
    "PartialBatchFailureError",
    "PathResolver",
    "PresignedUrl",
    "StorageError",
    "StorageFileNotFoundError",
    "StorageIntegrityError",
    "StorageNetworkError",
    "StorageNotConfiguredError",
    "StoragePermissionError",
    "StorageTimeoutError",
    "StorageValidationError",
    "TransferAbortedError",
    "TransferOptions",
    "TransferRequest",
    "TransferResult",
    "TransferService",
    "get_transfer_service",
    "reset_transfer_service",
]
