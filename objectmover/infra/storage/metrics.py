"""Transfer metrics for Prometheus monitoring.

This module provides metrics for:
- Operation counters and timing (upload, download, copy, delete, list, ...)
- Transferred size distribution
- Batch outcomes (succeeded, failed, aborted items)
- Multipart parts, aborted multipart sessions
- Download throttling (reductions and the current limit)
- Copy strategy selection (server-side versus two-phase)

All metrics are registered with the shared REGISTRY from the prometheus module.

Usage:
    from objectmover.infra.storage.metrics import record_operation_success

    record_operation_success("upload", duration_seconds=1.5, size_bytes=1048576)
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from objectmover.infra.metrics.prometheus import REGISTRY

# Transfers of multi-gigabyte objects run for minutes
STORAGE_LATENCY_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0, 900.0)

# 1KB to 5GB
STORAGE_SIZE_BUCKETS = (
    1024,
    102400,
    1048576,
    10485760,
    26214400,
    104857600,
    1073741824,
    5368709120,
)

BATCH_SIZE_BUCKETS = (1, 5, 10, 25, 50, 100, 250, 500, 1000, 5000)

storage_operations_total = Counter(
    "storage_operations_total",
    "Total storage operations",
    ["operation", "status"],
    registry=REGISTRY,
)

storage_operation_duration_seconds = Histogram(
    "storage_operation_duration_seconds",
    "Storage operation duration in seconds",
    ["operation"],
    buckets=STORAGE_LATENCY_BUCKETS,
    registry=REGISTRY,
)

storage_file_size_bytes = Histogram(
    "storage_file_size_bytes",
    "Size of objects transferred in bytes",
    ["operation"],
    buckets=STORAGE_SIZE_BUCKETS,
    registry=REGISTRY,
)

storage_errors_total = Counter(
    "storage_errors_total",
    "Storage operation errors by type",
    ["operation", "error_type"],
    registry=REGISTRY,
)

storage_operations_active = Gauge(
    "storage_operations_active",
    "Number of storage operations in progress",
    registry=REGISTRY,
)

# Batch metrics
storage_batch_size = Histogram(
    "storage_batch_size",
    "Number of items in batch operations",
    ["operation"],
    buckets=BATCH_SIZE_BUCKETS,
    registry=REGISTRY,
)

storage_batch_items_total = Counter(
    "storage_batch_items_total",
    "Batch items by outcome",
    ["operation", "outcome"],  # outcome: success/failure/aborted
    registry=REGISTRY,
)

# Multipart and ranged transfer metrics
storage_transfer_strategy_total = Counter(
    "storage_transfer_strategy_total",
    "Transfers by chosen strategy",
    ["operation", "strategy"],  # strategy: single_part/multipart/single_stream/ranged/server_side/two_phase
    registry=REGISTRY,
)

storage_multipart_parts_total = Counter(
    "storage_multipart_parts_total",
    "Multipart parts uploaded",
    registry=REGISTRY,
)

storage_multipart_aborts_total = Counter(
    "storage_multipart_aborts_total",
    "Multipart sessions aborted",
    ["outcome"],  # outcome: aborted/abort_failed
    registry=REGISTRY,
)

storage_download_throttle_reductions_total = Counter(
    "storage_download_throttle_reductions_total",
    "Times a ranged download lowered its concurrency",
    registry=REGISTRY,
)

storage_download_concurrency_limit = Gauge(
    "storage_download_concurrency_limit",
    "Concurrency limit of the most recently adjusted ranged download",
    registry=REGISTRY,
)


def record_operation_success(
    operation: str,
    duration_seconds: float,
    size_bytes: int | None = None,
) -> None:
    """Record a successful storage operation.

    Args:
        operation: Operation name (upload, download, copy, ...)
        duration_seconds: Duration of the operation in seconds
        size_bytes: Bytes transferred (if applicable)
    """
    storage_operations_total.labels(operation=operation, status="success").inc()
    storage_operation_duration_seconds.labels(operation=operation).observe(duration_seconds)
    if size_bytes is not None and size_bytes > 0:
        storage_file_size_bytes.labels(operation=operation).observe(size_bytes)


def record_operation_error(
    operation: str,
    error_type: str,
    duration_seconds: float | None = None,
) -> None:
    """Record a failed storage operation.

    Args:
        operation: Operation name
        error_type: Exception class name or storage error code
        duration_seconds: Duration before failure (if available)
    """
    storage_operations_total.labels(operation=operation, status="error").inc()
    storage_errors_total.labels(operation=operation, error_type=error_type).inc()
    if duration_seconds is not None:
        storage_operation_duration_seconds.labels(operation=operation).observe(duration_seconds)


def record_batch_operation(
    operation: str,
    total: int,
    succeeded: int,
    failed: int,
    aborted: int = 0,
) -> None:
    """Record the outcome counts of a batch."""
    storage_batch_size.labels(operation=operation).observe(total)
    if succeeded:
        storage_batch_items_total.labels(operation=operation, outcome="success").inc(succeeded)
    if failed:
        storage_batch_items_total.labels(operation=operation, outcome="failure").inc(failed)
    if aborted:
        storage_batch_items_total.labels(operation=operation, outcome="aborted").inc(aborted)


def record_strategy(operation: str, strategy: str) -> None:
    storage_transfer_strategy_total.labels(operation=operation, strategy=strategy).inc()
