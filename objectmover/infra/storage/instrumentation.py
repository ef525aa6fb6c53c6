"""Storage operation instrumentation with OpenTelemetry and Prometheus metrics.

Every public operation runs inside ``track_storage_operation``, which
opens a ``storage.<operation>`` span and records success or error metrics
when the block exits.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry.trace import Status, StatusCode

from objectmover.infra.tracing.opentelemetry import get_tracer

from . import metrics

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_tracer = get_tracer("objectmover.storage")


@asynccontextmanager
async def track_storage_operation(
    operation: str,
    key: str | None = None,
    bucket: str | None = None,
    size_bytes: int | None = None,
    **attributes: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Track a storage operation with an OpenTelemetry span and Prometheus metrics.

    The yielded context dict may be updated by the caller. Its entries are
    attached to the span as ``storage.result.*`` attributes. Two keys carry
    meaning:

    - ``result_size``: bytes transferred, recorded in the size histogram
    - ``failed``: an error type; the operation is recorded as an error even
      though no exception escaped (engines report failures as results)

    Args:
        operation: Operation name (upload, download, copy, delete, ...)
        key: Object key
        bucket: Bucket name
        size_bytes: Known size up front
        **attributes: Additional span attributes

    Yields:
        A context dictionary that can be updated with additional attributes

    Example:
        async with track_storage_operation("upload", key=key, bucket=bucket) as ctx:
            result = await engine.upload(source, destination)
            ctx["result_size"] = result.metadata.get("size")
    """
    span_attributes: dict[str, Any] = {"storage.operation": operation}
    if key is not None:
        span_attributes["storage.key"] = key
    if bucket is not None:
        span_attributes["storage.bucket"] = bucket
    if size_bytes is not None:
        span_attributes["storage.size_bytes"] = size_bytes
    span_attributes.update({f"storage.{k}": str(v) for k, v in attributes.items() if v is not None})

    context: dict[str, Any] = {}
    start_time = time.perf_counter()
    metrics.storage_operations_active.inc()

    with _tracer.start_as_current_span(
        f"storage.{operation}",
        attributes=span_attributes,
        record_exception=False,
        set_status_on_exception=False,
    ) as span:
        try:
            yield context

            duration = time.perf_counter() - start_time
            for k, v in context.items():
                span.set_attribute(f"storage.result.{k}", str(v))

            failure = context.get("failed")
            if failure:
                metrics.record_operation_error(
                    operation=operation,
                    error_type=str(failure),
                    duration_seconds=duration,
                )
                span.set_status(Status(StatusCode.ERROR, str(context.get("message", failure))))
            else:
                metrics.record_operation_success(
                    operation=operation,
                    duration_seconds=duration,
                    size_bytes=context.get("result_size", size_bytes),
                )
                span.set_status(Status(StatusCode.OK))

        except Exception as e:
            duration = time.perf_counter() - start_time
            metrics.record_operation_error(
                operation=operation,
                error_type=type(e).__name__,
                duration_seconds=duration,
            )
            span.record_exception(e)
            span.set_status(Status(StatusCode.ERROR, str(e)))
            raise

        finally:
            metrics.storage_operations_active.dec()
