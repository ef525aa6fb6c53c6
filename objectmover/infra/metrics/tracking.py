"""Record retry outcomes on the shared registry.

Labels are the operation name passed to ``retry_call`` (``upload_part``,
``get_object``, ``copy_object``, ...), so a noisy call path stands out on
its own series.
"""

from __future__ import annotations

from objectmover.infra.metrics import prometheus


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Count one retry; ``attempt_number`` is 1-indexed (the first retry is 2)."""
    prometheus.retry_attempts_total.labels(operation=operation, attempt_number=str(attempt_number)).inc()


def track_retry_exhausted(operation: str) -> None:
    prometheus.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    """Count a call that succeeded only after at least one retry."""
    prometheus.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()
