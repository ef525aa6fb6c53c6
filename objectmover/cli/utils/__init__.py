"""CLI utilities for running async operations and formatting output."""

from objectmover.cli.utils.async_runner import coro, run_async
from objectmover.cli.utils.formatters import (
    error,
    format_bytes,
    header,
    info,
    success,
    warning,
)

__all__ = [
    "coro",
    "error",
    "format_bytes",
    "header",
    "info",
    "run_async",
    "success",
    "warning",
]
