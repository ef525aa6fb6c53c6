"""Utility modules for common operations.

This package provides reusable utilities for:
- Retry with bounded exponential backoff
"""

from objectmover.utils.retry import RetryError, RetryStrategy, retry, retry_call

__all__ = [
    "RetryError",
    "RetryStrategy",
    "retry",
    "retry_call",
]
