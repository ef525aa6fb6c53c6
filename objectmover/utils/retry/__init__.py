from __future__ import annotations

from objectmover.utils.retry.decorator import retry, retry_call
from objectmover.utils.retry.exceptions import RetryError, RetryStatistics
from objectmover.utils.retry.strategies import RetryStrategy

__all__ = ["retry", "retry_call", "RetryError", "RetryStatistics", "RetryStrategy"]
